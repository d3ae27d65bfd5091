"""Streaming chat routes for event search and promoter submissions."""

from __future__ import annotations

import datetime
import logging
from typing import Any, AsyncIterator, Iterable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from ..config import Settings
from ..gateway import GatewayClient, GatewayError, GatewayStream, public_error
from ..prompts import chat_search_prompt, promoter_prompt
from ..rate_limit import rate_limited
from ..schemas.chat import ChatMessage, ChatSearchRequest, PromoterCreateRequest
from ..streaming import OutgoingFrameWriter, RelayPipeline, ToolExecutor
from ..streaming.writer import FRAME_SEPARATOR
from ..tools import (
    CREATE_EVENT,
    EXTRACT_EVENT,
    QUERY_DATABASE_EVENTS,
    SEARCH_INTERNET_EVENTS,
    tool_definitions,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["chat"])

STREAM_FAILURE_MESSAGE = "Sorry, the assistant stopped responding. Please try again."


def require_bearer_token(request: Request) -> None:
    """Reject requests that carry no bearer token.

    Token verification belongs to the external auth provider; this service only
    refuses anonymous promoter traffic.
    """

    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )


def _conversation(system_prompt: str, messages: Iterable[ChatMessage]) -> list[dict[str, Any]]:
    return [{"role": "system", "content": system_prompt}] + [
        {"role": message.role, "content": message.content} for message in messages
    ]


async def _open_stream(
    gateway: GatewayClient, payload: dict[str, Any]
) -> GatewayStream | JSONResponse:
    try:
        return await gateway.open_stream(payload)
    except GatewayError as exc:
        status_code, message = public_error(exc)
        return JSONResponse(status_code=status_code, content={"error": message})


def _relay_response(
    upstream: GatewayStream,
    pipeline: RelayPipeline,
    writer: OutgoingFrameWriter,
) -> EventSourceResponse:
    async def event_publisher() -> AsyncIterator[ServerSentEvent]:
        try:
            async for frame in pipeline.run(upstream.aiter_bytes()):
                yield frame
        except GatewayError as exc:
            logger.error("Upstream stream failed: %s %s", exc.status_code, exc.detail)
            yield writer.content(STREAM_FAILURE_MESSAGE)
            yield writer.done()
        except Exception:
            logger.exception("Relay failed mid-stream")
            yield writer.content(STREAM_FAILURE_MESSAGE)
            yield writer.done()
        finally:
            await upstream.aclose()

    return EventSourceResponse(event_publisher(), sep=FRAME_SEPARATOR)


@router.post("/chat-search", response_model=None, status_code=200)
async def chat_search(
    payload: ChatSearchRequest,
    request: Request,
) -> EventSourceResponse | JSONResponse:
    """Stream the event-search assistant, answering from the datastore or the web."""

    settings: Settings = request.app.state.settings
    gateway: GatewayClient = request.app.state.gateway
    executor: ToolExecutor = request.app.state.executor

    logger.info(
        "Chat search request: %d messages, mode=%s", len(payload.messages), payload.search_mode
    )
    tool_name = (
        SEARCH_INTERNET_EVENTS if payload.search_mode == "internet" else QUERY_DATABASE_EVENTS
    )
    system_prompt = chat_search_prompt(
        today=datetime.datetime.now(datetime.timezone.utc).date(),
        search_mode=payload.search_mode,
        location=payload.location_context(),
    )
    body = gateway.build_payload(
        _conversation(system_prompt, payload.messages),
        stream=True,
        tools=tool_definitions(tool_name),
    )

    upstream = await _open_stream(gateway, body)
    if isinstance(upstream, JSONResponse):
        return upstream

    writer = OutgoingFrameWriter(legacy_event_sentinel=settings.legacy_event_sentinel)
    pipeline = RelayPipeline(executor, [tool_name], writer=writer)
    return _relay_response(upstream, pipeline, writer)


@router.post(
    "/promoter-create",
    response_model=None,
    status_code=200,
    dependencies=[Depends(rate_limited("promoter")), Depends(require_bearer_token)],
)
async def promoter_create(
    payload: PromoterCreateRequest,
    request: Request,
) -> EventSourceResponse | JSONResponse:
    """Stream the promoter assistant that collects and publishes event details."""

    settings: Settings = request.app.state.settings
    gateway: GatewayClient = request.app.state.gateway
    executor: ToolExecutor = request.app.state.executor

    if len(payload.messages) > settings.promoter_max_messages:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Conversation history too long",
        )

    logger.info("Promoter create request: %d messages", len(payload.messages))
    tool_names = [EXTRACT_EVENT, CREATE_EVENT]
    body = gateway.build_payload(
        _conversation(promoter_prompt(payload.language), payload.messages),
        stream=True,
        tools=tool_definitions(*tool_names),
    )

    upstream = await _open_stream(gateway, body)
    if isinstance(upstream, JSONResponse):
        return upstream

    writer = OutgoingFrameWriter(legacy_event_sentinel=settings.legacy_event_sentinel)
    pipeline = RelayPipeline(
        executor, tool_names, writer=writer, stop_after_extraction=True
    )
    return _relay_response(upstream, pipeline, writer)


__all__ = ["require_bearer_token", "router"]

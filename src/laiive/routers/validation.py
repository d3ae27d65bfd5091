"""Moderation gates in front of the conversation log and the events table."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..config import ModerationFallback, Settings
from ..rate_limit import rate_limited
from ..repository import (
    REQUIRED_EVENT_FIELDS,
    EventRecord,
    EventStore,
    RepositoryError,
    normalize_timestamp,
)
from ..schemas.events import ValidateConversationRequest, ValidateEventRequest
from ..services.moderation import ModerationUnavailable, Moderator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["validation"])

DUPLICATE_WINDOW = timedelta(hours=2)
# Columns refreshed when a submission matches an existing event.
_UPDATABLE_FIELDS = ("name", "artist", "description", "price", "ticket_url", "event_date", "tags")


async def _moderate(
    check: Awaitable[bool], fallback: ModerationFallback, unavailable_message: str
) -> bool:
    """Run a moderation check, applying ``fallback`` when the model is down."""

    try:
        return await check
    except ModerationUnavailable as exc:
        if fallback == "allow":
            logger.warning("Moderation unavailable; allowing by configuration")
            return True
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=unavailable_message,
        ) from exc


@router.post(
    "/validate-conversation",
    dependencies=[Depends(rate_limited("validate_conversation"))],
)
async def validate_conversation(payload: ValidateConversationRequest, request: Request):
    """Moderate one chat message and log it when allowed."""

    settings: Settings = request.app.state.settings
    moderator: Moderator = request.app.state.moderator
    store: EventStore = request.app.state.repository

    if payload.message_content and len(payload.message_content) > settings.max_text_length:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message too long")
    if payload.missing_fields():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields"
        )

    allowed = await _moderate(
        moderator.allow_message(payload.message_role or "", payload.message_content or ""),
        settings.conversation_moderation_fallback,
        "Validation service unavailable",
    )
    if not allowed:
        logger.info("Conversation message blocked for session %s", payload.session_id)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"blocked": True, "reason": "Content flagged by filter"},
        )

    try:
        await store.log_conversation(payload.model_dump())
    except RepositoryError as exc:
        logger.error("Failed to log conversation: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to log conversation",
        ) from exc
    return {"success": True}


async def _upsert_event(
    store: EventStore, fields: dict[str, Any], event_date: datetime
) -> EventRecord | None:
    existing = await store.find_events_at(
        venue=fields["venue"],
        city=fields["city"],
        start=event_date - DUPLICATE_WINDOW,
        end=event_date + DUPLICATE_WINDOW,
    )
    if existing:
        event_id = existing[0]["id"]
        logger.info("Found existing event, updating: %s", event_id)
        changes = {key: fields[key] for key in _UPDATABLE_FIELDS if key in fields}
        return await store.update_event(event_id, changes)
    return await store.insert_event(fields)


@router.post("/validate-event")
async def validate_event(payload: ValidateEventRequest, request: Request):
    """Moderate a promoter's event and publish it, merging near-duplicates."""

    settings: Settings = request.app.state.settings
    moderator: Moderator = request.app.state.moderator
    store: EventStore = request.app.state.repository

    if payload.event is None or not payload.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields"
        )
    fields = payload.event.fields()
    missing = [key for key in REQUIRED_EVENT_FIELDS if not fields.get(key)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required event fields: {', '.join(missing)}",
        )
    try:
        event_date = date_parser.isoparse(normalize_timestamp(fields["event_date"]))
    except RepositoryError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event date"
        ) from exc

    allowed = await _moderate(
        moderator.allow_event(fields),
        settings.event_moderation_fallback,
        "Validation service unavailable, please try again",
    )
    logger.info("Event validation decision for %r: %s", fields["name"], allowed)
    if not allowed:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "error": "Event submission rejected",
                "reason": "This event appears to be invalid or spam",
            },
        )

    try:
        record = await _upsert_event(store, fields, event_date)
    except RepositoryError as exc:
        logger.error("Database insertion error: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create event",
        ) from exc
    return {"success": True, "event": record}


__all__ = ["DUPLICATE_WINDOW", "router"]

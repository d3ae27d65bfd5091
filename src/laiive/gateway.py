"""Client for the OpenAI-compatible LLM gateway."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Mapping, Sequence

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Wrap transport or API failures when communicating with the gateway."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


def public_error(exc: GatewayError) -> tuple[int, str]:
    """Map a gateway failure to the status code and message shown to callers."""

    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
        return exc.status_code, "Rate limits exceeded, please try again later."
    if exc.status_code == status.HTTP_402_PAYMENT_REQUIRED:
        return (
            exc.status_code,
            "Payment required, please add funds to your AI gateway workspace.",
        )
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "AI gateway error"


class GatewayStream:
    """An open streaming response; close it once the relay is finished."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> "GatewayStream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class GatewayClient:
    """Client responsible for chat completions against the AI gateway."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._http_client = http_client

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(timeout=timeout, limits=limits)
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._settings.ai_gateway_api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }
        if self._settings.app_url:
            headers["HTTP-Referer"] = str(self._settings.app_url)
        return headers

    @property
    def _base_url(self) -> str:
        """Return the gateway base URL without a trailing slash."""

        return str(self._settings.ai_gateway_base_url).rstrip("/")

    def build_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        stream: bool = False,
        **options: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self._settings.chat_model,
            "messages": [dict(message) for message in messages],
        }
        if stream:
            payload["stream"] = True
        for key, value in options.items():
            if value is not None:
                payload[key] = value
        return payload

    async def open_stream(self, payload: dict[str, Any]) -> GatewayStream:
        """Start a streaming completion, raising before any byte is relayed."""

        url = f"{self._base_url}/chat/completions"
        headers = dict(self._headers)
        headers["Accept"] = "text/event-stream"
        payload = {**payload, "stream": True}

        client = await self._get_http_client()
        request = client.build_request("POST", url, headers=headers, json=payload)
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            detail = self._extract_error_detail(body)
            logger.error("AI gateway error: %s %s", response.status_code, detail)
            raise GatewayError(response.status_code, detail)

        return GatewayStream(response)

    async def complete(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Run a non-streaming completion and return the decoded body."""

        url = f"{self._base_url}/chat/completions"
        headers = dict(self._headers)
        headers["Accept"] = "application/json"
        payload = {key: value for key, value in payload.items() if key != "stream"}

        client = await self._get_http_client()
        try:
            response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            logger.error("AI gateway error: %s %s", response.status_code, detail)
            raise GatewayError(response.status_code, detail)

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if not isinstance(body, dict):
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Unexpected response body")
        return body

    @staticmethod
    def _first_message(payload: Mapping[str, Any]) -> Mapping[str, Any]:
        choices = payload.get("choices")
        if not isinstance(choices, Sequence) or not choices:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Response missing choices")
        container = choices[0]
        if not isinstance(container, Mapping):
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Response missing message")
        message = container.get("message")
        if not isinstance(message, Mapping):
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Response missing message")
        return message

    @classmethod
    def extract_text(cls, payload: Mapping[str, Any]) -> str:
        """Return the assistant text of a non-streaming completion."""

        content = cls._first_message(payload).get("content")
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, Sequence):
            fragments: list[str] = []
            for item in content:
                if not isinstance(item, Mapping):
                    continue
                if item.get("type") == "text" and isinstance(item.get("text"), str):
                    fragments.append(item["text"])
            return "".join(fragments).strip()
        return ""

    @classmethod
    def extract_tool_arguments(cls, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Decode the arguments of the first tool call in a completion."""

        tool_calls = cls._first_message(payload).get("tool_calls")
        if not isinstance(tool_calls, Sequence) or not tool_calls:
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "No tool call in response")
        function = tool_calls[0].get("function") if isinstance(tool_calls[0], Mapping) else None
        arguments = function.get("arguments") if isinstance(function, Mapping) else None
        if isinstance(arguments, Mapping):
            return dict(arguments)
        if not isinstance(arguments, str):
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Tool call missing arguments")
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError as exc:
            detail = (
                "Failed to parse tool arguments as JSON: "
                f"{exc.msg} at line {exc.lineno} column {exc.colno}"
            )
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, detail) from exc
        if not isinstance(decoded, dict):
            raise GatewayError(status.HTTP_502_BAD_GATEWAY, "Tool arguments are not an object")
        return decoded

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            return
        await self.__class__.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                logger.debug("Failed to close gateway client: %s", exc)

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "The AI gateway returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = ["GatewayClient", "GatewayError", "GatewayStream", "public_error"]

"""Extract structured event details from images, text and web pages."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..gateway import GatewayClient
from ..prompts import (
    EXTRACTION_TOOL_NAME,
    IMAGE_EXTRACTION_PROMPT,
    TEXT_EXTRACTION_PROMPT,
    extraction_tool,
    url_extraction_prompt,
)
from .page_fetch import PageFetcher

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*")


class ExtractionError(Exception):
    """The model reply could not be turned into event details."""


def parse_json_reply(text: str) -> dict[str, Any]:
    """Decode a model reply that may be wrapped in markdown code fences."""

    cleaned = _CODE_FENCE_RE.sub("", text).strip()
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionError("Could not parse event details") from exc
    if not isinstance(decoded, dict):
        raise ExtractionError("Could not parse event details")
    return decoded


def drop_empty_values(details: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value
        for key, value in details.items()
        if value is not None and value != "" and value != "null"
    }


class EventExtractor:
    def __init__(self, client: GatewayClient, fetcher: PageFetcher, *, page_text_limit: int = 8000) -> None:
        self._client = client
        self._fetcher = fetcher
        self._page_text_limit = page_text_limit

    async def _extract_with_tool(
        self, messages: list[dict[str, Any]], description: str
    ) -> dict[str, Any]:
        payload = self._client.build_payload(
            messages,
            tools=[extraction_tool(description)],
            tool_choice={"type": "function", "function": {"name": EXTRACTION_TOOL_NAME}},
        )
        body = await self._client.complete(payload)
        details = drop_empty_values(GatewayClient.extract_tool_arguments(body))
        logger.info("Extracted event details: %s", details)
        return details

    async def from_image(self, image_base64: str) -> dict[str, Any]:
        logger.info("Extracting event details from image, size: %d", len(image_base64))
        return await self._extract_with_tool(
            [
                {"role": "system", "content": IMAGE_EXTRACTION_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "Extract all event details from this image:"},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"},
                        },
                    ],
                },
            ],
            "Extract event details from an image",
        )

    async def from_text(self, text: str) -> dict[str, Any]:
        logger.info("Extracting event details from text, length: %d", len(text))
        return await self._extract_with_tool(
            [
                {"role": "system", "content": TEXT_EXTRACTION_PROMPT},
                {"role": "user", "content": f"Extract event details from this text: {text}"},
            ],
            "Extract event details from natural language text",
        )

    async def from_url(self, url: str, language: str | None = None) -> dict[str, Any]:
        page_text = await self._fetcher.fetch_text(url, limit=self._page_text_limit)
        payload = self._client.build_payload(
            [
                {"role": "system", "content": url_extraction_prompt(language)},
                {
                    "role": "user",
                    "content": (
                        "Extract event details from this webpage content:\n\n"
                        f"URL: {url}\n\nContent:\n{page_text}"
                    ),
                },
            ],
            temperature=0.1,
            max_tokens=1000,
        )
        body = await self._client.complete(payload)
        reply = GatewayClient.extract_text(body)
        logger.debug("URL extraction reply: %s", reply)
        details = parse_json_reply(reply)
        if not details.get("ticket_url"):
            details["ticket_url"] = url
        return details


__all__ = ["EventExtractor", "ExtractionError", "drop_empty_values", "parse_json_reply"]

"""LLM-backed ALLOW/BLOCK moderation for conversations and events."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..gateway import GatewayClient, GatewayError
from ..prompts import (
    CONVERSATION_MODERATION_PROMPT,
    EVENT_MODERATION_SYSTEM_PROMPT,
    event_moderation_prompt,
)

logger = logging.getLogger(__name__)


class ModerationUnavailable(Exception):
    """The moderation model could not produce a decision."""


class Moderator:
    """Ask a lightweight model whether content should be allowed."""

    def __init__(self, client: GatewayClient, *, model: str) -> None:
        self._client = client
        self._model = model

    async def _decide(self, messages: list[dict[str, Any]]) -> bool:
        payload = self._client.build_payload(
            messages,
            model=self._model,
            temperature=0.1,
            max_tokens=10,
        )
        try:
            body = await self._client.complete(payload)
            decision = GatewayClient.extract_text(body).strip().upper()
        except GatewayError as exc:
            logger.error("Moderation request failed: %s %s", exc.status_code, exc.detail)
            raise ModerationUnavailable(str(exc)) from exc
        logger.debug("Moderation decision: %s", decision)
        return decision == "ALLOW"

    async def allow_message(self, role: str, content: str) -> bool:
        return await self._decide(
            [
                {"role": "system", "content": CONVERSATION_MODERATION_PROMPT},
                {"role": "user", "content": f"Role: {role}\nContent: {content}"},
            ]
        )

    async def allow_event(self, event: Mapping[str, Any]) -> bool:
        return await self._decide(
            [
                {"role": "system", "content": EVENT_MODERATION_SYSTEM_PROMPT},
                {"role": "user", "content": event_moderation_prompt(event)},
            ]
        )


__all__ = ["ModerationUnavailable", "Moderator"]

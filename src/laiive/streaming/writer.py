"""Build the downstream SSE frames the browser client consumes."""

from __future__ import annotations

import json
from typing import Any

from sse_starlette.sse import ServerSentEvent

from .relay import DONE_SENTINEL

EXTRACTED_EVENT = "extracted_event"
LEGACY_EVENT_MARKER = "__EVENT_EXTRACTED__"

# Frames end with a blank line made of bare newlines, matching what the
# browser client splits on.
FRAME_SEPARATOR = "\n"


def _content_payload(text: str) -> str:
    return json.dumps(
        {"choices": [{"delta": {"content": text}}]}, ensure_ascii=False
    )


class OutgoingFrameWriter:
    """Create `ServerSentEvent` frames for relayed and synthesized content."""

    def __init__(self, *, legacy_event_sentinel: bool = False) -> None:
        self._legacy_event_sentinel = legacy_event_sentinel

    @staticmethod
    def _frame(data: str, event: str | None = None) -> ServerSentEvent:
        return ServerSentEvent(data=data, event=event, sep=FRAME_SEPARATOR)

    def content(self, text: str) -> ServerSentEvent:
        return self._frame(_content_payload(text))

    def relay(self, raw: str) -> ServerSentEvent:
        return self._frame(raw)

    def extracted_event(self, details: dict[str, Any]) -> ServerSentEvent:
        encoded = json.dumps(details, ensure_ascii=False)
        if self._legacy_event_sentinel:
            return self.content(f"{LEGACY_EVENT_MARKER}{encoded}{LEGACY_EVENT_MARKER}")
        return self._frame(encoded, event=EXTRACTED_EVENT)

    def done(self) -> ServerSentEvent:
        return self._frame(DONE_SENTINEL)


def encode_frame(frame: ServerSentEvent) -> str:
    """Render a frame exactly as it goes over the wire."""

    return frame.encode().decode("utf-8")


__all__ = [
    "EXTRACTED_EVENT",
    "FRAME_SEPARATOR",
    "LEGACY_EVENT_MARKER",
    "OutgoingFrameWriter",
    "encode_frame",
]

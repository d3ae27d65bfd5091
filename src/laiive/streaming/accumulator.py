"""Reassemble tool-call arguments that arrive fragmented across stream chunks."""

from __future__ import annotations

import json
import logging
from typing import Iterable

from .types import CompletedToolCall, ToolCallDelta

logger = logging.getLogger(__name__)


class ToolCallAccumulator:
    """Buffer argument fragments per tool name until they form a JSON object.

    OpenAI-style streams usually name the function only on the first delta of
    a call; later deltas for the same ``index`` carry just argument text, so
    the name seen for an index is remembered and reused.
    """

    def __init__(self, tool_names: Iterable[str]) -> None:
        self._tool_names = frozenset(tool_names)
        self._buffers: dict[str, str] = {}
        self._names_by_index: dict[int, str] = {}

    def _resolve_name(self, delta: ToolCallDelta) -> str | None:
        if delta.tool_name:
            self._names_by_index[delta.index] = delta.tool_name
            return delta.tool_name
        return self._names_by_index.get(delta.index)

    def feed(self, delta: ToolCallDelta) -> CompletedToolCall | None:
        name = self._resolve_name(delta)
        if name is None or name not in self._tool_names:
            if name is not None:
                logger.debug("Ignoring unsupported tool call %s", name)
            return None

        buffer = self._buffers.get(name, "") + delta.argument_fragment
        self._buffers[name] = buffer
        if not buffer.strip():
            return None

        try:
            arguments = json.loads(buffer)
        except json.JSONDecodeError:
            return None
        if not isinstance(arguments, dict):
            return None

        self._buffers[name] = ""
        return CompletedToolCall(tool_name=name, arguments=arguments)

    def feed_all(self, deltas: Iterable[ToolCallDelta]) -> list[CompletedToolCall]:
        completed: list[CompletedToolCall] = []
        for delta in deltas:
            call = self.feed(delta)
            if call is not None:
                completed.append(call)
        return completed

    def pending(self) -> dict[str, str]:
        """Return the non-empty buffers still waiting for more data."""

        return {name: text for name, text in self._buffers.items() if text}


__all__ = ["ToolCallAccumulator"]

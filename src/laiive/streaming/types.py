"""Type definitions for the chat streaming subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol, Union


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """One streamed fragment of a tool call's JSON arguments."""

    index: int
    argument_fragment: str
    tool_name: str | None = None
    call_id: str | None = None


@dataclass(frozen=True)
class Terminal:
    """Upstream signalled completion with `[DONE]` or closed the stream."""


TERMINAL = Terminal()


@dataclass(frozen=True)
class UpstreamChunk:
    """A decoded `data:` payload together with its original text."""

    raw: str
    payload: dict[str, Any]

    def _first_delta(self) -> dict[str, Any]:
        choices = self.payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return {}
        choice = choices[0]
        if not isinstance(choice, dict):
            return {}
        delta = choice.get("delta")
        return delta if isinstance(delta, dict) else {}

    def has_tool_calls(self) -> bool:
        return bool(self._first_delta().get("tool_calls"))

    def content_delta(self) -> ContentDelta | None:
        content = self._first_delta().get("content")
        if isinstance(content, str) and content:
            return ContentDelta(content)
        return None

    def tool_call_deltas(self) -> list[ToolCallDelta]:
        raw_calls = self._first_delta().get("tool_calls")
        if not isinstance(raw_calls, list):
            return []

        deltas: list[ToolCallDelta] = []
        for position, entry in enumerate(raw_calls):
            if not isinstance(entry, dict):
                continue
            function = entry.get("function")
            if not isinstance(function, dict):
                function = {}
            index = entry.get("index")
            if not isinstance(index, int):
                index = position
            name = function.get("name")
            arguments = function.get("arguments")
            if isinstance(arguments, dict):
                # Some providers send the arguments already decoded.
                arguments = json.dumps(arguments)
            call_id = entry.get("id")
            deltas.append(
                ToolCallDelta(
                    index=index,
                    argument_fragment=arguments if isinstance(arguments, str) else "",
                    tool_name=name if isinstance(name, str) and name else None,
                    call_id=call_id if isinstance(call_id, str) else None,
                )
            )
        return deltas


StreamFrame = Union[UpstreamChunk, Terminal]


@dataclass(frozen=True)
class CompletedToolCall:
    tool_name: str
    arguments: dict[str, Any]


@dataclass
class ToolOutcome:
    """Result of executing a tool call inside the relay loop."""

    content: str | None = None
    extracted_event: dict[str, Any] | None = None


class ToolExecutor(Protocol):
    def handles(self, name: str) -> bool:
        ...

    async def execute(self, call: CompletedToolCall) -> ToolOutcome:
        ...


__all__ = [
    "CompletedToolCall",
    "ContentDelta",
    "StreamFrame",
    "TERMINAL",
    "Terminal",
    "ToolCallDelta",
    "ToolExecutor",
    "ToolOutcome",
    "UpstreamChunk",
]

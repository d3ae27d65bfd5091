"""Relay an upstream completion while executing tool calls inline."""

from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator, Iterable

from sse_starlette.sse import ServerSentEvent

from .accumulator import ToolCallAccumulator
from .relay import StreamRelay
from .types import TERMINAL, CompletedToolCall, ToolExecutor, ToolOutcome
from .writer import OutgoingFrameWriter

logger = logging.getLogger(__name__)

TOOL_FAILURE_MESSAGE = "Sorry, something went wrong while handling your request. "


class RelayPipeline:
    """Stream chat responses downstream and splice in tool results.

    Frames without tool-call deltas are relayed verbatim. Tool-call deltas are
    accumulated; each call whose arguments complete is executed before the
    next upstream frame is read, and its result becomes one synthetic frame.
    The terminal ``[DONE]`` frame is always emitted last.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        tool_names: Iterable[str],
        *,
        writer: OutgoingFrameWriter | None = None,
        stop_after_extraction: bool = False,
    ) -> None:
        self._executor = executor
        self._tool_names = [name for name in tool_names if executor.handles(name)]
        self._writer = writer or OutgoingFrameWriter()
        self._stop_after_extraction = stop_after_extraction

    async def _execute(self, call: CompletedToolCall) -> ToolOutcome:
        logger.info("Executing tool %s with %s", call.tool_name, call.arguments)
        try:
            return await self._executor.execute(call)
        except Exception:
            logger.exception("Tool %s failed", call.tool_name)
            return ToolOutcome(content=TOOL_FAILURE_MESSAGE)

    async def run(self, source: AsyncIterable[bytes]) -> AsyncIterator[ServerSentEvent]:
        accumulator = ToolCallAccumulator(self._tool_names)
        writer = self._writer
        short_circuited = False

        async for frame in StreamRelay(source).frames():
            if frame is TERMINAL:
                break

            if not frame.has_tool_calls():
                yield writer.relay(frame.raw)
                continue

            content = frame.content_delta()
            if content is not None:
                yield writer.content(content.text)

            for call in accumulator.feed_all(frame.tool_call_deltas()):
                outcome = await self._execute(call)
                if outcome.content:
                    yield writer.content(outcome.content)
                if outcome.extracted_event is not None:
                    yield writer.extracted_event(outcome.extracted_event)
                    if self._stop_after_extraction:
                        short_circuited = True
                        break
            if short_circuited:
                break

        pending = accumulator.pending()
        if pending:
            logger.warning(
                "Upstream finished with incomplete tool arguments: %s",
                {name: len(text) for name, text in pending.items()},
            )
        yield writer.done()


__all__ = ["RelayPipeline", "TOOL_FAILURE_MESSAGE"]

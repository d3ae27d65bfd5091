"""Split an upstream Server-Sent Events byte stream into decoded frames."""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator

from .types import TERMINAL, StreamFrame, UpstreamChunk

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamRelay:
    """Turn raw upstream bytes into `UpstreamChunk` frames and a final `Terminal`.

    The relay is single-use: it owns the text buffer for one upstream response
    and yields frames lazily as bytes arrive. Lines are accumulated across
    reads, so the produced frame sequence does not depend on where the source
    happens to split its chunks.
    """

    def __init__(self, source: AsyncIterable[bytes]) -> None:
        self._source = source
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._consumed = False

    async def frames(self) -> AsyncIterator[StreamFrame]:
        if self._consumed:
            raise RuntimeError("StreamRelay can only be iterated once")
        self._consumed = True

        async for data in self._source:
            if not data:
                continue
            self._buffer += self._decoder.decode(data)
            while True:
                newline = self._buffer.find("\n")
                if newline < 0:
                    break
                line = self._buffer[:newline]
                self._buffer = self._buffer[newline + 1 :]
                frame = self._parse_line(line)
                if frame is None:
                    continue
                yield frame
                if frame is TERMINAL:
                    return

        # Flush whatever the upstream left without a trailing newline.
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            line, self._buffer = self._buffer, ""
            frame = self._parse_line(line)
            if frame is not None and frame is not TERMINAL:
                yield frame
        yield TERMINAL

    @staticmethod
    def _parse_line(line: str) -> StreamFrame | None:
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith("data:"):
            return None

        data = line[len("data:") :].strip()
        if not data:
            return None
        if data == DONE_SENTINEL:
            return TERMINAL

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.warning("Dropping malformed upstream frame: %s (%s)", data[:200], exc)
            return None
        if not isinstance(payload, dict):
            logger.debug("Dropping non-object upstream frame: %s", data[:200])
            return None
        return UpstreamChunk(raw=data, payload=payload)


__all__ = ["DONE_SENTINEL", "StreamRelay"]

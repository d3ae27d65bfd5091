"""Streaming relay and tool-call splicing for the chat endpoints."""

from .accumulator import ToolCallAccumulator
from .pipeline import RelayPipeline
from .relay import StreamRelay
from .types import (
    TERMINAL,
    CompletedToolCall,
    ContentDelta,
    Terminal,
    ToolCallDelta,
    ToolExecutor,
    ToolOutcome,
    UpstreamChunk,
)
from .writer import OutgoingFrameWriter, encode_frame

__all__ = [
    "CompletedToolCall",
    "ContentDelta",
    "OutgoingFrameWriter",
    "RelayPipeline",
    "StreamRelay",
    "TERMINAL",
    "Terminal",
    "ToolCallAccumulator",
    "ToolCallDelta",
    "ToolExecutor",
    "ToolOutcome",
    "UpstreamChunk",
    "encode_frame",
]

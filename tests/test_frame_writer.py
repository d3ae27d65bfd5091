"""Wire-format tests for downstream SSE frames."""

from __future__ import annotations

import json

from laiive.streaming import OutgoingFrameWriter, encode_frame
from laiive.streaming.writer import LEGACY_EVENT_MARKER


def test_content_frame_wire_format():
    frame = OutgoingFrameWriter().content("Caffè 🎵")

    assert encode_frame(frame) == (
        'data: {"choices": [{"delta": {"content": "Caffè 🎵"}}]}\n\n'
    )


def test_relay_frame_is_verbatim():
    raw = '{"id":"gen-1","choices":[{"delta":{"content":"hi"}}]}'

    assert encode_frame(OutgoingFrameWriter().relay(raw)) == f"data: {raw}\n\n"


def test_done_frame():
    assert encode_frame(OutgoingFrameWriter().done()) == "data: [DONE]\n\n"


def test_extracted_event_is_a_typed_event():
    details = {"name": "Jazz Night", "city": "Milan"}

    encoded = encode_frame(OutgoingFrameWriter().extracted_event(details))

    assert encoded.startswith("event: extracted_event\n")
    data_line = encoded.splitlines()[1]
    assert json.loads(data_line[len("data: ") :]) == details
    assert encoded.endswith("\n\n")


def test_legacy_sentinel_wraps_event_in_content():
    details = {"name": "Jazz Night"}

    encoded = encode_frame(
        OutgoingFrameWriter(legacy_event_sentinel=True).extracted_event(details)
    )

    payload = json.loads(encoded[len("data: ") :])
    content = payload["choices"][0]["delta"]["content"]
    assert content.startswith(LEGACY_EVENT_MARKER)
    assert content.endswith(LEGACY_EVENT_MARKER)
    assert json.loads(content[len(LEGACY_EVENT_MARKER) : -len(LEGACY_EVENT_MARKER)]) == details

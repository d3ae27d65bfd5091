from __future__ import annotations

import base64

import httpx
import pytest
from pydantic import SecretStr

from laiive.config import Settings
from laiive.services.transcription import Transcriber, TranscriptionError

AUDIO = base64.b64encode(b"fake-webm-bytes").decode()


def make_transcriber(handler, api_key: str | None = "sk-test") -> Transcriber:
    settings = Settings(
        _env_file=None,
        ai_gateway_api_key=SecretStr("test"),
        openai_api_key=SecretStr(api_key) if api_key else None,
        openai_base_url="https://stt.example.com/v1",
    )
    return Transcriber(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


@pytest.mark.asyncio
async def test_transcribe_posts_multipart_audio():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content
        return httpx.Response(200, json={"text": "Jazz night tomorrow at nine"})

    text = await make_transcriber(handler).transcribe(AUDIO)

    assert text == "Jazz night tomorrow at nine"
    assert seen["url"] == "https://stt.example.com/v1/audio/transcriptions"
    assert seen["auth"] == "Bearer sk-test"
    assert b'filename="audio.webm"' in seen["body"]
    assert b"whisper-1" in seen["body"]
    assert b"fake-webm-bytes" in seen["body"]


@pytest.mark.asyncio
async def test_data_url_prefix_is_accepted():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        return httpx.Response(200, json={"text": "ok"})

    await make_transcriber(handler).transcribe(f"data:audio/webm;base64,{AUDIO}")

    assert b"fake-webm-bytes" in seen["body"]


@pytest.mark.asyncio
async def test_missing_api_key_is_unavailable():
    transcriber = make_transcriber(lambda request: httpx.Response(200), api_key=None)

    with pytest.raises(TranscriptionError) as excinfo:
        await transcriber.transcribe(AUDIO)

    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_invalid_base64_is_rejected():
    transcriber = make_transcriber(lambda request: httpx.Response(200, json={"text": ""}))

    with pytest.raises(TranscriptionError) as excinfo:
        await transcriber.transcribe("***not base64***")

    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_upstream_failure():
    transcriber = make_transcriber(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(TranscriptionError) as excinfo:
        await transcriber.transcribe(AUDIO)

    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Transcription failed: 500"


@pytest.mark.asyncio
async def test_non_json_reply_is_a_bad_gateway():
    transcriber = make_transcriber(
        lambda request: httpx.Response(200, text="<html>proxy error</html>")
    )

    with pytest.raises(TranscriptionError) as excinfo:
        await transcriber.transcribe(AUDIO)

    assert excinfo.value.status_code == 502
    assert excinfo.value.detail == "Transcription service returned an invalid response"

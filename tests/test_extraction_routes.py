"""Router tests for extraction and transcription endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from laiive.app import install_error_handlers
from laiive.config import Settings
from laiive.gateway import GatewayError
from laiive.rate_limit import RATE_LIMIT_MESSAGE, RateLimiter
from laiive.routers.extraction import router
from laiive.services.extraction import ExtractionError
from laiive.services.page_fetch import PageFetchError
from laiive.services.transcription import TranscriptionError

DETAILS = {"name": "Jazz Night", "venue": "Blue Note", "city": "Milan", "event_date": "2025-06-01T21:00:00"}


class FakeExtractor:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, Any]] = []

    async def _result(self, kind: str, value: Any) -> dict[str, Any]:
        self.calls.append((kind, value))
        if self.error is not None:
            raise self.error
        return dict(DETAILS)

    async def from_image(self, image_base64: str):
        return await self._result("image", image_base64)

    async def from_text(self, text: str):
        return await self._result("text", text)

    async def from_url(self, url: str, language: str | None = None):
        return await self._result("url", (url, language))


class FakeTranscriber:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    async def transcribe(self, audio_base64: str) -> str:
        if self.error is not None:
            raise self.error
        return "Jazz night tomorrow"


def make_client(
    extractor: FakeExtractor | None = None,
    transcriber: FakeTranscriber | None = None,
    rate_limiters: dict[str, RateLimiter] | None = None,
    **overrides: Any,
) -> TestClient:
    app = FastAPI()
    install_error_handlers(app)
    app.state.settings = Settings(
        _env_file=None, ai_gateway_api_key=SecretStr("test"), **overrides
    )
    app.state.extractor = extractor or FakeExtractor()
    app.state.transcriber = transcriber or FakeTranscriber()
    app.state.rate_limiters = rate_limiters or {}
    app.include_router(router)
    return TestClient(app)


def test_extract_from_image():
    extractor = FakeExtractor()
    client = make_client(extractor)

    response = client.post("/functions/v1/extract-event-details", json={"imageBase64": "aGVsbG8="})

    assert response.status_code == 200
    assert response.json() == {"success": True, "eventDetails": DETAILS}
    assert extractor.calls == [("image", "aGVsbG8=")]


def test_extract_from_image_validation():
    client = make_client(max_image_base64_length=4)

    missing = client.post("/functions/v1/extract-event-details", json={})
    too_big = client.post("/functions/v1/extract-event-details", json={"imageBase64": "aGVsbG8="})

    assert missing.status_code == 400
    assert missing.json() == {"success": False, "error": "Image data is required"}
    assert too_big.status_code == 400
    assert too_big.json() == {"success": False, "error": "Image too large. Maximum size is 10MB."}


def test_extract_from_text():
    client = make_client()

    response = client.post("/functions/v1/extract-event-from-text", json={"text": "Jazz at Blue Note"})

    assert response.json() == {"success": True, "eventDetails": DETAILS}


def test_extract_from_text_limits():
    client = make_client(max_text_length=5)

    blank = client.post("/functions/v1/extract-event-from-text", json={"text": "   "})
    too_long = client.post("/functions/v1/extract-event-from-text", json={"text": "abcdef"})

    assert blank.json() == {"success": False, "error": "Text is required"}
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "Text too long. Maximum length is 5 characters."


def test_gateway_errors_keep_success_flag():
    client = make_client(FakeExtractor(GatewayError(402, "no credits")))

    response = client.post("/functions/v1/extract-event-from-text", json={"text": "Jazz"})

    assert response.status_code == 402
    assert response.json() == {
        "success": False,
        "error": "Payment required, please add funds to your AI gateway workspace.",
    }


def test_extract_from_url():
    extractor = FakeExtractor()
    client = make_client(extractor)

    response = client.post(
        "/functions/v1/extract-event-from-url",
        json={"url": "https://www.bluenote.it/jazz-night", "language": "it"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "eventData": DETAILS}
    assert extractor.calls == [("url", ("https://www.bluenote.it/jazz-night", "it"))]


def test_extract_from_url_blocks_internal_targets():
    extractor = FakeExtractor()
    client = make_client(extractor)

    for url, reason in [
        ("http://169.254.169.254/latest/meta-data", "URL not allowed"),
        ("file:///etc/passwd", "Invalid URL format"),
        ("", "URL is required"),
    ]:
        response = client.post("/functions/v1/extract-event-from-url", json={"url": url})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": reason}

    assert extractor.calls == []


def test_extract_from_url_fetch_and_parse_failures():
    fetch_failure = make_client(FakeExtractor(PageFetchError("Could not fetch the webpage")))
    parse_failure = make_client(FakeExtractor(ExtractionError("Could not parse event details")))
    body = {"url": "https://www.bluenote.it/jazz-night"}

    fetched = fetch_failure.post("/functions/v1/extract-event-from-url", json=body)
    parsed = parse_failure.post("/functions/v1/extract-event-from-url", json=body)

    assert fetched.status_code == 400
    assert fetched.json()["error"] == "Could not fetch the webpage"
    assert parsed.status_code == 500
    assert parsed.json() == {"success": False, "error": "Could not parse event details"}


def test_extraction_rate_limit_keeps_success_flag():
    client = make_client(rate_limiters={"extract_text": RateLimiter(1, 60)})

    client.post("/functions/v1/extract-event-from-text", json={"text": "Jazz"})
    response = client.post("/functions/v1/extract-event-from-text", json={"text": "Jazz"})

    assert response.status_code == 429
    assert response.json() == {"success": False, "error": RATE_LIMIT_MESSAGE}


def test_transcribe_audio():
    client = make_client(max_audio_base64_length=8)

    ok = client.post("/functions/v1/transcribe-audio", json={"audio": "aGVsbG8="})
    missing = client.post("/functions/v1/transcribe-audio", json={})
    too_big = client.post("/functions/v1/transcribe-audio", json={"audio": "aGVsbG8gd29ybGQ="})

    assert ok.json() == {"text": "Jazz night tomorrow"}
    assert missing.status_code == 400
    assert too_big.json() == {"error": "Audio file too large"}


def test_transcribe_audio_failure():
    client = make_client(
        transcriber=FakeTranscriber(TranscriptionError(503, "Transcription is not configured"))
    )

    response = client.post("/functions/v1/transcribe-audio", json={"audio": "aGVsbG8="})

    assert response.status_code == 503
    assert response.json() == {"error": "Transcription is not configured"}

"""Routes that turn posters, free text, web pages and audio into event data."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..config import Settings
from ..gateway import GatewayError, public_error
from ..rate_limit import rate_limited
from ..schemas.events import (
    ExtractImageRequest,
    ExtractTextRequest,
    ExtractUrlRequest,
    TranscribeRequest,
)
from ..services.extraction import EventExtractor, ExtractionError
from ..services.page_fetch import PageFetchError
from ..services.transcription import Transcriber, TranscriptionError
from ..url_guard import UrlRejected, validate_public_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["extraction"])

_FAILURE = {"success": False}


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={**_FAILURE, "error": message})


def _gateway_failure(exc: GatewayError) -> JSONResponse:
    status_code, message = public_error(exc)
    return _failure(status_code, message)


@router.post(
    "/extract-event-details",
    dependencies=[Depends(rate_limited("extract_image", extra=_FAILURE))],
)
async def extract_event_details(payload: ExtractImageRequest, request: Request):
    """Read event details off a poster or flyer photo."""

    settings: Settings = request.app.state.settings
    extractor: EventExtractor = request.app.state.extractor

    if not payload.image_base64:
        return _failure(status.HTTP_400_BAD_REQUEST, "Image data is required")
    if len(payload.image_base64) > settings.max_image_base64_length:
        return _failure(status.HTTP_400_BAD_REQUEST, "Image too large. Maximum size is 10MB.")

    try:
        details = await extractor.from_image(payload.image_base64)
    except GatewayError as exc:
        return _gateway_failure(exc)
    return {"success": True, "eventDetails": details}


@router.post(
    "/extract-event-from-text",
    dependencies=[Depends(rate_limited("extract_text", extra=_FAILURE))],
)
async def extract_event_from_text(payload: ExtractTextRequest, request: Request):
    """Read event details out of a free-text description in any language."""

    settings: Settings = request.app.state.settings
    extractor: EventExtractor = request.app.state.extractor

    if not payload.text or not payload.text.strip():
        return _failure(status.HTTP_400_BAD_REQUEST, "Text is required")
    if len(payload.text) > settings.max_text_length:
        return _failure(
            status.HTTP_400_BAD_REQUEST,
            f"Text too long. Maximum length is {settings.max_text_length:,} characters.",
        )

    try:
        details = await extractor.from_text(payload.text)
    except GatewayError as exc:
        return _gateway_failure(exc)
    return {"success": True, "eventDetails": details}


@router.post(
    "/extract-event-from-url",
    dependencies=[Depends(rate_limited("extract_url", extra=_FAILURE))],
)
async def extract_event_from_url(payload: ExtractUrlRequest, request: Request):
    """Fetch a public event page and extract its details."""

    settings: Settings = request.app.state.settings
    extractor: EventExtractor = request.app.state.extractor

    try:
        url = validate_public_url(payload.url, max_length=settings.max_url_length)
    except UrlRejected as exc:
        logger.warning("Rejected URL %r: %s", payload.url, exc.reason)
        return _failure(status.HTTP_400_BAD_REQUEST, exc.reason)

    logger.info("Extracting event from URL: %s", url)
    try:
        details = await extractor.from_url(url, payload.language)
    except UrlRejected as exc:
        logger.warning("Redirect from %s rejected: %s", url, exc.reason)
        return _failure(status.HTTP_400_BAD_REQUEST, exc.reason)
    except PageFetchError as exc:
        return _failure(status.HTTP_400_BAD_REQUEST, str(exc))
    except ExtractionError as exc:
        logger.error("URL extraction reply was not JSON: %s", exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except GatewayError as exc:
        return _gateway_failure(exc)
    return {"success": True, "eventData": details}


@router.post(
    "/transcribe-audio",
    dependencies=[Depends(rate_limited("transcribe"))],
)
async def transcribe_audio(payload: TranscribeRequest, request: Request):
    """Transcribe a base64 audio recording to text."""

    settings: Settings = request.app.state.settings
    transcriber: Transcriber = request.app.state.transcriber

    if not payload.audio:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "No audio data provided"},
        )
    if len(payload.audio) > settings.max_audio_base64_length:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Audio file too large"},
        )

    try:
        text = await transcriber.transcribe(payload.audio)
    except TranscriptionError as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return {"text": text}


__all__ = ["router"]

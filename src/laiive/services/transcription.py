"""Speech-to-text for promoters who describe their event out loud."""

from __future__ import annotations

import base64
import binascii
import logging

import httpx
from fastapi import status

from ..config import Settings

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def decode_audio(audio_base64: str) -> bytes:
    """Decode base64 audio, accepting data URLs as produced by browsers."""

    data = audio_base64
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TranscriptionError(
            status.HTTP_400_BAD_REQUEST, "Audio must be base64 encoded"
        ) from exc


class Transcriber:
    """Send audio to an OpenAI-compatible `/audio/transcriptions` endpoint."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client

    async def transcribe(self, audio_base64: str) -> str:
        api_key = self._settings.openai_api_key
        if api_key is None or not api_key.get_secret_value():
            raise TranscriptionError(
                status.HTTP_503_SERVICE_UNAVAILABLE, "Transcription is not configured"
            )

        audio = decode_audio(audio_base64)
        url = f"{str(self._settings.openai_base_url).rstrip('/')}/audio/transcriptions"
        headers = {"Authorization": f"Bearer {api_key.get_secret_value()}"}
        files = {"file": ("audio.webm", audio, "audio/webm")}
        data = {"model": self._settings.transcription_model}

        logger.info("Transcribing %d bytes of audio", len(audio))
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, files=files, data=data)
            else:
                async with httpx.AsyncClient(timeout=self._settings.request_timeout) as client:
                    response = await client.post(url, headers=headers, files=files, data=data)
        except httpx.HTTPError as exc:
            raise TranscriptionError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            logger.error("Transcription API error: %s %s", response.status_code, response.text)
            raise TranscriptionError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                f"Transcription failed: {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Transcription API returned a non-JSON body: %s", response.text[:200])
            raise TranscriptionError(
                status.HTTP_502_BAD_GATEWAY, "Transcription service returned an invalid response"
            ) from exc
        text = body.get("text", "") if isinstance(body, dict) else ""
        logger.info("Transcription successful (%d chars)", len(text))
        return text


__all__ = ["Transcriber", "TranscriptionError", "decode_audio"]

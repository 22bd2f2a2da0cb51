from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Protocol

import httpx

from core.config import Settings
from app.interview.errors import EmptyTranscript, ProviderTimeout, TranscriptionFailed

logger = logging.getLogger("app.services.transcription")


@dataclass(frozen=True)
class Transcription:
    transcript: str
    confidence: float
    transcription_ms: int = 0


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, mime_type: str) -> Transcription:
        ...


def _first_alternative(payload: dict) -> dict:
    channels = ((payload or {}).get("results") or {}).get("channels") or []
    if not channels:
        return {}
    alternatives = (channels[0] or {}).get("alternatives") or []
    return dict(alternatives[0] or {}) if alternatives else {}


class DeepgramTranscriber:
    """Prerecorded speech-to-text through the Deepgram REST API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._api_key = settings.deepgram_api_key
        self._model = settings.deepgram_stt_model
        self._timeout_sec = settings.transcription_timeout_sec
        self._url = f"{settings.deepgram_base_url}/v1/listen"
        self._client = client or httpx.AsyncClient()

    async def transcribe(self, audio: bytes, mime_type: str) -> Transcription:
        if not self._api_key:
            raise TranscriptionFailed(reason="DEEPGRAM_API_KEY is not configured.")

        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self._url,
                    params={"model": self._model, "smart_format": "true"},
                    headers={
                        "Authorization": f"Token {self._api_key}",
                        "Content-Type": mime_type or "audio/webm",
                    },
                    content=audio,
                ),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(reason="Transcription provider timed out.") from exc
        except httpx.HTTPError as exc:
            raise TranscriptionFailed(reason=f"Transcription request failed: {exc}") from exc
        transcription_ms = int((time.perf_counter() - started) * 1000)

        if response.status_code >= 400:
            raise TranscriptionFailed(reason=f"Deepgram request failed: {response.status_code} {response.text[:300]}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionFailed(reason="Deepgram response was not valid JSON.") from exc

        alternative = _first_alternative(payload)
        transcript = str(alternative.get("transcript") or "").strip()
        if not transcript:
            raise EmptyTranscript(reason="Transcription returned empty transcript.")

        try:
            confidence = float(alternative.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0

        logger.info("transcription complete | ms=%s confidence=%.3f", transcription_ms, confidence)
        return Transcription(transcript=transcript, confidence=confidence, transcription_ms=transcription_ms)

    async def aclose(self) -> None:
        await self._client.aclose()

from __future__ import annotations

import asyncio
import logging

import httpx

from core.config import Settings
from app.interview.errors import ProviderTimeout, SpeechSynthesisFailed

logger = logging.getLogger("app.services.tts")


class DeepgramSpeechSynthesizer:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._api_key = settings.deepgram_api_key
        self._model = settings.deepgram_tts_model
        self._timeout_sec = settings.tts_timeout_sec
        self._url = f"{settings.deepgram_base_url}/v1/speak"
        self._client = client or httpx.AsyncClient()

    async def synthesize(self, text: str) -> bytes:
        if not self._api_key:
            raise SpeechSynthesisFailed(reason="DEEPGRAM_API_KEY is not configured.")

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self._url,
                    params={"model": self._model},
                    headers={
                        "Authorization": f"Token {self._api_key}",
                        "Content-Type": "application/json",
                        "Accept": "audio/mpeg",
                    },
                    json={"text": text},
                ),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout("Question audio generation failed.", reason="TTS provider timed out.") from exc
        except httpx.HTTPError as exc:
            raise SpeechSynthesisFailed(reason=f"TTS request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SpeechSynthesisFailed(reason=f"Deepgram TTS request failed: {response.status_code} {response.text[:300]}")
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()

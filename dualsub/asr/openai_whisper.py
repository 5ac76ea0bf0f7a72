from __future__ import annotations

import logging
from typing import Optional

import httpx

from dualsub.audio.pcm import pcm16_wav_bytes
from dualsub.errors import CredentialMissing, PermissionDenied, RecognitionFailed
from dualsub.nlp.words import clean_text

logger = logging.getLogger(__name__)

TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"


class OpenAIWhisperTranscriber:
    name = "openai_whisper"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "whisper-1",
        language: str = "en",
        timeout: float = 30.0,
        url: str = TRANSCRIPTIONS_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.language = language
        self.timeout = float(timeout)
        self.url = url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if not self.api_key:
            raise CredentialMissing(self.name)
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def transcribe(self, pcm16: bytes, sample_rate: int, channels: int) -> str:
        if self._client is None:
            raise RecognitionFailed("transcriber is not open")
        files = {"file": ("audio.wav", pcm16_wav_bytes(pcm16, sample_rate, channels), "audio/wav")}
        data = {"model": self.model, "language": self.language, "response_format": "json"}
        try:
            resp = await self._client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=data,
                files=files,
            )
        except httpx.TimeoutException as exc:
            raise RecognitionFailed(f"Whisper request timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise RecognitionFailed(f"Whisper request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise PermissionDenied(f"Whisper API rejected the API key (HTTP {resp.status_code})")
        if resp.status_code >= 400:
            raise RecognitionFailed(f"Whisper API HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            text = resp.json()["text"]
        except (ValueError, KeyError, TypeError) as exc:
            raise RecognitionFailed("Whisper API returned an unexpected payload") from exc
        return clean_text(text)

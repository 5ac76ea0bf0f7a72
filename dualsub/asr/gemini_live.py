from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, AsyncIterator, Callable, Optional

import websockets
from websockets.exceptions import InvalidStatus, WebSocketException

from dualsub.contracts import TranscriptResult
from dualsub.errors import ConnectionFailed, CredentialMissing, PermissionDenied

logger = logging.getLogger(__name__)

LIVE_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
DEFAULT_LIVE_MODEL = "gemini-2.0-flash-live-001"

_TRANSCRIBE_INSTRUCTION = (
    "You are a speech transcription assistant. Transcribe the {language} audio input "
    "exactly as spoken. Output only the transcription text, without commentary, "
    "translation or formatting."
)


def build_setup_message(model: str, language: str = "English") -> dict[str, Any]:
    return {
        "setup": {
            "model": f"models/{model}",
            "generation_config": {"response_modalities": ["TEXT"]},
            "system_instruction": {
                "parts": [{"text": _TRANSCRIBE_INSTRUCTION.format(language=language)}],
            },
        }
    }


def build_audio_message(pcm16: bytes, sample_rate: int) -> dict[str, Any]:
    return {
        "realtime_input": {
            "media_chunks": [
                {
                    "mime_type": f"audio/pcm;rate={sample_rate}",
                    "data": base64.b64encode(pcm16).decode("ascii"),
                }
            ]
        }
    }


class GeminiLiveTransport:
    """
    Gemini Live bidirectional WebSocket.

    Model turn text is accumulated and surfaced as partial results for the
    current utterance; ``turnComplete`` closes the utterance with a final.
    """

    name = "gemini_live"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_LIVE_MODEL,
        sample_rate: int = 16000,
        language: str = "English",
        open_timeout: float = 10.0,
        endpoint: str = LIVE_ENDPOINT,
        connector: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.sample_rate = int(sample_rate)
        self.language = language
        self.open_timeout = float(open_timeout)
        self.endpoint = endpoint
        self._connector = connector
        self._ws = None
        self._turn_text = ""

    async def connect(self) -> None:
        if not self.api_key:
            raise CredentialMissing(self.name)
        url = f"{self.endpoint}?key={self.api_key}"
        try:
            ws = await self._connector(url, open_timeout=self.open_timeout, max_size=None)
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise PermissionDenied(f"Gemini Live rejected the API key (HTTP {status})") from exc
            raise ConnectionFailed(f"Gemini Live handshake failed (HTTP {status})") from exc
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise ConnectionFailed(f"Gemini Live connection failed: {exc}") from exc

        try:
            await ws.send(json.dumps(build_setup_message(self.model, self.language)))
            # The server acknowledges setup before accepting audio.
            await asyncio.wait_for(ws.recv(), timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            await ws.close()
            raise ConnectionFailed(f"Gemini Live setup failed: {exc}") from exc

        self._ws = ws
        self._turn_text = ""
        logger.info("gemini_live_connected", extra={"model": self.model})

    async def send_audio(self, pcm16: bytes) -> None:
        if self._ws is None:
            raise ConnectionFailed("Gemini Live stream is not connected")
        await self._ws.send(json.dumps(build_audio_message(pcm16, self.sample_rate)))

    async def results(self) -> AsyncIterator[TranscriptResult]:
        if self._ws is None:
            raise ConnectionFailed("Gemini Live stream is not connected")
        async for raw in self._ws:
            for result in self.parse_message(raw):
                yield result

    def parse_message(self, raw: str | bytes) -> list[TranscriptResult]:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("gemini_live_bad_message", extra={"size": len(raw)})
            return []
        server = payload.get("serverContent") if isinstance(payload, dict) else None
        if not isinstance(server, dict):
            return []

        out: list[TranscriptResult] = []
        turn = server.get("modelTurn") or {}
        for part in turn.get("parts") or []:
            text = part.get("text") if isinstance(part, dict) else None
            if text:
                self._turn_text += text
                out.append(TranscriptResult(self._turn_text, is_final=False))
        if server.get("turnComplete"):
            if self._turn_text.strip():
                out.append(TranscriptResult(self._turn_text, is_final=True))
            self._turn_text = ""
        return out

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        self._turn_text = ""
        if ws is not None:
            await ws.close()

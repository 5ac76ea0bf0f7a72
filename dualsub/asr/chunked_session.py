from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

from dualsub.asr.stream_base import Delivery, SpeechSession
from dualsub.audio.pcm import pcm16_duration
from dualsub.contracts import AudioFrame, SpeechEvent
from dualsub.errors import RecognitionFailed, SpeechError
from dualsub.nlp.words import clean_text

logger = logging.getLogger(__name__)

MIN_CHUNK_SEC = 0.5


class ChunkTranscriber(Protocol):
    name: str

    async def open(self) -> None:
        ...

    async def transcribe(self, pcm16: bytes, sample_rate: int, channels: int) -> str:
        ...

    async def close(self) -> None:
        ...


class ChunkedSpeechSession(SpeechSession):
    """
    Request/response recognition over fixed audio windows.

    Every ``chunk_sec`` the buffered audio is sent as one request. Windows
    shorter than ``min_chunk_sec`` are dropped and a window is skipped while
    the previous request is still running, so the audio keeps accumulating
    for the next one. Only Final events are produced.
    """

    delivery = Delivery.UTTERANCE
    emits_partials = False

    def __init__(
        self,
        transcriber: ChunkTranscriber,
        *,
        chunk_sec: float = 4.0,
        min_chunk_sec: float = MIN_CHUNK_SEC,
    ) -> None:
        super().__init__()
        self.transcriber = transcriber
        self.name = transcriber.name
        self.chunk_sec = max(MIN_CHUNK_SEC, float(chunk_sec))
        self.min_chunk_sec = max(0.0, float(min_chunk_sec))
        self._parts: List[bytes] = []
        self._sample_rate = 16000
        self._channels = 1
        self._inflight: Optional[asyncio.Task] = None

    async def _open(self) -> None:
        await self.transcriber.open()
        self._spawn(self._window_loop(), "window")

    async def _close(self) -> None:
        self._parts = []
        await self.transcriber.close()

    def _accept(self, frame: AudioFrame) -> None:
        self._parts.append(frame.pcm16)
        self._sample_rate = frame.sample_rate
        self._channels = frame.channels

    async def _before_stop(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            await asyncio.gather(self._inflight, return_exceptions=True)
        task = self.flush_window(reason="stop")
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _window_loop(self) -> None:
        while True:
            await asyncio.sleep(self.chunk_sec)
            self.flush_window()

    def flush_window(self, *, reason: str = "window") -> Optional[asyncio.Task]:
        """Start one transcription request for the buffered audio, if allowed."""
        if self._inflight is not None and not self._inflight.done():
            logger.debug("chunk_skipped_busy", extra={"provider": self.name, "reason": reason})
            return None
        if not self._parts:
            return None
        pcm16 = b"".join(self._parts)
        self._parts = []
        duration = pcm16_duration(pcm16, self._sample_rate, self._channels)
        if duration < self.min_chunk_sec:
            logger.debug(
                "chunk_too_short",
                extra={"provider": self.name, "duration_sec": round(duration, 3), "reason": reason},
            )
            return None
        self._inflight = self._spawn(
            self._transcribe(pcm16, self._sample_rate, self._channels, duration),
            "transcribe",
        )
        return self._inflight

    async def _transcribe(self, pcm16: bytes, sample_rate: int, channels: int, duration: float) -> None:
        logger.info("chunk_request", extra={"provider": self.name, "duration_sec": round(duration, 3)})
        try:
            text = await self.transcriber.transcribe(pcm16, sample_rate, channels)
        except SpeechError as exc:
            if exc.fatal:
                await self._fail(exc)
                return
            logger.warning("chunk_failed", extra={"provider": self.name, "error": str(exc)})
            self._emit(SpeechEvent.failure(exc))
            return
        except Exception as exc:
            logger.exception("chunk_failed", extra={"provider": self.name})
            self._emit(SpeechEvent.failure(RecognitionFailed(str(exc))))
            return

        text = clean_text(text)
        if text:
            self._emit(SpeechEvent.final(text))

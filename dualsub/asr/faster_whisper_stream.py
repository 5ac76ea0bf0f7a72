from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List

import numpy as np

from dualsub.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from dualsub.audio.pcm import pcm16_duration
from dualsub.contracts import TranscriptResult
from dualsub.errors import ConnectionFailed, RecognitionFailed

logger = logging.getLogger(__name__)


def _pcm16_rms(pcm16: bytes) -> float:
    if not pcm16:
        return 0.0
    samples = np.frombuffer(pcm16, dtype="<i2").astype(np.float64)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples * samples)))


class RollingWhisperRecognizer:
    """
    Cumulative recognizer built on faster-whisper.

    Every ``interval`` seconds the whole audio received since begin() is
    transcribed again, so each result covers everything heard in this
    recognition. After end() one last pass runs and is reported as final.
    """

    def __init__(
        self,
        transcriber: FasterWhisperPCM16Transcriber,
        *,
        sample_rate: int = 16000,
        channels: int = 1,
        interval: float = 1.0,
        min_audio_sec: float = 0.5,
        min_rms: float = 250.0,
    ) -> None:
        self.transcriber = transcriber
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.interval = float(interval)
        self.min_audio_sec = float(min_audio_sec)
        self.min_rms = float(min_rms)
        self._parts: List[bytes] = []
        self._dirty = False
        self._heard_speech = False
        self._ended = asyncio.Event()

    async def begin(self) -> None:
        try:
            await asyncio.to_thread(self.transcriber.load)
        except Exception as exc:
            raise ConnectionFailed(f"faster-whisper model '{self.transcriber.model_size}' failed to load: {exc}") from exc
        self._parts = []
        self._dirty = False
        self._heard_speech = False
        self._ended.clear()

    def append(self, pcm16: bytes) -> None:
        if self._ended.is_set():
            return
        self._parts.append(pcm16)
        self._dirty = True
        # Energy gate: near-silence alone makes whisper hallucinate.
        if not self._heard_speech and _pcm16_rms(pcm16) >= self.min_rms:
            self._heard_speech = True

    async def end(self) -> None:
        self._ended.set()

    async def _pass(self) -> str:
        self._dirty = False
        pcm16 = b"".join(self._parts)
        if not self._heard_speech:
            return ""
        if pcm16_duration(pcm16, self.sample_rate, self.channels) < self.min_audio_sec:
            return ""
        try:
            return await asyncio.to_thread(
                self.transcriber.transcribe_text, pcm16, self.sample_rate, self.channels
            )
        except Exception as exc:
            raise RecognitionFailed(f"faster-whisper transcription failed: {exc}") from exc

    async def results(self) -> AsyncIterator[TranscriptResult]:
        while not self._ended.is_set():
            try:
                await asyncio.wait_for(self._ended.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._ended.is_set() or not self._dirty:
                continue
            text = await self._pass()
            if text:
                yield TranscriptResult(text, is_final=False)

        text = await self._pass()
        if text:
            yield TranscriptResult(text, is_final=True)

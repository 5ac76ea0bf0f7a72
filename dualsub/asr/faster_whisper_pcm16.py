from __future__ import annotations

import os
import tempfile
from typing import List, Optional

from dualsub.audio.pcm import pcm16_to_float, pcm16_wav_bytes

WHISPER_SAMPLE_RATE = 16000


class FasterWhisperPCM16Transcriber:
    """Blocking faster-whisper wrapper; callers run it in a worker thread."""

    def __init__(
        self,
        *,
        model_size: str = "tiny",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = "en",
        beam_size: int = 1,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model = None

    def load(self) -> None:
        self._get_model()

    def _get_model(self):
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type,
            )
        return self._model

    def transcribe_segments(self, pcm16: bytes, sample_rate: int, channels: int) -> List[str]:
        if not pcm16:
            return []

        model = self._get_model()
        options = dict(
            language=self.language,
            beam_size=self.beam_size,
            vad_filter=False,
            condition_on_previous_text=False,
        )
        if sample_rate == WHISPER_SAMPLE_RATE and channels == 1:
            segments, _info = model.transcribe(pcm16_to_float(pcm16), **options)
            return [s.text.strip() for s in segments if (s.text or "").strip()]

        # Let faster-whisper decode and resample anything else from a WAV file.
        fd, tmp_path = tempfile.mkstemp(suffix=".wav", prefix="dualsub_utter_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(pcm16_wav_bytes(pcm16, sample_rate, channels))
            segments, _info = model.transcribe(tmp_path, **options)
            return [s.text.strip() for s in segments if (s.text or "").strip()]
        finally:
            try:
                os.remove(tmp_path)
            except OSError:
                pass

    def transcribe_text(self, pcm16: bytes, sample_rate: int, channels: int) -> str:
        return " ".join(self.transcribe_segments(pcm16, sample_rate, channels))

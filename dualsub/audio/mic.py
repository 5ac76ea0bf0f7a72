from __future__ import annotations

import logging
from typing import Callable, Optional

from dualsub.audio.pcm import float_to_pcm16
from dualsub.contracts import AudioFrame
from dualsub.errors import FrameSourceError

logger = logging.getLogger(__name__)


def _sounddevice():
    try:
        import sounddevice as sd
    except ImportError as e:
        raise FrameSourceError(
            "sounddevice is not installed. Install with: python -m pip install sounddevice"
        ) from e
    return sd


class SoundDeviceFrameSource:
    """
    Live microphone source using the `sounddevice` package (PortAudio).
    PortAudio calls back on its own thread with float32 blocks; each block is
    pushed to ``on_frame`` as a mono PCM16 frame.
    """

    def __init__(
        self,
        *,
        frame_seconds: float = 0.1,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[int] = None,
    ) -> None:
        if frame_seconds <= 0:
            raise ValueError("frame_seconds must be > 0")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if channels not in (1, 2):
            raise ValueError("channels must be 1 or 2 (for now)")

        self.frame_seconds = float(frame_seconds)
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.device = device
        self.on_frame: Optional[Callable[[AudioFrame], None]] = None
        self._stream = None
        self._frames_seen = 0
        self.overflows = 0

    @staticmethod
    def list_devices() -> str:
        return str(_sounddevice().query_devices())

    def _callback(self, indata, frames, time_info, status) -> None:
        if status and status.input_overflow:
            # PortAudio dropped frames; keep going.
            self.overflows += 1
        start_time = self._frames_seen / self.sample_rate
        self._frames_seen += frames
        handler = self.on_frame
        if handler is None:
            return
        handler(
            AudioFrame(
                pcm16=float_to_pcm16(indata[:, 0]),
                sample_rate=self.sample_rate,
                channels=1,
                start_time=start_time,
                duration=frames / self.sample_rate,
            )
        )

    def start_capture(self) -> None:
        if self._stream is not None:
            return
        sd = _sounddevice()
        blocksize = max(1, int(round(self.frame_seconds * self.sample_rate)))
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                blocksize=blocksize,
                callback=self._callback,
            )
            stream.start()
        except Exception as e:
            raise FrameSourceError(
                "Failed to open microphone stream. "
                "Try --list-devices and select a device id with --device."
            ) from e
        self._frames_seen = 0
        self._stream = stream
        logger.info(
            "mic_started",
            extra={"device": self.device, "sample_rate": self.sample_rate, "channels": self.channels},
        )

    def stop_capture(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        logger.info("mic_stopped", extra={"overflows": self.overflows})

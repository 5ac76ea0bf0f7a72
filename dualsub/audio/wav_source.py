from __future__ import annotations

import threading
import time
import wave
from pathlib import Path
from typing import Callable, Optional

from dualsub.audio.pcm import downmix_pcm16
from dualsub.contracts import AudioFrame
from dualsub.errors import FrameSourceError


class WavFileFrameSource:
    """
    Replays a PCM16 WAV file as live frames from a background thread.
    speed=1.0 paces frames in real time; 0 pushes them as fast as possible.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        frame_seconds: float = 0.1,
        speed: float = 1.0,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> None:
        if frame_seconds <= 0:
            raise ValueError("frame_seconds must be > 0")
        self.path = Path(path)
        self.frame_seconds = float(frame_seconds)
        self.speed = max(0.0, float(speed))
        self.on_finished = on_finished
        self.on_frame: Optional[Callable[[AudioFrame], None]] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self.sample_rate = 0

    def _open(self) -> wave.Wave_read:
        try:
            wf = wave.open(str(self.path), "rb")
        except (OSError, wave.Error) as e:
            raise FrameSourceError(f"Cannot open WAV file: {self.path}") from e
        if wf.getsampwidth() != 2:
            wf.close()
            raise FrameSourceError(f"WAV must be 16-bit PCM: {self.path}")
        return wf

    def start_capture(self) -> None:
        if self._thread is not None:
            return
        wf = self._open()
        self.sample_rate = wf.getframerate()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, args=(wf,), name="dualsub-wav", daemon=True)
        self._thread.start()

    def _run(self, wf: wave.Wave_read) -> None:
        channels = wf.getnchannels()
        per_frame = max(1, int(round(self.frame_seconds * self.sample_rate)))
        started = time.perf_counter()
        position = 0
        try:
            while not self._stop.is_set():
                data = wf.readframes(per_frame)
                if not data:
                    break
                n = len(data) // (2 * channels)
                start_time = position / self.sample_rate
                position += n
                if self.speed > 0:
                    # Frame is "captured" once its audio has played.
                    target = (position / self.sample_rate) / self.speed
                    delay = target - (time.perf_counter() - started)
                    if delay > 0 and self._stop.wait(delay):
                        break
                handler = self.on_frame
                if handler is not None:
                    handler(
                        AudioFrame(
                            pcm16=downmix_pcm16(data, channels),
                            sample_rate=self.sample_rate,
                            channels=1,
                            start_time=start_time,
                            duration=n / self.sample_rate,
                        )
                    )
        finally:
            wf.close()
        if not self._stop.is_set() and self.on_finished is not None:
            self.on_finished()

    def stop_capture(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

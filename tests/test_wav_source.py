from __future__ import annotations

import threading
import wave
from pathlib import Path

import pytest

from dualsub.audio.wav_source import WavFileFrameSource
from dualsub.errors import FrameSourceError


def _write_wav(path: Path, frames: bytes, *, channels: int = 1, sample_rate: int = 16000, width: int = 2) -> None:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(width)
        wf.setframerate(sample_rate)
        wf.writeframes(frames)


def test_replays_file_as_mono_frames(tmp_path: Path) -> None:
    path = tmp_path / "stereo.wav"
    # 0.25 s of stereo audio: left=1, right=2
    _write_wav(path, (b"\x01\x00\x02\x00") * 4000, channels=2)

    frames = []
    done = threading.Event()
    source = WavFileFrameSource(path, frame_seconds=0.1, speed=0, on_finished=done.set)
    source.on_frame = frames.append
    source.start_capture()
    assert done.wait(2.0)
    source.stop_capture()

    assert source.sample_rate == 16000
    assert [f.channels for f in frames] == [1, 1, 1]
    assert sum(len(f.pcm16) for f in frames) == 4000 * 2
    assert frames[0].pcm16[:4] == b"\x01\x00\x01\x00"
    assert frames[1].start_time == pytest.approx(0.1)
    assert frames[2].duration == pytest.approx(0.05)


def test_missing_file_raises_frame_source_error(tmp_path: Path) -> None:
    source = WavFileFrameSource(tmp_path / "missing.wav")
    with pytest.raises(FrameSourceError):
        source.start_capture()


def test_non_16bit_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "8bit.wav"
    _write_wav(path, b"\x80" * 1600, width=1)
    with pytest.raises(FrameSourceError):
        WavFileFrameSource(path).start_capture()

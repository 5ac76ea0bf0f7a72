from __future__ import annotations

import io
import wave

import numpy as np

from dualsub.audio.pcm import downmix_pcm16, float_to_pcm16, pcm16_duration, pcm16_to_float, pcm16_wav_bytes


def test_pcm16_duration() -> None:
    assert pcm16_duration(b"\x00\x00" * 16000, 16000, 1) == 1.0
    assert pcm16_duration(b"\x00\x00" * 8000, 16000, 2) == 0.25
    assert pcm16_duration(b"", 0, 1) == 0.0


def test_float_to_pcm16_clips() -> None:
    pcm = float_to_pcm16(np.array([0.0, 1.0, -1.0, 2.0], dtype=np.float32))
    samples = np.frombuffer(pcm, dtype="<i2").tolist()
    assert samples == [0, 32767, -32767, 32767]
    back = pcm16_to_float(pcm)
    assert back.dtype == np.float32
    assert abs(float(back[1]) - 1.0) < 1e-3


def test_downmix_keeps_first_channel() -> None:
    stereo = np.array([1, -1, 2, -2, 3, -3], dtype="<i2").tobytes()
    mono = np.frombuffer(downmix_pcm16(stereo, 2), dtype="<i2").tolist()
    assert mono == [1, 2, 3]


def test_pcm16_wav_bytes_header() -> None:
    data = pcm16_wav_bytes(b"\x01\x00" * 160, 16000, 1)
    with wave.open(io.BytesIO(data), "rb") as wf:
        assert wf.getframerate() == 16000
        assert wf.getnchannels() == 1
        assert wf.getnframes() == 160

from __future__ import annotations

import io
import wave

import numpy as np


def pcm16_duration(pcm16: bytes, sample_rate: int, channels: int) -> float:
    bytes_per_second = sample_rate * channels * 2
    if bytes_per_second <= 0:
        return 0.0
    return len(pcm16) / float(bytes_per_second)


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float32 samples in [-1.0, 1.0] to little-endian int16 bytes."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def downmix_pcm16(pcm16: bytes, channels: int) -> bytes:
    """Keep the first channel of interleaved PCM16."""
    if channels <= 1:
        return pcm16
    samples = np.frombuffer(pcm16, dtype="<i2")
    usable = len(samples) - (len(samples) % channels)
    return samples[:usable:channels].tobytes()


def pcm16_to_float(pcm16: bytes) -> np.ndarray:
    return np.frombuffer(pcm16, dtype="<i2").astype(np.float32) / 32768.0


def pcm16_wav_bytes(pcm16: bytes, sample_rate: int, channels: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16)
    return buf.getvalue()

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class AudioFrame:
    """
    Raw PCM16 audio frame pushed by a frame source (e.g., microphone).
    pcm16: little-endian signed 16-bit PCM bytes (interleaved if channels > 1).
    """
    pcm16: bytes
    sample_rate: int
    channels: int
    start_time: float  # seconds since capture start
    duration: float    # seconds


@dataclass(frozen=True)
class TranscriptResult:
    """One recognizer/transport result before it becomes a SpeechEvent."""
    text: str
    is_final: bool = False


class SpeechEventKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


@dataclass(frozen=True)
class SpeechEvent:
    kind: SpeechEventKind
    text: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def partial(cls, text: str) -> "SpeechEvent":
        return cls(kind=SpeechEventKind.PARTIAL, text=text)

    @classmethod
    def final(cls, text: str) -> "SpeechEvent":
        return cls(kind=SpeechEventKind.FINAL, text=text)

    @classmethod
    def failure(cls, error: BaseException) -> "SpeechEvent":
        return cls(kind=SpeechEventKind.ERROR, error=error)


@dataclass(frozen=True)
class TranslationContextPair:
    source_text: str
    translation_text: str


class TranslationState(str, Enum):
    PENDING = "pending"
    QUICK = "quick"
    REFINED = "refined"


@dataclass
class TranscriptEntry:
    original_text: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    quick_translation: Optional[str] = None
    # Source text that produced quick_translation (staleness checks).
    quick_translation_source_text: Optional[str] = None
    context_translation: Optional[str] = None
    finalized: bool = False
    created_at: float = field(default_factory=time.time)
    translation_error: Optional[str] = None

    @property
    def display_translation(self) -> Optional[str]:
        return self.context_translation or self.quick_translation

    @property
    def translation_state(self) -> TranslationState:
        if self.context_translation is not None:
            return TranslationState.REFINED
        if self.quick_translation is not None:
            return TranslationState.QUICK
        return TranslationState.PENDING

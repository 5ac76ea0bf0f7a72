from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Sequence

from dualsub.contracts import TranslationContextPair


class Translator(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def translate(
        self,
        text: str,
        context: Sequence[TranslationContextPair] = (),
        timeout: float = 5.0,
    ) -> str:
        """Raises AuthMissing, NetworkError, TranslationTimeout or InvalidResponse."""

    async def aclose(self) -> None:
        """Release network clients or models."""

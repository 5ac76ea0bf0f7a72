from __future__ import annotations
from typing import Sequence

from .base import Translator
from dualsub.contracts import TranslationContextPair


class StubTranslator(Translator):
    def __init__(self, prefix: str = "[stub]") -> None:
        self.prefix = prefix

    @property
    def name(self) -> str:
        return "stub"

    async def translate(
        self,
        text: str,
        context: Sequence[TranslationContextPair] = (),
        timeout: float = 5.0,
    ) -> str:
        # Deterministic, test-friendly
        return f"{self.prefix} {text}"

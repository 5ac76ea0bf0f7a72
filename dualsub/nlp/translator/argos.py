from __future__ import annotations
import asyncio
from typing import Sequence

from .base import Translator
from dualsub.contracts import TranslationContextPair
from dualsub.errors import InvalidResponse, NetworkError, TranslationError, TranslationTimeout


class ArgosTranslator(Translator):
    """Offline translation. Context pairs are not used."""

    def __init__(self, from_code: str = "en", to_code: str = "ko", auto_install: bool = True):
        self.from_code = from_code
        self.to_code = to_code
        self.auto_install = auto_install
        self._ready = False

    @property
    def name(self) -> str:
        return "argos"

    def _ensure_ready(self) -> None:
        if self._ready:
            return

        import argostranslate.package
        import argostranslate.translate

        installed = argostranslate.translate.get_installed_languages()
        have_from = any(l.code == self.from_code for l in installed)
        have_to = any(l.code == self.to_code for l in installed)

        if not (have_from and have_to):
            if not self.auto_install:
                raise InvalidResponse("Argos model not installed and auto_install=False")

            argostranslate.package.update_package_index()
            available = argostranslate.package.get_available_packages()

            pkg = None
            for p in available:
                if p.from_code == self.from_code and p.to_code == self.to_code:
                    pkg = p
                    break
            if pkg is None:
                raise InvalidResponse(f"No Argos package found for {self.from_code}->{self.to_code}")

            path = pkg.download()
            argostranslate.package.install_from_path(path)

        self._ready = True

    def translate_sync(self, text: str) -> str:
        self._ensure_ready()
        import argostranslate.translate
        return argostranslate.translate.translate(text, self.from_code, self.to_code)

    async def translate(
        self,
        text: str,
        context: Sequence[TranslationContextPair] = (),
        timeout: float = 5.0,
    ) -> str:
        try:
            out = await asyncio.wait_for(asyncio.to_thread(self.translate_sync, text), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TranslationTimeout(f"argos translation exceeded {timeout}s") from exc
        except TranslationError:
            raise
        except OSError as exc:
            # package index and model downloads
            raise NetworkError(f"argos {self.from_code}->{self.to_code} failed: {exc}") from exc
        except Exception as exc:
            raise InvalidResponse(f"argos {self.from_code}->{self.to_code} failed: {exc}") from exc
        out = (out or "").strip()
        if not out:
            raise InvalidResponse("argos returned an empty translation")
        return out

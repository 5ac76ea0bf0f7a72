from __future__ import annotations

from .base import Translator
from .argos import ArgosTranslator
from .gemini import GeminiTranslator
from .stub import StubTranslator
from dualsub.app.config import PipelineConfig, language_name


def get_translator(provider: str, config: PipelineConfig, *, mode: str = "refined") -> Translator:
    provider = (provider or "").lower().strip()

    if provider == "gemini":
        return GeminiTranslator(
            config.credential_for("gemini"),
            model=config.quick_model if mode == "quick" else config.refined_model,
            mode=mode,
            source_lang=config.source_language,
            target_lang=config.target_language,
            source_name=language_name(config.source_language),
            target_name=language_name(config.target_language),
        )
    if provider == "argos":
        return ArgosTranslator(from_code=config.source_language, to_code=config.target_language)
    if provider == "stub":
        return StubTranslator(prefix=f"[{mode}]")

    raise ValueError(f"Unknown translator provider: {provider}")


def build_translators(config: PipelineConfig) -> tuple[Translator, Translator]:
    """Quick and refined translators; a shared Argos instance when both use it."""
    quick = get_translator(config.quick_translator, config, mode="quick")
    if config.refined_translator == config.quick_translator == "argos":
        return quick, quick
    return quick, get_translator(config.refined_translator, config, mode="refined")

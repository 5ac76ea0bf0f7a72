from __future__ import annotations

import argparse
import copy
import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from platformdirs import user_config_dir

SPEECH_PROVIDERS: tuple[str, ...] = ("local_whisper", "gemini_live", "openai_whisper")
TRANSLATORS: tuple[str, ...] = ("gemini", "argos", "stub")

DEFAULTS: dict[str, Any] = {
    "list_devices": False,
    "device": None,
    "sr": 16000,
    "channels": 1,
    "frame_sec": 0.1,
    "debug": False,
    "print_console": True,
    "provider": "local_whisper",
    "model": "tiny",
    "rms_th": 250.0,
    "rolling_interval_sec": 1.0,
    "gemini_live_model": "gemini-2.0-flash-live-001",
    "whisper_api_model": "whisper-1",
    "source_language": "en",
    "target_language": "ko",
    "quick_translator": "gemini",
    "refined_translator": "gemini",
    "quick_model": "gemini-2.5-flash-lite",
    "refined_model": "gemini-3-pro-preview",
    "gemini_api_key": None,
    "openai_api_key": None,
    "silence_timeout_sec": 2.0,
    "max_words_per_entry": 20,
    "quick_min_words": 3,
    "quick_interval_sec": 0.7,
    "context_size": 10,
    "quick_timeout_sec": 2.0,
    "refined_timeout_sec": 5.0,
    "send_interval_sec": 0.25,
    "max_reconnect_attempts": 3,
    "reconnect_base_delay_sec": 1.0,
    "max_stream_sec": 290.0,
    "max_recognition_sec": 55.0,
    "chunk_sec": 4.0,
    "min_chunk_sec": 0.5,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())

GEMINI_KEY_ENV = ("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY")
OPENAI_KEY_ENV = ("OPENAI_API_KEY",)


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("DualSub", "DualSub"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in CONFIG_KEYS:
        if key in payload:
            out[key] = payload[key]
    return out


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, _known_only(defaults or DEFAULTS))
    return paths.config_path


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = copy.deepcopy(DEFAULTS)
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return merged, chosen


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Live speech transcription with quick and refined translation")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    p.add_argument("--channels", type=int, default=defaults["channels"], help="input channels")
    p.add_argument("--frame-sec", type=float, default=defaults["frame_sec"], help="mic frame size in seconds")
    p.add_argument("--debug", action="store_true", help="log debug events")
    p.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="print entries to the console as they change",
    )
    p.add_argument(
        "--provider",
        default=defaults["provider"],
        choices=list(SPEECH_PROVIDERS),
        help="speech recognition provider",
    )
    p.add_argument("--model", default=defaults["model"], help="faster-whisper model size (local_whisper)")
    p.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS level that counts as speech")
    p.add_argument(
        "--rolling-interval-sec",
        type=float,
        default=defaults["rolling_interval_sec"],
        help="local_whisper re-transcription interval",
    )
    p.add_argument("--gemini-live-model", default=defaults["gemini_live_model"], help="Gemini Live model")
    p.add_argument("--whisper-api-model", default=defaults["whisper_api_model"], help="OpenAI transcription model")
    p.add_argument("--source-language", default=defaults["source_language"], help="spoken language code")
    p.add_argument("--target-language", default=defaults["target_language"], help="translation language code")
    p.add_argument(
        "--quick-translator",
        default=defaults["quick_translator"],
        choices=list(TRANSLATORS),
        help="translator for fast provisional results",
    )
    p.add_argument(
        "--refined-translator",
        default=defaults["refined_translator"],
        choices=list(TRANSLATORS),
        help="translator for context-aware results",
    )
    p.add_argument("--quick-model", default=defaults["quick_model"], help="Gemini model for quick translation")
    p.add_argument("--refined-model", default=defaults["refined_model"], help="Gemini model for refined translation")
    p.add_argument(
        "--silence-timeout-sec",
        type=float,
        default=defaults["silence_timeout_sec"],
        help="finalize the open entry after this much silence",
    )
    p.add_argument(
        "--max-words-per-entry",
        type=int,
        default=defaults["max_words_per_entry"],
        help="split long cumulative utterances at this many words",
    )
    p.add_argument(
        "--quick-min-words",
        type=int,
        default=defaults["quick_min_words"],
        help="minimum words before a quick translation",
    )
    p.add_argument(
        "--quick-interval-sec",
        type=float,
        default=defaults["quick_interval_sec"],
        help="minimum spacing between quick translation requests",
    )
    p.add_argument("--context-size", type=int, default=defaults["context_size"], help="refined context pairs kept")
    p.add_argument("--quick-timeout-sec", type=float, default=defaults["quick_timeout_sec"])
    p.add_argument("--refined-timeout-sec", type=float, default=defaults["refined_timeout_sec"])
    p.add_argument("--send-interval-sec", type=float, default=defaults["send_interval_sec"])
    p.add_argument("--max-reconnect-attempts", type=int, default=defaults["max_reconnect_attempts"])
    p.add_argument("--reconnect-base-delay-sec", type=float, default=defaults["reconnect_base_delay_sec"])
    p.add_argument("--max-stream-sec", type=float, default=defaults["max_stream_sec"])
    p.add_argument("--max-recognition-sec", type=float, default=defaults["max_recognition_sec"])
    p.add_argument("--chunk-sec", type=float, default=defaults["chunk_sec"], help="openai_whisper request window")
    p.add_argument("--min-chunk-sec", type=float, default=defaults["min_chunk_sec"])
    p.set_defaults(
        gemini_api_key=defaults["gemini_api_key"],
        openai_api_key=defaults["openai_api_key"],
    )
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    if defaults.get("debug"):
        args.debug = True
    return args


def _first_env(names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the pipeline controller needs for one run."""

    provider: str = DEFAULTS["provider"]
    sample_rate: int = DEFAULTS["sr"]
    channels: int = DEFAULTS["channels"]
    model: str = DEFAULTS["model"]
    rms_th: float = DEFAULTS["rms_th"]
    rolling_interval_sec: float = DEFAULTS["rolling_interval_sec"]
    gemini_live_model: str = DEFAULTS["gemini_live_model"]
    whisper_api_model: str = DEFAULTS["whisper_api_model"]
    source_language: str = DEFAULTS["source_language"]
    target_language: str = DEFAULTS["target_language"]
    quick_translator: str = DEFAULTS["quick_translator"]
    refined_translator: str = DEFAULTS["refined_translator"]
    quick_model: str = DEFAULTS["quick_model"]
    refined_model: str = DEFAULTS["refined_model"]
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    silence_timeout_sec: float = DEFAULTS["silence_timeout_sec"]
    max_words_per_entry: int = DEFAULTS["max_words_per_entry"]
    quick_min_words: int = DEFAULTS["quick_min_words"]
    quick_interval_sec: float = DEFAULTS["quick_interval_sec"]
    context_size: int = DEFAULTS["context_size"]
    quick_timeout_sec: float = DEFAULTS["quick_timeout_sec"]
    refined_timeout_sec: float = DEFAULTS["refined_timeout_sec"]
    send_interval_sec: float = DEFAULTS["send_interval_sec"]
    max_reconnect_attempts: int = DEFAULTS["max_reconnect_attempts"]
    reconnect_base_delay_sec: float = DEFAULTS["reconnect_base_delay_sec"]
    max_stream_sec: float = DEFAULTS["max_stream_sec"]
    max_recognition_sec: float = DEFAULTS["max_recognition_sec"]
    chunk_sec: float = DEFAULTS["chunk_sec"]
    min_chunk_sec: float = DEFAULTS["min_chunk_sec"]

    @classmethod
    def from_namespace(cls, args: argparse.Namespace) -> "PipelineConfig":
        values = vars(args)
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            key = "sr" if f.name == "sample_rate" else f.name
            if key in values and values[key] is not None:
                kwargs[f.name] = values[key]
        return cls(**kwargs)

    def credential_for(self, provider: str) -> Optional[str]:
        """API key for a speech provider or translator; None when not configured."""
        if provider in ("gemini", "gemini_live"):
            return self.gemini_api_key or _first_env(GEMINI_KEY_ENV)
        if provider == "openai_whisper":
            return self.openai_api_key or _first_env(OPENAI_KEY_ENV)
        return None


LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "ko": "Korean",
    "ja": "Japanese",
    "zh": "Chinese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.lower(), code)

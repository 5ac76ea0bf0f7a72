from __future__ import annotations

import argparse
import json
from pathlib import Path

from dualsub.app import config as app_config
from dualsub.app.config import PipelineConfig


def test_defaults_contain_pipeline_timings() -> None:
    cfg = app_config.DEFAULTS
    assert cfg["provider"] in app_config.SPEECH_PROVIDERS
    assert cfg["silence_timeout_sec"] == 2.0
    assert cfg["quick_interval_sec"] == 0.7
    assert cfg["context_size"] == 10


def test_resolve_defaults_uses_explicit_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "explicit.json"
    cfg_path.write_text(json.dumps({"sr": 16000, "model": "tiny"}), encoding="utf-8")
    defaults, used = app_config.resolve_defaults(str(cfg_path))
    assert used == cfg_path
    assert defaults["sr"] == 16000
    assert defaults["model"] == "tiny"


def test_ensure_user_config_exists_creates_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    created = app_config.ensure_user_config_exists({"provider": "gemini_live", "sr": 16000})
    assert created.exists()
    assert created.parent == tmp_path
    loaded = json.loads(created.read_text(encoding="utf-8"))
    assert loaded["provider"] == "gemini_live"
    assert loaded["sr"] == 16000


def test_load_user_config_ignores_unknown_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"sr": 48000, "quick_translator": "argos", "unexpected": 1}),
        encoding="utf-8",
    )
    loaded, used = app_config.load_user_config(str(cfg_path))
    assert used == cfg_path
    assert loaded["sr"] == 48000
    assert loaded["quick_translator"] == "argos"
    assert "unexpected" not in loaded


def test_load_user_config_accepts_bom(tmp_path: Path) -> None:
    cfg_path = tmp_path / "bom.json"
    cfg_path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"provider": "openai_whisper"}).encode("utf-8"))
    loaded, _ = app_config.load_user_config(str(cfg_path))
    assert loaded["provider"] == "openai_whisper"


def test_pipeline_config_from_namespace_maps_sample_rate() -> None:
    args = argparse.Namespace(sr=48000, provider="gemini_live", quick_min_words=4, device=None)
    cfg = PipelineConfig.from_namespace(args)
    assert cfg.sample_rate == 48000
    assert cfg.provider == "gemini_live"
    assert cfg.quick_min_words == 4
    assert cfg.max_words_per_entry == 20


def test_credential_for_prefers_config_then_env(monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "env-google")
    monkeypatch.setenv("OPENAI_API_KEY", "env-openai")

    assert PipelineConfig().credential_for("gemini_live") == "env-google"
    assert PipelineConfig(gemini_api_key="cfg").credential_for("gemini") == "cfg"
    assert PipelineConfig().credential_for("openai_whisper") == "env-openai"
    assert PipelineConfig().credential_for("local_whisper") is None


def test_credential_for_missing_returns_none(monkeypatch) -> None:
    for name in ("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    assert PipelineConfig().credential_for("gemini_live") is None
    assert PipelineConfig().credential_for("openai_whisper") is None


def test_language_name() -> None:
    assert app_config.language_name("ko") == "Korean"
    assert app_config.language_name("EN") == "English"
    assert app_config.language_name("xx") == "xx"

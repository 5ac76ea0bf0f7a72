from __future__ import annotations

import json
from pathlib import Path

import pytest

from dualsub.app.config import resolve_args


def test_app_resolve_args_cli_overrides_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(
        json.dumps(
            {
                "quick_translator": "stub",
                "sr": 16000,
                "quick_interval_sec": 1.5,
            }
        ),
        encoding="utf-8",
    )
    args = resolve_args(
        [
            "--config",
            str(cfg_path),
            "--quick-translator",
            "argos",
            "--quick-interval-sec",
            "0.5",
        ]
    )
    assert args.quick_translator == "argos"
    assert args.sr == 16000
    assert args.quick_interval_sec == 0.5


def test_app_resolve_args_provider_from_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"provider": "openai_whisper", "chunk_sec": 3.0}), encoding="utf-8")
    args = resolve_args(["--config", str(cfg_path)])
    assert args.provider == "openai_whisper"
    assert args.chunk_sec == 3.0


def test_app_resolve_args_rejects_unknown_provider(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text("{}", encoding="utf-8")
    with pytest.raises(SystemExit):
        resolve_args(["--config", str(cfg_path), "--provider", "carrier_pigeon"])


def test_app_resolve_args_missing_config_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        resolve_args(["--config", str(tmp_path / "nope.json")])


def test_app_resolve_args_credentials_come_from_file(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.json"
    cfg_path.write_text(json.dumps({"gemini_api_key": "file-key"}), encoding="utf-8")
    args = resolve_args(["--config", str(cfg_path), "--no-print-console"])
    assert args.gemini_api_key == "file-key"
    assert args.openai_api_key is None
    assert args.print_console is False

from __future__ import annotations

import json
import logging
from pathlib import Path

from dualsub.app import config as app_config
from dualsub.app.logging_setup import setup_app_logger


def test_setup_app_logger_writes_json_line(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, log_dir, log_path = setup_app_logger("dualsub.test")

    logger.info("hello", extra={"event": "test_event", "value": 7})
    for h in logger.handlers:
        h.flush()

    assert log_dir.exists()
    assert log_path.exists()
    assert log_path.name == "dualsub.log"
    lines = [ln for ln in log_path.read_text(encoding="utf-8").splitlines() if ln.strip()]
    assert lines
    payload = json.loads(lines[-1])
    assert payload["message"] == "hello"
    assert payload["event"] == "test_event"
    assert payload["value"] == 7
    assert payload["level"] == "INFO"
    assert "lineno" not in payload

    for h in logger.handlers:
        h.close()
    logging.getLogger("dualsub.test").handlers.clear()


def test_child_loggers_reach_app_handler(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, _, log_path = setup_app_logger("dualsub.test2", debug=True)

    logging.getLogger("dualsub.test2.live").debug("quick_dispatch", extra={"entry_id": "abc"})
    for h in logger.handlers:
        h.flush()

    payload = json.loads(log_path.read_text(encoding="utf-8").splitlines()[-1])
    assert payload["message"] == "quick_dispatch"
    assert payload["entry_id"] == "abc"
    assert payload["logger"] == "dualsub.test2.live"

    for h in logger.handlers:
        h.close()
    logging.getLogger("dualsub.test2").handlers.clear()


def test_debug_adds_stderr_echo(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    quiet, _, _ = setup_app_logger("dualsub.test3")
    assert len(quiet.handlers) == 1
    loud, _, _ = setup_app_logger("dualsub.test3", debug=True)
    assert len(loud.handlers) == 2
    assert loud.level == logging.DEBUG

    for h in loud.handlers:
        h.close()
    logging.getLogger("dualsub.test3").handlers.clear()

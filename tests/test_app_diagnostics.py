from __future__ import annotations

from dualsub.app.diagnostics import hint_for_exception, summarize_exception


def test_summarize_exception_picks_last_meaningful_line() -> None:
    detail = (
        "Traceback (most recent call last):\n"
        '  File "x.py", line 1, in <module>\n'
        "    boom()\n"
        "RuntimeError: failed to start worker"
    )
    assert summarize_exception(detail) == "RuntimeError: failed to start worker"


def test_summarize_exception_truncates_long_line() -> None:
    detail = "ValueError: " + ("x" * 500)
    out = summarize_exception(detail, max_len=60)
    assert out.startswith("ValueError: ")
    assert out.endswith("...")
    assert len(out) <= 60


def test_hint_for_missing_credential() -> None:
    hint = hint_for_exception("No credential configured for speech provider 'gemini_live'.")
    assert "GEMINI_API_KEY" in hint


def test_hint_for_reconnect_exhausted() -> None:
    hint = hint_for_exception("Speech stream reconnect failed after 3 attempts: refused")
    assert "network" in hint


def test_hint_for_exception_default() -> None:
    hint = hint_for_exception("RuntimeError: unknown")
    assert hint == "Check logs for full traceback."


def test_summarize_exception_accepts_exception_objects() -> None:
    from dualsub.errors import CredentialMissing

    summary = summarize_exception(CredentialMissing("openai_whisper"))
    assert summary == "dualsub.errors.CredentialMissing: No credential configured for speech provider 'openai_whisper'."
    assert "OPENAI_API_KEY" in hint_for_exception(summary)


def test_hint_for_rejected_key_and_model_load() -> None:
    assert "refused the API key" in hint_for_exception("Gemini rejected the API key (HTTP 403)")
    assert "--model" in hint_for_exception("faster-whisper model 'huge' failed to load: not found")

from __future__ import annotations

import traceback


def summarize_exception(detail: str | BaseException, *, max_len: int = 220) -> str:
    """One line for the console: the last meaningful line of a traceback or message."""
    if isinstance(detail, BaseException):
        text = "".join(traceback.format_exception_only(type(detail), detail)).strip()
    else:
        text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith("File "):
            continue
        if ln.startswith("^"):
            continue
        if ln.startswith("Traceback "):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "no credential configured" in s or "api key is not configured" in s:
        return "Set GEMINI_API_KEY or OPENAI_API_KEY (or add the key to config.json) and retry."
    if "rejected the api key" in s:
        return "The provider refused the API key. Check that it is valid and has access to the model."
    if "reconnect failed" in s:
        return "The speech stream kept dropping. Check the network connection, then press start again."
    if "no module named" in s or "is not installed" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if "microphone" in s or ("sounddevice" in s and "failed" in s):
        return "Microphone init failed. Check input device selection and app mic permissions."
    if "failed to load" in s and "whisper" in s:
        return "The local speech model could not be loaded. Check --model and available disk space."
    return "Check logs for full traceback."

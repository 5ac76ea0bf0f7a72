from __future__ import annotations

from dualsub.app.console import ConsolePrinter, format_entry
from dualsub.app.state import RuntimeState
from dualsub.contracts import TranscriptEntry
from dualsub.live.pipeline import PipelineSnapshot


def _snap(*entries: TranscriptEntry, last_error=None) -> PipelineSnapshot:
    return PipelineSnapshot(entries=tuple(entries), state=RuntimeState.RUNNING, last_error=last_error)


def test_format_entry_shows_best_translation() -> None:
    entry = TranscriptEntry(original_text="The weather is")
    assert format_entry(entry) == "[live ] EN: The weather is"

    entry.quick_translation = "날씨는"
    assert "~  KO: 날씨는" in format_entry(entry)

    entry.finalized = True
    entry.context_translation = "날씨가 좋네요."
    out = format_entry(entry)
    assert out.startswith("[final] EN: The weather is")
    assert "=  KO: 날씨가 좋네요." in out


def test_format_entry_shows_error_until_refined() -> None:
    entry = TranscriptEntry(original_text="Hello", translation_error="timed out")
    assert "!! timed out" in format_entry(entry)
    entry.context_translation = "안녕하세요"
    assert "!!" not in format_entry(entry)


def test_printer_skips_unchanged_entries_and_repeats_errors_once() -> None:
    lines = []
    printer = ConsolePrinter(out=lines.append)
    entry = TranscriptEntry(original_text="Hello")

    printer(_snap(entry))
    printer(_snap(entry))
    assert len(lines) == 1

    entry.original_text = "Hello there"
    printer(_snap(entry))
    assert len(lines) == 1

    entry.quick_translation = "안녕"
    printer(_snap(entry))
    assert len(lines) == 2

    printer(_snap(entry, last_error="Speech stream reconnect failed after 3 attempts"))
    printer(_snap(entry, last_error="Speech stream reconnect failed after 3 attempts"))
    assert lines[2] == "Error: Speech stream reconnect failed after 3 attempts"
    assert lines[3].startswith("Hint: ")
    assert len(lines) == 4

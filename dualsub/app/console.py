from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

from dualsub.app.diagnostics import hint_for_exception, summarize_exception
from dualsub.contracts import TranscriptEntry, TranslationState
from dualsub.live.pipeline import PipelineSnapshot

_MARKS = {
    TranslationState.PENDING: "..",
    TranslationState.QUICK: "~ ",
    TranslationState.REFINED: "= ",
}


def format_entry(entry: TranscriptEntry, *, source_tag: str = "EN", target_tag: str = "KO") -> str:
    status = "final" if entry.finalized else "live"
    lines = [f"[{status:5}] {source_tag}: {entry.original_text}"]
    translation = entry.display_translation
    if translation:
        lines.append(f"     {_MARKS[entry.translation_state]} {target_tag}: {translation}")
    if entry.translation_error and entry.translation_state is not TranslationState.REFINED:
        lines.append(f"     !! {entry.translation_error}")
    return "\n".join(lines)


class ConsolePrinter:
    """
    Pipeline listener that prints an entry whenever its translation or
    finalized flag changes. Text-only updates of the open entry are skipped.
    """

    def __init__(
        self,
        *,
        source_tag: str = "EN",
        target_tag: str = "KO",
        out: Callable[[str], None] = print,
    ) -> None:
        self.source_tag = source_tag
        self.target_tag = target_tag
        self.out = out
        self._seen: Dict[str, Tuple[object, ...]] = {}
        self._last_error: Optional[str] = None

    def __call__(self, snap: PipelineSnapshot) -> None:
        for entry in snap.entries:
            key = (entry.finalized, entry.quick_translation, entry.context_translation, entry.translation_error)
            if self._seen.get(entry.id) == key:
                continue
            self._seen[entry.id] = key
            self.out(format_entry(entry, source_tag=self.source_tag, target_tag=self.target_tag))
        if snap.last_error and snap.last_error != self._last_error:
            summary = summarize_exception(snap.last_error)
            self.out(f"Error: {summary}")
            self.out(f"Hint: {hint_for_exception(summary)}")
        self._last_error = snap.last_error

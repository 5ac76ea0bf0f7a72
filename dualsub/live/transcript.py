from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from dualsub.asr.stream_base import Delivery
from dualsub.contracts import TranscriptEntry
from dualsub.nlp.words import clean_text, word_boundary, word_count

logger = logging.getLogger(__name__)


class UpdateKind(str, Enum):
    OPENED = "opened"
    UPDATED = "updated"
    FINALIZED = "finalized"
    # utterance-scoped silence: refine now, keep the entry open
    EARLY_REFINE = "early_refine"


@dataclass(frozen=True)
class EntryUpdate:
    kind: UpdateKind
    entry: TranscriptEntry
    text: str


class TranscriptStateMachine:
    """
    Turns partial/final speech events into transcript entries.

    At most one entry is open at a time. Cumulative sessions report the whole
    transcript on every event, so the machine remembers how many characters
    already belong to finalized entries and only looks at the rest.
    """

    def __init__(
        self,
        entries: List[TranscriptEntry],
        *,
        delivery: Delivery,
        max_words: int = 20,
    ) -> None:
        if max_words < 1:
            raise ValueError("max_words must be >= 1")
        self.entries = entries
        self.delivery = delivery
        self.max_words = int(max_words)
        self.open_entry: Optional[TranscriptEntry] = None
        self.prefix_len = 0
        self.silence_token = 0
        self._last_raw = ""

    @property
    def cumulative(self) -> bool:
        return self.delivery is Delivery.CUMULATIVE

    def _tail(self, text: str) -> str:
        """Part of a cumulative transcript after the finalized prefix."""
        if len(text) < self.prefix_len:
            logger.info("transcript_prefix_reset", extra={"prefix_len": self.prefix_len, "text_len": len(text)})
            self.prefix_len = 0
        return text[self.prefix_len:]

    def _open(self, text: str) -> EntryUpdate:
        entry = TranscriptEntry(original_text=text)
        self.entries.append(entry)
        self.open_entry = entry
        return EntryUpdate(UpdateKind.OPENED, entry, text)

    def _finalize(self, text: str) -> EntryUpdate:
        entry = self.open_entry
        if entry is None:
            entry = TranscriptEntry(original_text=text)
            self.entries.append(entry)
        entry.original_text = text
        entry.finalized = True
        self.open_entry = None
        return EntryUpdate(UpdateKind.FINALIZED, entry, text)

    def _split_overflow(self, raw: str) -> tuple[List[EntryUpdate], str]:
        """Finalize max_words-sized heads of a long cumulative tail."""
        updates: List[EntryUpdate] = []
        while word_count(raw) > self.max_words:
            cut = word_boundary(raw, self.max_words)
            head = clean_text(raw[:cut])
            self.prefix_len += cut
            raw = raw[cut:]
            logger.info("transcript_forced_split", extra={"words": self.max_words, "prefix_len": self.prefix_len})
            updates.append(self._finalize(head))
        return updates, raw

    def on_partial(self, text: str) -> List[EntryUpdate]:
        if not clean_text(text):
            return []
        updates: List[EntryUpdate] = []
        if self.cumulative:
            self._last_raw = text
            updates, raw = self._split_overflow(self._tail(text))
            current = clean_text(raw)
        else:
            current = clean_text(text)
        if not current:
            return updates

        self.silence_token += 1
        entry = self.open_entry
        if entry is None:
            updates.append(self._open(current))
        elif entry.original_text != current:
            entry.original_text = current
            updates.append(EntryUpdate(UpdateKind.UPDATED, entry, current))
        return updates

    def on_final(self, text: str) -> List[EntryUpdate]:
        if not clean_text(text):
            return []
        updates: List[EntryUpdate] = []
        if self.cumulative:
            self._last_raw = text
            updates, raw = self._split_overflow(self._tail(text))
            current = clean_text(raw)
            self.prefix_len = len(text)
        else:
            current = clean_text(text)
        self.silence_token += 1
        if current:
            updates.append(self._finalize(current))
        return updates

    def on_silence(self, token: int) -> List[EntryUpdate]:
        """Silence timer expiry; stale tokens are ignored."""
        entry = self.open_entry
        if token != self.silence_token or entry is None:
            return []
        if not self.cumulative:
            return [EntryUpdate(UpdateKind.EARLY_REFINE, entry, entry.original_text)]
        logger.info("transcript_silence_finalize", extra={"entry_id": entry.id})
        self.prefix_len = len(self._last_raw)
        return [self._finalize(entry.original_text)]

    def close(self) -> Optional[TranscriptEntry]:
        """Finalize the open entry, if any, without asking for translation."""
        entry = self.open_entry
        if entry is None:
            return None
        entry.finalized = True
        self.open_entry = None
        return entry

    def reset(self) -> None:
        self.entries.clear()
        self.open_entry = None


class SilenceTimer:
    """Restartable one-shot timer on the running loop."""

    def __init__(self, timeout: float, callback: Callable[[int], None]) -> None:
        self.timeout = float(timeout)
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def reset(self, token: int) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._expire(token), name="dualsub-silence")

    async def _expire(self, token: int) -> None:
        await asyncio.sleep(self.timeout)
        self._task = None
        self.callback(token)

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

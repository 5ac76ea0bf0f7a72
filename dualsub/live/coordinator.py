from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set, Tuple

from dualsub.contracts import TranscriptEntry, TranslationContextPair
from dualsub.errors import TranslationError
from dualsub.nlp.translator.base import Translator
from dualsub.nlp.words import clean_text, is_prefix_compatible, word_count

logger = logging.getLogger(__name__)

FAILED_PLACEHOLDER = "[translation failed]"


class ContextWindow:
    """The most recent confirmed (source, refined translation) pairs, oldest first."""

    def __init__(self, max_pairs: int = 10) -> None:
        if max_pairs < 0:
            raise ValueError("max_pairs must be >= 0")
        self.max_pairs = int(max_pairs)
        self._pairs: Deque[TranslationContextPair] = deque(maxlen=self.max_pairs)

    def append(self, source_text: str, translation_text: str) -> None:
        self._pairs.append(TranslationContextPair(source_text, translation_text))

    def snapshot(self) -> Tuple[TranslationContextPair, ...]:
        return tuple(self._pairs)

    def clear(self) -> None:
        self._pairs.clear()

    def __len__(self) -> int:
        return len(self._pairs)


class DualTranslationCoordinator:
    """
    Schedules a quick and a refined translation per transcript entry.

    Quick requests go through a single scheduling loop: one request in
    flight, one pending slot that newer requests overwrite, and dispatches
    spaced at least ``quick_interval`` apart. Refined requests run as
    independent tasks. Results are written only while the run that issued
    them is still current.
    """

    def __init__(
        self,
        quick: Translator,
        refined: Translator,
        *,
        context: Optional[ContextWindow] = None,
        quick_min_words: int = 3,
        quick_interval: float = 0.7,
        quick_timeout: float = 2.0,
        refined_timeout: float = 5.0,
        on_change: Optional[Callable[[TranscriptEntry], None]] = None,
        on_fatal: Optional[Callable[[TranslationError], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.quick = quick
        self.refined = refined
        self.context = context if context is not None else ContextWindow()
        self.quick_min_words = int(quick_min_words)
        self.quick_interval = float(quick_interval)
        self.quick_timeout = float(quick_timeout)
        self.refined_timeout = float(refined_timeout)
        self.on_change = on_change
        self.on_fatal = on_fatal
        self._clock = clock

        self.generation = 0
        self.running = False
        self.quick_dispatches = 0
        self._pending: Optional[Tuple[TranscriptEntry, str]] = None
        self._wake = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._quick_inflight: Optional[asyncio.Task] = None
        self._last_dispatch: Optional[float] = None
        self._refined_tasks: Set[asyncio.Task] = set()
        self._refined_requested: Dict[str, str] = {}

    @property
    def inflight(self) -> int:
        quick = 1 if self._quick_inflight is not None and not self._quick_inflight.done() else 0
        return quick + len(self._refined_tasks)

    def begin_run(self) -> None:
        self.generation += 1
        self.running = True
        self._pending = None
        self._wake = asyncio.Event()
        self._last_dispatch = None
        self._refined_requested.clear()
        self._loop_task = asyncio.create_task(self._quick_loop(), name="dualsub-quick-loop")

    async def end_run(self) -> None:
        """Stop scheduling. Calls already sent finish, their results are dropped."""
        self.generation += 1
        self.running = False
        self._pending = None
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for calls still in flight, e.g. before closing translator clients."""
        pending = [t for t in self._refined_tasks if not t.done()]
        if self._quick_inflight is not None and not self._quick_inflight.done():
            pending.append(self._quick_inflight)
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    # quick path

    def request_quick(self, entry: TranscriptEntry, text: str) -> bool:
        text = clean_text(text)
        if not self.running or entry.context_translation is not None:
            return False
        if word_count(text) < self.quick_min_words:
            return False
        self._pending = (entry, text)
        self._wake.set()
        return True

    async def _quick_loop(self) -> None:
        while True:
            await self._wake.wait()
            self._wake.clear()
            while self._pending is not None:
                inflight = self._quick_inflight
                if inflight is not None and not inflight.done():
                    # asyncio.wait does not cancel the call if this loop is cancelled.
                    await asyncio.wait({inflight})
                if self._last_dispatch is not None:
                    delay = self._last_dispatch + self.quick_interval - self._clock()
                    if delay > 0:
                        await asyncio.sleep(delay)
                pending, self._pending = self._pending, None
                if pending is None:
                    break
                entry, text = pending
                if entry.context_translation is not None:
                    continue
                self._last_dispatch = self._clock()
                self.quick_dispatches += 1
                self._quick_inflight = asyncio.create_task(
                    self._run_quick(entry, text, self.generation),
                    name="dualsub-quick",
                )

    def quick_applicable(self, entry: TranscriptEntry, source_text: str) -> bool:
        if entry.context_translation is not None:
            return False
        if not is_prefix_compatible(entry.original_text, source_text):
            return False
        applied = entry.quick_translation_source_text
        if applied and word_count(applied) > word_count(source_text):
            return False
        return True

    async def _run_quick(self, entry: TranscriptEntry, text: str, generation: int) -> None:
        logger.info("quick_dispatch", extra={"entry_id": entry.id, "words": word_count(text)})
        started = self._clock()
        try:
            translation = await self.quick.translate(text, (), timeout=self.quick_timeout)
        except TranslationError as exc:
            self._report_failure("quick", entry, exc, generation)
            return
        if generation != self.generation:
            logger.info("quick_discarded", extra={"entry_id": entry.id, "reason": "run_ended"})
            return
        if not self.quick_applicable(entry, text):
            logger.info("quick_discarded", extra={"entry_id": entry.id, "reason": "stale"})
            return
        entry.quick_translation = translation
        entry.quick_translation_source_text = text
        logger.info(
            "quick_applied",
            extra={"entry_id": entry.id, "elapsed_sec": round(self._clock() - started, 3)},
        )
        self._changed(entry)

    # refined path

    def request_refined(self, entry: TranscriptEntry, text: Optional[str] = None) -> bool:
        text = clean_text(text if text is not None else entry.original_text)
        if not self.running or not text:
            return False
        if self._refined_requested.get(entry.id) == text:
            logger.info("refined_duplicate", extra={"entry_id": entry.id})
            return False
        self._refined_requested[entry.id] = text
        context = self.context.snapshot()
        task = asyncio.create_task(
            self._run_refined(entry, text, context, self.generation),
            name="dualsub-refined",
        )
        self._refined_tasks.add(task)
        task.add_done_callback(self._refined_tasks.discard)
        return True

    def _refined_current(self, entry: TranscriptEntry, text: str, generation: int) -> bool:
        return generation == self.generation and self._refined_requested.get(entry.id) == text

    async def _run_refined(
        self,
        entry: TranscriptEntry,
        text: str,
        context: Tuple[TranslationContextPair, ...],
        generation: int,
    ) -> None:
        logger.info("refined_dispatch", extra={"entry_id": entry.id, "context_pairs": len(context)})
        started = self._clock()
        try:
            translation = await self.refined.translate(text, context, timeout=self.refined_timeout)
        except TranslationError as exc:
            if not self._refined_current(entry, text, generation):
                return
            if entry.quick_translation is None:
                entry.quick_translation = FAILED_PLACEHOLDER
            self._report_failure("refined", entry, exc, generation)
            return
        if not self._refined_current(entry, text, generation):
            logger.info("refined_discarded", extra={"entry_id": entry.id})
            return
        entry.context_translation = translation
        entry.translation_error = None
        self.context.append(text, translation)
        logger.info(
            "refined_applied",
            extra={
                "entry_id": entry.id,
                "elapsed_sec": round(self._clock() - started, 3),
                "context_pairs": len(self.context),
            },
        )
        self._changed(entry)

    def on_finalized(self, entry: TranscriptEntry, text: str) -> None:
        self.request_refined(entry, text)
        if entry.quick_translation is None:
            self.request_quick(entry, text)

    def reset_context(self) -> None:
        self.context.clear()
        self._refined_requested.clear()

    def _report_failure(self, path: str, entry: TranscriptEntry, exc: TranslationError, generation: int) -> None:
        logger.warning(
            f"{path}_failed",
            extra={"entry_id": entry.id, "error": str(exc), "error_type": type(exc).__name__},
        )
        if generation != self.generation:
            return
        entry.translation_error = str(exc)
        self._changed(entry)
        if exc.fatal and self.on_fatal is not None:
            self.on_fatal(exc)

    def _changed(self, entry: TranscriptEntry) -> None:
        if self.on_change is not None:
            self.on_change(entry)

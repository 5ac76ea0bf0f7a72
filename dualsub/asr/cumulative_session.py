from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional, Protocol

from dualsub.asr.stream_base import Delivery, SpeechSession
from dualsub.contracts import AudioFrame, SpeechEvent, TranscriptResult
from dualsub.errors import ConnectionFailed, RecognitionFailed, ReconnectExhausted, SpeechError
from dualsub.nlp.words import clean_text

logger = logging.getLogger(__name__)


class Recognizer(Protocol):
    async def begin(self) -> None:
        ...

    def append(self, pcm16: bytes) -> None:
        ...

    def results(self) -> AsyncIterator[TranscriptResult]:
        """Cumulative results for this recognition; finishes after end()."""
        ...

    async def end(self) -> None:
        ...


def join_carried(carried: str, text: str) -> str:
    if not carried:
        return text
    if not text:
        return carried
    return f"{carried} {text}"


class CumulativeSpeechSession(SpeechSession):
    """
    Session over a recognizer whose results cover the whole recognition.

    Recognizers are limited in duration, so the session ends each one after
    ``max_recognition_sec`` and starts a fresh one. Frames fed while the
    restart is in progress are held and replayed into the new recognizer,
    and text recognized so far is carried as the prefix of every later
    event. Recognitions that keep failing without a result are retried
    with a growing delay; after ``max_restart_attempts`` in a row the
    session reports ReconnectExhausted and stops.
    """

    delivery = Delivery.CUMULATIVE

    def __init__(
        self,
        recognizer_factory: Callable[[], Recognizer],
        *,
        name: str = "cumulative",
        max_recognition_sec: float = 55.0,
        restart_delay: float = 0.1,
        drain_timeout: float = 5.0,
        max_restart_attempts: int = 3,
    ) -> None:
        if max_recognition_sec <= 0:
            raise ValueError("max_recognition_sec must be > 0")
        super().__init__()
        self.name = name
        self._factory = recognizer_factory
        self.max_recognition_sec = float(max_recognition_sec)
        self.restart_delay = float(restart_delay)
        self.drain_timeout = float(drain_timeout)
        self.max_restart_attempts = int(max_restart_attempts)
        self._recognizer: Optional[Recognizer] = None
        self._restarting = False
        self._pending: List[bytes] = []
        self._carried = ""
        self._last_text = ""
        self._draining = False
        self.restarts = 0
        self._errors = 0

    async def _open(self) -> None:
        recognizer = self._factory()
        await recognizer.begin()
        self._recognizer = recognizer
        self._spawn(self._run(), "recognize")

    async def _close(self) -> None:
        recognizer, self._recognizer = self._recognizer, None
        self._pending = []
        if recognizer is not None:
            await recognizer.end()

    def _accept(self, frame: AudioFrame) -> None:
        if self._restarting or self._recognizer is None:
            self._pending.append(frame.pcm16)
            return
        self._recognizer.append(frame.pcm16)

    def _handle(self, result: TranscriptResult) -> None:
        text = clean_text(result.text)
        if not text:
            return
        self._errors = 0
        full = join_carried(self._carried, text)
        self._last_text = full
        if result.is_final and not self._draining:
            self._emit(SpeechEvent.final(full))
        else:
            self._emit(SpeechEvent.partial(full))

    async def _consume(self, recognizer: Recognizer) -> None:
        async for result in recognizer.results():
            self._handle(result)

    async def _recognize_once(self, recognizer: Recognizer) -> str:
        """Run one recognition. Returns 'ended' or 'limit'."""
        consumer = asyncio.create_task(self._consume(recognizer))
        try:
            done, _ = await asyncio.wait({consumer}, timeout=self.max_recognition_sec)
            if done:
                consumer.result()
                return "ended"
            # Duration limit: close the audio and keep what the recognizer
            # still reports, as partials of the continuing transcript.
            self._draining = True
            await recognizer.end()
            try:
                await asyncio.wait_for(consumer, timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("recognition_drain_timeout", extra={"provider": self.name})
            return "limit"
        finally:
            self._draining = False
            if not consumer.done():
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            recognizer = self._recognizer
            if recognizer is None:
                return
            try:
                reason = await self._recognize_once(recognizer)
            except SpeechError as exc:
                if exc.fatal:
                    await self._fail(exc)
                    return
                error = exc
            except Exception as exc:
                logger.exception("recognition_failed", extra={"provider": self.name})
                error = RecognitionFailed(str(exc))
            else:
                self._errors = 0
                if not await self._restart(reason):
                    return
                continue

            self._errors += 1
            if self._errors > self.max_restart_attempts:
                await self._fail(ReconnectExhausted(self.max_restart_attempts, error))
                return
            logger.warning(
                "recognition_failed",
                extra={"provider": self.name, "error": str(error), "attempt": self._errors},
            )
            self._emit(SpeechEvent.failure(error))
            if not await self._restart("error", delay=self.restart_delay * self._errors):
                return

    async def _restart(self, reason: str, *, delay: Optional[float] = None) -> bool:
        self._restarting = True
        old, self._recognizer = self._recognizer, None
        if old is not None:
            await old.end()
        self._carried = self._last_text
        logger.info(
            "recognition_restart",
            extra={"provider": self.name, "reason": reason, "carried_chars": len(self._carried)},
        )
        await asyncio.sleep(self.restart_delay if delay is None else delay)

        recognizer = self._factory()
        try:
            await recognizer.begin()
        except SpeechError as exc:
            await self._fail(exc if exc.fatal else ConnectionFailed(str(exc)))
            return False

        pending, self._pending = self._pending, []
        for pcm16 in pending:
            recognizer.append(pcm16)
        self._recognizer = recognizer
        self._restarting = False
        self.restarts += 1
        return True

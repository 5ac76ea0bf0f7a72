from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Coroutine, Set

from dualsub.contracts import AudioFrame, SpeechEvent

logger = logging.getLogger(__name__)


class Delivery(str, Enum):
    # every event carries the whole session transcript so far
    CUMULATIVE = "cumulative"
    # every event pertains to the current utterance only
    UTTERANCE = "utterance"


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class SpeechSession(ABC):
    """
    One live speech recognition session.

    Events are delivered as tagged SpeechEvent values on ``self.events``; the
    pipeline drains that queue from a single task. A session instance runs
    once: after stop() it stays STOPPED and a new instance is needed.
    """

    name: str = "speech"
    delivery: Delivery = Delivery.UTTERANCE
    emits_partials: bool = True

    def __init__(self) -> None:
        self.events: "asyncio.Queue[SpeechEvent]" = asyncio.Queue()
        self.state = SessionState.IDLE
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.state in (SessionState.STREAMING, SessionState.RECONNECTING)

    async def start(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"{self.name} session cannot start from state '{self.state.value}'")
        self.state = SessionState.CONNECTING
        logger.info("session_connecting", extra={"provider": self.name})
        try:
            await self._open()
        except BaseException:
            self.state = SessionState.STOPPED
            await self._cancel_tasks()
            await self._close()
            raise
        if self.state is SessionState.STOPPED:
            # stop() ran while connecting
            await self._cancel_tasks()
            await self._close()
            return
        self.state = SessionState.STREAMING
        logger.info("session_streaming", extra={"provider": self.name})

    async def stop(self) -> None:
        if self.state is SessionState.STOPPED:
            return
        if self.state is not SessionState.IDLE:
            await self._before_stop()
        self.state = SessionState.STOPPED
        await self._cancel_tasks()
        await self._close()
        logger.info("session_stopped", extra={"provider": self.name})

    def feed(self, frame: AudioFrame) -> None:
        if self.state is not SessionState.STREAMING:
            return
        self._accept(frame)

    def _emit(self, event: SpeechEvent) -> None:
        if self.state is SessionState.STOPPED:
            return
        self.events.put_nowait(event)

    async def _fail(self, error: BaseException) -> None:
        """Surface a terminal error and shut the session down."""
        logger.error(
            "session_failed",
            extra={"provider": self.name, "error": str(error), "error_type": type(error).__name__},
        )
        self._emit(SpeechEvent.failure(error))
        self.state = SessionState.STOPPED
        await self._cancel_tasks()
        await self._close()

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"dualsub-{self.name}-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _before_stop(self) -> None:
        """Hook for flushing trailing audio or text while events still flow."""

    @abstractmethod
    async def _open(self) -> None:
        ...

    @abstractmethod
    async def _close(self) -> None:
        ...

    @abstractmethod
    def _accept(self, frame: AudioFrame) -> None:
        ...

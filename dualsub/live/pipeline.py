from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple

from dualsub.app.config import PipelineConfig
from dualsub.app.state import RuntimeState, RuntimeStateTracker
from dualsub.asr.factory import build_speech_session
from dualsub.asr.stream_base import SpeechSession
from dualsub.contracts import AudioFrame, SpeechEvent, SpeechEventKind, TranscriptEntry
from dualsub.errors import DualSubError
from dualsub.live.coordinator import ContextWindow, DualTranslationCoordinator
from dualsub.live.transcript import EntryUpdate, SilenceTimer, TranscriptStateMachine, UpdateKind
from dualsub.nlp.translator.base import Translator

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    on_frame: Optional[Callable[[AudioFrame], None]]

    def start_capture(self) -> None:
        """Raises FrameSourceError."""
        ...

    def stop_capture(self) -> None:
        ...


@dataclass(frozen=True)
class PipelineSnapshot:
    entries: Tuple[TranscriptEntry, ...]
    state: RuntimeState
    last_error: Optional[str]

    @property
    def running(self) -> bool:
        return self.state == RuntimeState.RUNNING


Listener = Callable[[PipelineSnapshot], None]


class PipelineController:
    """
    Wires frame source -> speech session -> transcript state machine ->
    translation coordinator for one run at a time.

    Everything runs on one event loop. Frames arrive from the capture thread
    and are handed to the loop; speech events are drained by a single
    consumer task, which is the only writer of entry text.
    """

    def __init__(
        self,
        config: PipelineConfig,
        frame_source: FrameSource,
        *,
        quick_translator: Translator,
        refined_translator: Translator,
        session_factory: Callable[[PipelineConfig], SpeechSession] = build_speech_session,
    ) -> None:
        self.config = config
        self.frame_source = frame_source
        self.session_factory = session_factory
        self.entries: List[TranscriptEntry] = []
        self.context = ContextWindow(config.context_size)
        self.coordinator = DualTranslationCoordinator(
            quick_translator,
            refined_translator,
            context=self.context,
            quick_min_words=config.quick_min_words,
            quick_interval=config.quick_interval_sec,
            quick_timeout=config.quick_timeout_sec,
            refined_timeout=config.refined_timeout_sec,
            on_change=self._entry_changed,
            on_fatal=self._fatal,
        )
        self.tracker = RuntimeStateTracker()
        self.session: Optional[SpeechSession] = None
        self.machine: Optional[TranscriptStateMachine] = None
        self._timer: Optional[SilenceTimer] = None
        self._consumer: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._accepting = False
        self._stop_done: Optional[asyncio.Event] = None
        self._error_stop: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    @property
    def state(self) -> RuntimeState:
        return self.tracker.state

    @property
    def last_error(self) -> Optional[str]:
        return self.tracker.last_error

    @property
    def running(self) -> bool:
        return self.tracker.running

    # lifecycle

    async def start(self) -> None:
        if self.state != RuntimeState.IDLE:
            raise RuntimeError(f"pipeline cannot start while {self.state.value}")
        self.tracker.set_starting()
        self._loop = asyncio.get_running_loop()
        logger.info("pipeline_starting", extra={"provider": self.config.provider})
        self._notify()
        try:
            session = self.session_factory(self.config)
            self.session = session
            self.machine = TranscriptStateMachine(
                self.entries,
                delivery=session.delivery,
                max_words=self.config.max_words_per_entry,
            )
            self._timer = SilenceTimer(self.config.silence_timeout_sec, self._on_silence)
            self.coordinator.begin_run()
            self._consumer = asyncio.create_task(self._consume(session), name="dualsub-consumer")
            self._accepting = True
            self.frame_source.on_frame = self._on_frame
            self.frame_source.start_capture()
            await session.start()
        except BaseException as exc:
            logger.error(
                "pipeline_start_failed",
                extra={"provider": self.config.provider, "error": str(exc), "error_type": type(exc).__name__},
            )
            await self._teardown()
            self.tracker.set_idle()
            self.tracker.set_error(str(exc) or type(exc).__name__)
            self._notify()
            raise
        if self.state != RuntimeState.STARTING:
            # stop() won while the session was connecting
            return
        self.tracker.set_running()
        logger.info("pipeline_started", extra={"provider": self.config.provider, "delivery": session.delivery.value})
        self._notify()

    async def stop(self) -> None:
        if self.state == RuntimeState.IDLE:
            return
        if self.state == RuntimeState.STOPPING and self._stop_done is not None:
            await self._stop_done.wait()
            return
        self._stop_done = asyncio.Event()
        self.tracker.set_stopping()
        logger.info("pipeline_stopping", extra={"entries": len(self.entries)})
        try:
            await self._teardown()
        finally:
            self.tracker.set_idle()
            self._stop_done.set()
            logger.info("pipeline_stopped", extra={"entries": len(self.entries), "last_error": self.last_error})
            self._notify()

    async def _teardown(self) -> None:
        # Detach first: nothing may reach the state machine after this point.
        self._accepting = False
        self.frame_source.on_frame = None
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        await self.coordinator.end_run()
        if self.machine is not None:
            self.machine.close()
            self.machine = None

        session, self.session = self.session, None
        if session is not None:
            try:
                await session.stop()
            except Exception:
                logger.exception("session_stop_failed")
        try:
            self.frame_source.stop_capture()
        except Exception:
            logger.exception("frame_source_stop_failed")

    # frames and events

    def _on_frame(self, frame: AudioFrame) -> None:
        """Called from the capture thread."""
        loop = self._loop
        if loop is None or loop.is_closed() or not self._accepting:
            return
        try:
            loop.call_soon_threadsafe(self._feed, frame)
        except RuntimeError:
            # loop closed between the check and the call
            return

    def _feed(self, frame: AudioFrame) -> None:
        session = self.session
        if self._accepting and session is not None:
            session.feed(frame)

    async def _consume(self, session: SpeechSession) -> None:
        while True:
            event = await session.events.get()
            self.handle_event(event)

    def handle_event(self, event: SpeechEvent) -> None:
        machine = self.machine
        if machine is None:
            return
        if event.kind is SpeechEventKind.PARTIAL:
            updates = machine.on_partial(event.text)
            if machine.open_entry is not None and self._timer is not None:
                self._timer.reset(machine.silence_token)
        elif event.kind is SpeechEventKind.FINAL:
            updates = machine.on_final(event.text)
            if machine.open_entry is None and self._timer is not None:
                self._timer.cancel()
        else:
            self._session_error(event.error)
            return
        self._apply(updates)

    def _on_silence(self, token: int) -> None:
        if self.machine is None or self.state != RuntimeState.RUNNING:
            return
        self._apply(self.machine.on_silence(token))

    def _apply(self, updates: List[EntryUpdate]) -> None:
        for update in updates:
            if update.kind in (UpdateKind.OPENED, UpdateKind.UPDATED):
                self.coordinator.request_quick(update.entry, update.text)
            elif update.kind is UpdateKind.FINALIZED:
                self.coordinator.on_finalized(update.entry, update.text)
            elif update.kind is UpdateKind.EARLY_REFINE:
                self.coordinator.request_refined(update.entry, update.text)
        if updates:
            self._notify()

    def _session_error(self, error: Optional[BaseException]) -> None:
        detail = str(error) if error is not None else "speech session error"
        fatal = bool(getattr(error, "fatal", False))
        logger.warning(
            "pipeline_session_error",
            extra={"error": detail, "error_type": type(error).__name__, "fatal": fatal},
        )
        self.tracker.set_error(detail)
        if fatal:
            self._stop_for_error(detail)
        self._notify()

    def _fatal(self, error: DualSubError) -> None:
        logger.error("pipeline_fatal", extra={"error": str(error), "error_type": type(error).__name__})
        self.tracker.set_error(str(error))
        self._stop_for_error(str(error))

    def _stop_for_error(self, detail: str) -> None:
        if self.state != RuntimeState.RUNNING:
            return

        async def _stop() -> None:
            await self.stop()
            self.tracker.set_error(detail)
            self._notify()

        self._error_stop = asyncio.create_task(_stop(), name="dualsub-error-stop")

    async def wait_stopped(self) -> None:
        """Wait for a stop triggered by a fatal run-time error, if any."""
        task = self._error_stop
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # presentation

    def snapshot(self) -> PipelineSnapshot:
        return PipelineSnapshot(
            entries=tuple(dataclasses.replace(e) for e in self.entries),
            state=self.state,
            last_error=self.last_error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_entries(self) -> None:
        if self.machine is not None:
            self.machine.reset()
        else:
            self.entries.clear()
        self.coordinator.reset_context()
        self._notify()

    def _entry_changed(self, entry: TranscriptEntry) -> None:
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

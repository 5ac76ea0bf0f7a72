from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, List, Protocol

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from dualsub.asr.stream_base import Delivery, SessionState, SpeechSession
from dualsub.contracts import AudioFrame, SpeechEvent, TranscriptResult
from dualsub.errors import ConnectionFailed, ReconnectExhausted, SpeechError
from dualsub.nlp.words import clean_text

logger = logging.getLogger(__name__)


class SpeechTransport(Protocol):
    name: str

    async def connect(self) -> None:
        """Open the provider stream. Raises CredentialMissing, PermissionDenied or ConnectionFailed."""
        ...

    async def send_audio(self, pcm16: bytes) -> None:
        ...

    def results(self) -> AsyncIterator[TranscriptResult]:
        """Yield results until the provider closes the stream; raise on transport failure."""
        ...

    async def close(self) -> None:
        ...


class StreamingSpeechSession(SpeechSession):
    """
    Session over a long-lived network stream (WebSocket, bidirectional RPC).

    Audio is batched and sent every ``send_interval`` seconds. When the
    transport fails the session reconnects with a linear backoff
    (``reconnect_base_delay * attempt``) for at most ``max_reconnect_attempts``
    attempts, then reports ReconnectExhausted and stops. Streams are also
    rotated before ``max_stream_sec`` so the provider never cuts them off.
    """

    def __init__(
        self,
        transport: SpeechTransport,
        *,
        delivery: Delivery = Delivery.UTTERANCE,
        send_interval: float = 0.25,
        max_stream_sec: float = 290.0,
        max_reconnect_attempts: int = 3,
        reconnect_base_delay: float = 1.0,
        final_on_close: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if send_interval <= 0:
            raise ValueError("send_interval must be > 0")
        if max_stream_sec <= 0:
            raise ValueError("max_stream_sec must be > 0")
        if max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must be >= 0")
        if reconnect_base_delay < 0:
            raise ValueError("reconnect_base_delay must be >= 0")
        super().__init__()
        self.transport = transport
        self.name = transport.name
        self.delivery = delivery
        self.send_interval = float(send_interval)
        self.max_stream_sec = float(max_stream_sec)
        self.max_reconnect_attempts = int(max_reconnect_attempts)
        self.reconnect_base_delay = float(reconnect_base_delay)
        self.final_on_close = final_on_close
        self._clock = clock
        self._buffer: List[bytes] = []
        self._open_text = ""
        self._stream_started = 0.0
        self._send_failed = asyncio.Event()
        self.reconnects = 0

    async def _open(self) -> None:
        await self._connect()
        self._spawn(self._flush_loop(), "flush")
        self._spawn(self._supervise(), "supervise")

    async def _close(self) -> None:
        self._buffer = []
        await self._close_transport()

    def feed(self, frame: AudioFrame) -> None:
        # Frames keep buffering while reconnecting; flush_audio holds them until STREAMING.
        if self.active:
            self._accept(frame)

    def _accept(self, frame: AudioFrame) -> None:
        self._buffer.append(frame.pcm16)

    async def _before_stop(self) -> None:
        if self.final_on_close and self._open_text:
            self._emit(SpeechEvent.final(self._open_text))
        self._open_text = ""

    async def _connect(self) -> None:
        self._send_failed.clear()
        await self.transport.connect()
        self._stream_started = self._clock()

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except Exception:
            logger.warning("session_transport_close_failed", extra={"provider": self.name}, exc_info=True)

    async def flush_audio(self) -> int:
        """Send everything buffered so far. Returns the number of bytes sent."""
        if self.state is not SessionState.STREAMING or not self._buffer:
            return 0
        data = b"".join(self._buffer)
        self._buffer = []
        try:
            await self.transport.send_audio(data)
        except Exception as exc:
            # Keep the audio for the next connection.
            self._buffer.insert(0, data)
            logger.warning(
                "session_send_failed",
                extra={"provider": self.name, "bytes": len(data), "error": str(exc)},
            )
            self._send_failed.set()
            return 0
        return len(data)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.send_interval)
            await self.flush_audio()

    def _handle_result(self, result: TranscriptResult) -> None:
        text = clean_text(result.text)
        if result.is_final:
            self._open_text = ""
            if text:
                self._emit(SpeechEvent.final(text))
            return
        if text:
            self._open_text = text
            self._emit(SpeechEvent.partial(text))

    async def _receive(self) -> None:
        async for result in self.transport.results():
            self._handle_result(result)

    async def _pump(self) -> str:
        """Run one connection. Returns 'rotate', 'ended' or 'error'."""
        remaining = self.max_stream_sec - (self._clock() - self._stream_started)
        if remaining <= 0:
            return "rotate"
        receiver = asyncio.create_task(self._receive())
        send_failure = asyncio.create_task(self._send_failed.wait())
        try:
            done, _ = await asyncio.wait(
                {receiver, send_failure},
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (receiver, send_failure):
                if not task.done():
                    task.cancel()
            await asyncio.gather(receiver, send_failure, return_exceptions=True)

        if not done:
            return "rotate"
        if receiver in done and not receiver.cancelled():
            exc = receiver.exception()
            if exc is None:
                return "ended"
            logger.warning(
                "session_stream_error",
                extra={"provider": self.name, "error": str(exc), "error_type": type(exc).__name__},
            )
        return "error"

    async def _supervise(self) -> None:
        while self.state is not SessionState.STOPPED:
            outcome = await self._pump()
            if self.state is SessionState.STOPPED:
                return
            try:
                await self._reconnect(outcome)
            except SpeechError as exc:
                await self._fail(exc)
                return

    async def _reconnect(self, outcome: str) -> None:
        self.state = SessionState.RECONNECTING
        await self._close_transport()

        if outcome != "error":
            # Planned rotation or clean provider close: no attempt is counted.
            logger.info("session_rotate", extra={"provider": self.name, "reason": outcome})
            try:
                await self._connect()
            except ConnectionFailed as exc:
                logger.warning("session_rotate_failed", extra={"provider": self.name, "error": str(exc)})
            else:
                self._resumed()
                return

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_reconnect_attempts)),
            wait=wait_none(),
            retry=retry_if_exception_type(ConnectionFailed),
            reraise=True,
        )
        try:
            if self.max_reconnect_attempts == 0:
                raise ConnectionFailed("reconnect disabled")
            async for attempt in retrying:
                with attempt:
                    n = attempt.retry_state.attempt_number
                    delay = self.reconnect_base_delay * n
                    logger.warning(
                        "session_reconnect",
                        extra={
                            "provider": self.name,
                            "attempt": n,
                            "max_attempts": self.max_reconnect_attempts,
                            "delay_sec": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    if self.state is SessionState.STOPPED:
                        return
                    await self._connect()
        except ConnectionFailed as exc:
            raise ReconnectExhausted(self.max_reconnect_attempts, exc) from exc
        if self.state is SessionState.STOPPED:
            return
        self._resumed()

    def _resumed(self) -> None:
        self.state = SessionState.STREAMING
        self.reconnects += 1
        logger.info("session_resumed", extra={"provider": self.name, "reconnects": self.reconnects})

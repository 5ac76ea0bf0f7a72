from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from dualsub.app.config import PipelineConfig, resolve_args
from dualsub.app.console import ConsolePrinter
from dualsub.app.diagnostics import hint_for_exception, summarize_exception
from dualsub.app.logging_setup import setup_app_logger
from dualsub.app.state import RuntimeState
from dualsub.audio.mic import SoundDeviceFrameSource
from dualsub.errors import DualSubError
from dualsub.live.pipeline import FrameSource, PipelineController, PipelineSnapshot
from dualsub.nlp.translator.factory import build_translators

logger = logging.getLogger("dualsub.app")


def _install_interrupt(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handler support.
        signal.signal(signal.SIGINT, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run_pipeline(
    config: PipelineConfig,
    source: FrameSource,
    *,
    print_console: bool = True,
    stop_event: Optional[asyncio.Event] = None,
    handle_interrupt: bool = True,
) -> int:
    """Run one pipeline until ``stop_event`` is set, Ctrl+C, or a fatal error."""
    loop = asyncio.get_running_loop()
    stop = stop_event or asyncio.Event()
    if handle_interrupt:
        _install_interrupt(loop, stop)

    quick, refined = build_translators(config)
    controller = PipelineController(
        config,
        source,
        quick_translator=quick,
        refined_translator=refined,
    )
    if print_console:
        controller.subscribe(
            ConsolePrinter(
                source_tag=config.source_language.upper(),
                target_tag=config.target_language.upper(),
            )
        )

    stopped_by_error = False

    def _watch(snap: PipelineSnapshot) -> None:
        nonlocal stopped_by_error
        if snap.state == RuntimeState.IDLE and snap.last_error and not stop.is_set():
            stopped_by_error = True
            stop.set()

    try:
        try:
            await controller.start()
        except DualSubError as exc:
            summary = summarize_exception(exc)
            print(f"Could not start: {summary}")
            print(f"Hint: {hint_for_exception(summary)}")
            return 1
        unwatch = controller.subscribe(_watch)
        print(f"dualsub running ({config.provider}). Press Ctrl+C to stop.")
        await stop.wait()
        unwatch()
        await controller.stop()
        await controller.coordinator.drain(timeout=config.refined_timeout_sec)
    finally:
        await quick.aclose()
        if refined is not quick:
            await refined.aclose()

    logger.info("run_finished", extra={"entries": len(controller.entries), "last_error": controller.last_error})
    return 1 if stopped_by_error else 0


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, log_dir, log_path = setup_app_logger(debug=bool(args.debug))
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        print(SoundDeviceFrameSource.list_devices())
        return 0

    config = PipelineConfig.from_namespace(args)
    source = SoundDeviceFrameSource(
        frame_seconds=args.frame_sec,
        sample_rate=config.sample_rate,
        channels=config.channels,
        device=args.device,
    )
    print(f"Logs: {log_path}")
    try:
        return asyncio.run(run_pipeline(config, source, print_console=bool(args.print_console)))
    finally:
        logger.info("app_quit")


if __name__ == "__main__":
    raise SystemExit(main())

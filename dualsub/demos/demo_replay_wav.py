from __future__ import annotations

import argparse
import asyncio
import dataclasses
import wave

from dualsub.app.config import PipelineConfig, parser_with_defaults, resolve_defaults
from dualsub.app.logging_setup import setup_app_logger
from dualsub.app.main import run_pipeline
from dualsub.audio.wav_source import WavFileFrameSource


def build_parser() -> argparse.ArgumentParser:
    defaults, _ = resolve_defaults()
    ap = parser_with_defaults(defaults)
    ap.add_argument("wav_path")
    ap.add_argument("--speed", type=float, default=1.0, help="1.0 = realtime, 2.0 = 2x faster")
    ap.add_argument("--tail-sec", type=float, default=3.0, help="keep running this long after the file ends")
    return ap


async def _replay(config: PipelineConfig, args: argparse.Namespace) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def _finished() -> None:
        # called on the replay thread
        loop.call_soon_threadsafe(loop.call_later, max(0.0, args.tail_sec), stop.set)

    source = WavFileFrameSource(
        args.wav_path,
        frame_seconds=args.frame_sec,
        speed=args.speed,
        on_finished=_finished,
    )
    return await run_pipeline(config, source, print_console=True, stop_event=stop)


def main() -> int:
    args = build_parser().parse_args()
    setup_app_logger(debug=bool(args.debug))
    with wave.open(args.wav_path, "rb") as wf:
        sample_rate = wf.getframerate()
    # Frames are replayed mono at the file rate.
    config = dataclasses.replace(PipelineConfig.from_namespace(args), sample_rate=sample_rate, channels=1)
    return asyncio.run(_replay(config, args))


if __name__ == "__main__":
    raise SystemExit(main())

"""Command line entry point for the ticket clock."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence, TextIO

from clockcore.logging import configure_logging
from ticketclock.accuracy import AccuracyProbeError, describe_offset, http_ping, measure_accuracy
from ticketclock.config import Settings
from ticketclock.countdown import CountdownFrame
from ticketclock.display import DisplayFrame
from ticketclock.session import ClockSession


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""

    parser = argparse.ArgumentParser(
        description="Drift-corrected reference clock and countdown for ticketing sites"
    )
    parser.add_argument("--log-level", default=None, help="Override TICKETCLOCK_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the platform-time helper server")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Listen port")

    sync = sub.add_parser("sync", help="Synchronise once and print the offsets")
    sync.add_argument(
        "--accuracy",
        action="store_true",
        help="Also ping the helper server and estimate the display error",
    )

    watch = sub.add_parser("watch", help="Show the corrected clock in the terminal")
    watch.add_argument("--source", default=None, help="Platform to display instead of primary")
    watch.add_argument("--countdown", default=None, help="Target as 'YYYY-MM-DD HH:MM'")
    watch.add_argument("--label", default="", help="Countdown label")
    watch.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: until the countdown expires or Ctrl+C)",
    )

    sub.add_parser("gui", help="Open the clock window (default)")
    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.log_level:
        settings.log_level = args.log_level
    if getattr(args, "host", None):
        settings.host = args.host
    if getattr(args, "port", None):
        settings.port = args.port
    return settings


async def run_sync(settings: Settings, *, accuracy: bool = False, out: TextIO = sys.stdout) -> int:
    session = ClockSession(settings)
    offset_ms = await session.estimator.sync()
    await session.registry.sync_all()

    out.write(f"primary: {offset_ms:+.1f} ms ({session.estimator.status.value})\n")
    out.write(f"  {describe_offset(offset_ms).label}\n")
    for view in session.registry.snapshot():
        state = "live" if view.fresh else f"fallback {view.fallback_seconds:+.2f}s"
        out.write(f"{view.source_id}: {view.offset_ms:+.1f} ms ({state})\n")

    if accuracy:
        try:
            report = await measure_accuracy(
                http_ping(f"{settings.proxy_url}/api/health"), offset_ms
            )
        except AccuracyProbeError as exc:
            out.write(f"accuracy: probe failed ({exc})\n")
            return 1
        out.write(f"accuracy: {report.summary()}\n")
    return 0


async def run_watch(
    settings: Settings,
    *,
    source: Optional[str] = None,
    countdown: Optional[str] = None,
    label: str = "",
    duration: Optional[float] = None,
    out: TextIO = sys.stdout,
) -> int:
    lines = {"time": "", "countdown": ""}
    done = asyncio.Event()

    def _redraw() -> None:
        out.write("\r" + "  ".join(part for part in lines.values() if part) + "\033[K")
        out.flush()

    def _on_time(frame: DisplayFrame) -> None:
        marker = "*" if frame.fallback else ""
        lines["time"] = f"[{frame.source_id or 'primary'}{marker}] {frame.text}"
        _redraw()

    def _on_countdown(frame: CountdownFrame) -> None:
        lines["countdown"] = f"T-{frame.text} ({frame.urgency})"
        _redraw()
        if frame.expired:
            done.set()

    session = ClockSession(settings, on_time=_on_time, on_countdown=_on_countdown)
    if source:
        try:
            session.display.select_source(source)
        except KeyError:
            out.write(f"unknown platform: {source}\n")
            return 2
    session.start()
    try:
        if countdown:
            error = session.start_countdown(countdown, label)
            if error:
                out.write(f"{error}\n")
                return 2
        try:
            await asyncio.wait_for(done.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass
    finally:
        session.stop()
        out.write("\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Dispatch to the requested subcommand."""

    args = parse_args(argv)
    command = args.command or "gui"
    settings = _settings(args)

    if command == "gui":
        from ticketclock.app import main as app_main

        app_main(settings)
        return 0

    listener = configure_logging(settings.log_level)
    try:
        if command == "serve":
            from ticketclock.server import run_server

            run_server(settings)
            return 0
        if command == "sync":
            return asyncio.run(run_sync(settings, accuracy=args.accuracy))
        try:
            return asyncio.run(
                run_watch(
                    settings,
                    source=args.source,
                    countdown=args.countdown,
                    label=args.label,
                    duration=args.duration,
                )
            )
        except KeyboardInterrupt:
            return 130
    finally:
        if listener is not None:
            listener.stop()


if __name__ == "__main__":  # pragma: no cover - convenience wrapper
    sys.exit(main())

"""Command line entry point for tailwatch.

Two commands are available:

- ``tailwatch follow FILE``: print the file's last lines, then new lines as
  they are written, until interrupted (like ``tail -F``).
- ``tailwatch serve``: run the HTTP/WebSocket API.

Defaults come from the settings file, overlaid with TAILWATCH_* variables,
overlaid with command line options.
"""

import argparse
import asyncio
import logging
import signal
import sys
import threading

from . import __version__
from .engine import TailEngine, TailError, TailLine, TailState
from .logging_manager import LoggingManager
from .settings import DEFAULT_SETTINGS_PATH, AppSettings, SettingsService, settings_from_env

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tailwatch", description="Follow growing text files")
    parser.add_argument("--version", action="version", version=f"tailwatch {__version__}")
    parser.add_argument(
        "--settings",
        default=str(DEFAULT_SETTINGS_PATH),
        help="Path to the YAML settings file",
    )
    parser.add_argument("--log-level", default=None, help="Level for tailwatch's own logs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    follow = subparsers.add_parser("follow", help="Print new lines of a file as they are written")
    follow.add_argument("file", help="File to follow")
    follow.add_argument("-n", "--lines", type=int, default=None, help="Initial lines to print")
    follow.add_argument("--interval", type=float, default=None, help="Poll interval in seconds")
    follow.add_argument("--no-watch", action="store_true", help="Poll only, no filesystem events")
    follow.add_argument("--line-numbers", action="store_true", help="Prefix lines with their number")

    serve = subparsers.add_parser("serve", help="Run the HTTP/WebSocket API")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Port")

    return parser


def load_settings(args: argparse.Namespace) -> AppSettings:
    settings = settings_from_env(SettingsService(args.settings).load())
    if args.log_level:
        settings.log_level = args.log_level
    return settings


def run_follow(args: argparse.Namespace, settings: AppSettings) -> int:
    """Follow one file on stdout until interrupted or the engine stops.

    Returns:
        Process exit code.
    """
    if args.lines is not None:
        settings.initial_lines = args.lines
    if args.interval is not None:
        settings.poll_interval_seconds = args.interval
    if args.no_watch:
        settings.use_watcher = False

    done = threading.Event()
    engine = TailEngine(args.file, settings.to_tail_config())

    def print_lines(lines: tuple[TailLine, ...]) -> None:
        for line in lines:
            if args.line_numbers:
                sys.stdout.write(f"{line.line_number:>7}  {line.content}\n")
            else:
                sys.stdout.write(f"{line.content}\n")
        sys.stdout.flush()

    def print_error(error: TailError) -> None:
        print(f"tailwatch: {error.message}", file=sys.stderr)

    def watch_state(state: TailState) -> None:
        if state in (TailState.IDLE, TailState.ERROR):
            done.set()

    engine.on_lines_added(print_lines)
    engine.on_error(print_error)
    engine.on_state_changed(watch_state)

    if not engine.start():
        return 1

    previous = signal.signal(signal.SIGINT, lambda signum, frame: done.set())
    try:
        while not done.wait(0.5):
            pass
    finally:
        signal.signal(signal.SIGINT, previous)
        engine.stop()
    return 0


def run_serve(args: argparse.Namespace, settings: AppSettings) -> int:
    from .server import TailwatchServer

    if args.host:
        settings.server_host = args.host
    if args.port:
        settings.server_port = args.port

    logging_manager = LoggingManager(log_dir=settings.log_dir, log_level=settings.log_level)
    server = TailwatchServer(
        settings,
        settings_service=SettingsService(args.settings),
        logging_manager=logging_manager,
    )
    try:
        asyncio.run(server.start_server())
    except KeyboardInterrupt:
        pass
    finally:
        logging_manager.shutdown()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args)

    if args.command == "follow":
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )
        return run_follow(args, settings)
    return run_serve(args, settings)


if __name__ == "__main__":
    sys.exit(main())

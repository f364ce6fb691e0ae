#!/usr/bin/env python3
"""
RoomWatch - A terminal dashboard for an escape-room server script.

Run this to start (or attach to) the server script and open the dashboard.
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

from rich.console import Console
from rich.markup import escape

from roomwatch import __version__
from roomwatch.adapters import HostProbe, make_source_factory
from roomwatch.config import MonitorConfig, load_config
from roomwatch.domain import AggregateState, LinkStatus, StatusUpdate
from roomwatch.errors import ConfigError
from roomwatch.logging_config import get_logger, setup_logging
from roomwatch.observer import ObserverAPI
from roomwatch.parsing import StatusParser
from roomwatch.runner import MonitorRunner

logger = get_logger("main")

EXIT_LOST_CONNECTION = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roomwatch",
        description="RoomWatch - monitor an escape-room server script in the terminal",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=["run"],
        default="run",
        help="What to do (default: run)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    target = parser.add_argument_group("server script")
    target.add_argument("--script", type=Path, help="Server script to run (default: server.py)")
    target.add_argument("--python", metavar="EXE", help="Interpreter for --script (default: this Python)")
    target.add_argument("--command", metavar="CMD", help="Full command line to run instead of python + script")
    target.add_argument("--attach", type=Path, metavar="PATH", help="Read an existing named pipe or file instead of spawning")
    target.add_argument("--cwd", type=Path, help="Working directory for the script")

    display = parser.add_argument_group("display")
    display.add_argument("--refresh-mode", choices=["interval", "line"], help="Re-render on a timer or after each line")
    display.add_argument("--refresh-interval", type=float, metavar="SECONDS", help="Timer period for interval mode (default: 0.25)")
    display.add_argument("--log-capacity", type=int, metavar="N", help="Lines kept in the log pane (default: 1000)")
    display.add_argument("--stale-after", type=float, metavar="SECONDS", help="Dim puzzles not updated for this long (default: 60)")
    display.add_argument("--headless", action="store_true", default=None, help="No TUI; print updates to stdout")

    restart = parser.add_argument_group("restart policy")
    restart.add_argument("--max-restarts", type=int, metavar="N", help="Consecutive restart attempts before giving up (default: 5)")
    restart.add_argument("--backoff", type=float, metavar="SECONDS", help="Initial restart delay, doubled per attempt (default: 1.0)")
    restart.add_argument("--shutdown-timeout", type=float, metavar="SECONDS", help="Grace period before the script is killed (default: 5)")

    parser.add_argument("--grammar", type=Path, metavar="FILE", help="JSON file overriding the line grammar")
    parser.add_argument("--log-dir", type=Path, help="Directory for debug.log (default: .roomwatch)")
    parser.add_argument("--debug", action="store_true", default=None, help="Also print debug logging to stderr in headless mode")
    return parser


def config_from_args(args: argparse.Namespace) -> MonitorConfig:
    """Merge parsed flags over the environment. Raises ConfigError."""
    return load_config({
        "script": args.script,
        "python": args.python,
        "command": args.command,
        "attach": args.attach,
        "cwd": args.cwd,
        "refresh_mode": args.refresh_mode,
        "refresh_interval": args.refresh_interval,
        "log_capacity": args.log_capacity,
        "stale_after": args.stale_after,
        "max_restarts": args.max_restarts,
        "backoff_initial": args.backoff,
        "shutdown_timeout": args.shutdown_timeout,
        "grammar_file": args.grammar,
        "log_dir": args.log_dir,
        "debug": args.debug,
        "headless": args.headless,
    })


def build_monitor(config: MonitorConfig) -> tuple[MonitorRunner, ObserverAPI]:
    """Wire state, parser, runner and Observer API from a config."""
    state = AggregateState(log_capacity=config.log_capacity)
    parser = StatusParser(config.grammar)
    source_factory = make_source_factory(
        command=None if config.attach else config.resolved_command(),
        attach=config.attach,
        cwd=config.cwd,
    )
    runner = MonitorRunner.from_config(config, state, parser, source_factory)
    api = ObserverAPI(state, runner=runner, host_probe=HostProbe(), stale_after=config.stale_after)
    return runner, api


def run_headless(runner: MonitorRunner, console: Console) -> int:
    """Print updates as they arrive until the runner stops or Ctrl-C."""

    def print_update(update: StatusUpdate) -> None:
        match update.type:
            case "puzzle":
                ip = f" ip={update.ip_address}" if update.ip_address else ""
                console.print(f"[bold]PUZZLE[/bold] {escape(update.puzzle_id)} -> {update.state.value}{ip}", highlight=False)
            case "server_info":
                console.print(f"[bold]SERVER[/bold] listening on port {update.listening_port}", highlight=False)
            case "client":
                console.print(f"[bold]CLIENT[/bold] {update.ip_address} ({update.protocol})", highlight=False)
            case "unrecognized":
                console.print(f"[dim]? {escape(update.raw)}[/dim]", highlight=False)
            case _:
                pass

    def print_link(status: LinkStatus) -> None:
        reason = f" ({escape(status.reason)})" if status.reason else ""
        console.print(f"[bold magenta]LINK[/bold magenta] {status.state.value}{reason}", highlight=False)

    runner.on_update(print_update)
    runner.on_link_change(print_link)
    runner.start()
    try:
        # Nobody can press r here, so giving up ends the session
        while runner.is_alive and not runner.link.gave_up:
            time.sleep(0.2)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        gave_up = runner.link.gave_up
        runner.shutdown()

    if gave_up:
        console.print("[bold red]Lost connection to server script; giving up[/bold red]")
        return EXIT_LOST_CONNECTION
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"roomwatch: configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    # Always DEBUG to file; stderr only when the TUI is not drawing
    console_level = logging.DEBUG if config.debug else logging.WARNING
    log_path = setup_logging(config.log_dir, console_level=console_level, console=config.headless)
    logger.info(f"Starting RoomWatch {__version__}: {config.resolved_command() if not config.attach else config.attach}")

    runner, api = build_monitor(config)

    if config.headless:
        console = Console()
        console.print(f"Logging to: {log_path}")
        return run_headless(runner, console)

    # Imported here so headless mode works without a usable terminal
    from observer import RoomWatchTUI

    app = RoomWatchTUI(
        runner,
        api,
        refresh_mode=config.refresh_mode,
        refresh_interval=config.refresh_interval,
        log_capacity=config.log_capacity,
    )
    app.run()
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()

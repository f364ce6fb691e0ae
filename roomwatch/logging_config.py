"""
Logging set-up for RoomWatch.

Everything under the `roomwatch` logger goes to a rotating debug.log in the
log directory. A stderr handler is added only when nothing else owns the
terminal (headless mode); while the TUI is up, stderr output would tear
the screen.

Records that matter for diagnosing a flaky script are one-line and
pipe-separated (LINK, RESTART, PROCESS) so they can be grepped.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


LOG_FILE_NAME = "debug.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

FILE_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)-28s | %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(
    log_dir: Path | str,
    console_level: int = logging.WARNING,
    console: bool = True,
) -> Path:
    """
    Route the roomwatch loggers to <log_dir>/debug.log (DEBUG) and,
    if `console` is set, to stderr at `console_level`.

    Safe to call again: previous handlers are replaced.

    Returns:
        Path to the log file
    """
    log_path = Path(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("roomwatch")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root.addHandler(console_handler)

    root.debug(f"Logging to {log_path.absolute()}")
    return log_path


def get_logger(name: str) -> logging.Logger:
    """Logger under the roomwatch namespace (for modules outside the package)."""
    return logging.getLogger(name if name.startswith("roomwatch.") else f"roomwatch.{name}")


# =============================================================================
# Structured Logging Helpers
# =============================================================================


def log_link(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    details: str | None = None,
) -> None:
    """Log a link state transition."""
    details_str = f" | {details}" if details else ""
    logger.info(f"LINK | {old_state} -> {new_state}{details_str}")


def log_restart(
    logger: logging.Logger,
    attempt: int,
    max_attempts: int,
    delay: float,
    details: str | None = None,
) -> None:
    """Log a scheduled restart of the external script."""
    details_str = f" | {details}" if details else ""
    logger.warning(f"RESTART | attempt {attempt}/{max_attempts} | in {delay:.1f}s{details_str}")


def log_process(
    logger: logging.Logger,
    action: str,
    pid: int | None = None,
    exit_code: int | None = None,
    details: str | None = None,
) -> None:
    """Log external process lifecycle (spawn, exit, kill)."""
    pid_str = f" | pid={pid}" if pid is not None else ""
    code_str = f" | exit={exit_code}" if exit_code is not None else ""
    details_str = f" | {details}" if details else ""
    logger.info(f"PROCESS | {action}{pid_str}{code_str}{details_str}")

"""
MonitorRunner - Reads the external script in a dedicated thread.

The TUI must stay responsive while the script's stream blocks, and a
restart (with its backoff wait) must never happen on the render path. The
runner owns one thread that:

- opens a line source (spawned script or pipe) via the source factory
- parses each line and applies it to AggregateState (sole writer)
- drives the link state machine:
  STARTING -> ATTACHED -> RUNNING -> DISCONNECTED -> RECONNECTING -> ATTACHED ...
- restarts the source with exponential backoff, up to max_restarts in a row

Architecture:
- TUI (main thread): sends commands via queue, reads state through ObserverAPI
- Runner thread: owns the source and all AggregateState mutations
- Callbacks: called from the runner thread (the TUI forwards them with post_message())
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable

from roomwatch.adapters.host import local_hostname, local_ip
from roomwatch.domain import (
    AggregateState,
    LinkState,
    LinkStatus,
    ServerInfo,
    StatusUpdate,
    can_transition,
)
from roomwatch.errors import ProcessLost
from roomwatch.logging_config import log_link, log_restart

if TYPE_CHECKING:
    from roomwatch.adapters.process import LineSource
    from roomwatch.parsing import StatusParser

logger = logging.getLogger(__name__)

# How long one read waits before the loop re-checks commands and shutdown
READ_POLL_INTERVAL = 0.1


class Command(Enum):
    """Commands that can be sent to the runner thread."""
    RECONNECT = auto()
    CLEAR_LOG = auto()


def _default_identity() -> tuple[str, str]:
    return local_hostname(), local_ip()


class MonitorRunner:
    """
    Supervises the external script from a dedicated thread.

    Usage:
        runner = MonitorRunner(state, parser, source_factory)
        runner.start()  # Call once on TUI mount

        # These are thread-safe, non-blocking
        runner.request_reconnect()
        runner.request_clear_log()

        runner.shutdown()  # Call on TUI unmount; kills the script
    """

    def __init__(
        self,
        state: AggregateState,
        parser: "StatusParser",
        source_factory: Callable[[], "LineSource"],
        *,
        max_restarts: int = 5,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        stable_after: float = 30.0,
        shutdown_timeout: float = 5.0,
        identity: Callable[[], tuple[str, str]] = _default_identity,
    ):
        self._state = state
        self._parser = parser
        self._source_factory = source_factory
        self._max_restarts = max_restarts
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._stable_after = stable_after
        self._shutdown_timeout = shutdown_timeout
        self._identity = identity

        self._command_queue: queue.Queue[Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()
        self._reconnect_requested = False

        self._source: "LineSource | None" = None
        self._source_lock = threading.Lock()

        self._update_callbacks: list[Callable[[StatusUpdate], None]] = []
        self._link_callbacks: list[Callable[[LinkStatus], None]] = []

    @classmethod
    def from_config(
        cls,
        config,
        state: AggregateState,
        parser: "StatusParser",
        source_factory: Callable[[], "LineSource"],
    ) -> "MonitorRunner":
        """Build a runner with the restart policy from a MonitorConfig."""
        return cls(
            state,
            parser,
            source_factory,
            max_restarts=config.max_restarts,
            backoff_initial=config.backoff_initial,
            backoff_max=config.backoff_max,
            stable_after=config.stable_after,
            shutdown_timeout=config.shutdown_timeout,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> AggregateState:
        return self._state

    @property
    def link(self) -> LinkStatus:
        return self._state.link

    @property
    def is_alive(self) -> bool:
        """Whether the runner thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def pid(self) -> int | None:
        with self._source_lock:
            return self._source.pid if self._source else None

    # =========================================================================
    # Callbacks
    # =========================================================================

    def on_update(self, callback: Callable[[StatusUpdate], None]) -> None:
        """Register a callback run (in the runner thread) after each applied line."""
        self._update_callbacks.append(callback)

    def on_link_change(self, callback: Callable[[LinkStatus], None]) -> None:
        """Register a callback run (in the runner thread) on every link status change."""
        self._link_callbacks.append(callback)

    def _notify(self, callbacks: list[Callable], payload) -> None:
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Callback {callback!r} failed: {e}", exc_info=True)

    # =========================================================================
    # Lifecycle (called from the UI thread)
    # =========================================================================

    def start(self) -> None:
        """Start the runner thread. Call once."""
        if self.is_alive:
            logger.warning("Runner thread already running")
            return

        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._thread_main, daemon=True, name="MonitorRunner")
        self._thread.start()
        logger.info("Runner thread started")

    def shutdown(self, timeout: float | None = None) -> bool:
        """
        Stop reading, terminate the external script and join the thread.

        Returns:
            True if the thread exited within the timeout
        """
        timeout = self._shutdown_timeout if timeout is None else timeout
        if self._thread is None:
            return True

        logger.info("Requesting runner shutdown")
        self._shutdown_event.set()

        # Kill the script from here so a blocked read cannot delay us
        with self._source_lock:
            source = self._source
        if source is not None:
            source.close(timeout=timeout / 2)

        self._thread.join(timeout=timeout)
        clean = not self._thread.is_alive()
        if clean:
            logger.info("Runner thread shut down")
        else:
            logger.warning(f"Runner thread did not exit within {timeout}s")
        self._thread = None
        return clean

    # =========================================================================
    # Public commands (thread-safe via queue)
    # =========================================================================

    def request_reconnect(self) -> None:
        """Restart the script now, resetting the restart counter."""
        self._command_queue.put(Command.RECONNECT)

    def request_clear_log(self) -> None:
        """Empty the log buffer (done on the runner thread, the state's writer)."""
        self._command_queue.put(Command.CLEAR_LOG)

    # =========================================================================
    # Runner thread
    # =========================================================================

    def _thread_main(self) -> None:
        self._state.bind_writer()
        try:
            self._supervise()
        except Exception as e:
            logger.error(f"Runner thread error: {e}", exc_info=True)
        finally:
            self._set_link(LinkState.TERMINATED, reason="monitor stopped")
            self._state.release_writer()
            logger.debug("Runner thread exiting")

    def _drain_commands(self) -> None:
        while True:
            try:
                cmd = self._command_queue.get_nowait()
            except queue.Empty:
                return
            logger.debug(f"Processing command: {cmd.name}")
            if cmd == Command.RECONNECT:
                self._reconnect_requested = True
            elif cmd == Command.CLEAR_LOG:
                self._state.clear_log()

    def _set_link(self, new_state: LinkState, **fields) -> None:
        current = self._state.link
        if new_state != current.state and not can_transition(current.state, new_state):
            logger.warning(f"Ignoring invalid link transition {current.state.value} -> {new_state.value}")
            return

        status = LinkStatus(state=new_state, since=datetime.now(), **fields)
        self._state.set_link(status)
        if new_state != current.state:
            log_link(logger, current.state.value, new_state.value, fields.get("reason"))
        self._notify(self._link_callbacks, status)

    def _supervise(self) -> None:
        """Connect, read, and reconnect until shutdown."""
        attempt = 0
        while not self._shutdown_event.is_set():
            lost, session_length = self._run_session(attempt)
            if self._shutdown_event.is_set():
                break

            if session_length >= self._stable_after:
                attempt = 0
            if self._reconnect_requested:
                self._reconnect_requested = False
                attempt = 0
                skip_backoff = True
            else:
                skip_backoff = False

            self._state.note(f"[roomwatch] Lost connection to script: {lost}")
            self._set_link(
                LinkState.DISCONNECTED,
                reason=str(lost),
                exit_code=lost.exit_code,
                attempt=attempt,
                max_attempts=self._max_restarts,
            )

            next_attempt = self._wait_for_restart(attempt, skip_backoff)
            if next_attempt is None:
                break
            attempt = next_attempt

    def _run_session(self, attempt: int) -> tuple[ProcessLost, float]:
        """
        One source lifetime: open, read until lost, close.

        Returns:
            (the ProcessLost that ended it, seconds the session stayed attached)
        """
        source = self._source_factory()
        with self._source_lock:
            self._source = source
        opened_at = time.monotonic()
        attached = False

        try:
            started_at = source.open()
            hostname, ip = self._identity()
            self._state.attach(ServerInfo(hostname=hostname, ip_address=ip, start_time=started_at))
            self._set_link(LinkState.ATTACHED, attempt=attempt, max_attempts=self._max_restarts)
            self._state.note(f"[roomwatch] Attached to {source.describe()}")
            attached = True
            running = False

            while not self._shutdown_event.is_set():
                self._drain_commands()
                if self._reconnect_requested:
                    raise ProcessLost("restart requested by operator")

                raw = source.read(timeout=READ_POLL_INTERVAL)
                if raw is None:
                    continue

                if not running:
                    self._set_link(LinkState.RUNNING, attempt=attempt, max_attempts=self._max_restarts)
                    running = True

                update = self._parser.parse(raw)
                self._state.apply(update, raw)
                self._notify(self._update_callbacks, update)

            lost = ProcessLost("monitor shutting down")
        except ProcessLost as e:
            lost = e
        except Exception as e:
            logger.error(f"Unexpected error while reading {source.describe()}: {e}", exc_info=True)
            lost = ProcessLost(f"internal error: {e}")
        finally:
            close_timeout = self._shutdown_timeout / 2 if self._shutdown_event.is_set() else self._shutdown_timeout
            source.close(timeout=close_timeout)
            with self._source_lock:
                self._source = None

        session_length = time.monotonic() - opened_at if attached else 0.0
        return lost, session_length

    def _backoff_delay(self, attempt: int) -> float:
        return min(self._backoff_initial * (2 ** attempt), self._backoff_max)

    def _wait_for_restart(self, attempt: int, skip_backoff: bool = False) -> int | None:
        """
        Wait out the backoff (or, when exhausted, an operator reconnect).

        Returns:
            The attempt number for the next session, or None on shutdown
        """
        if attempt >= self._max_restarts:
            self._set_link(
                LinkState.DISCONNECTED,
                reason=self._state.link.reason,
                exit_code=self._state.link.exit_code,
                attempt=attempt,
                max_attempts=self._max_restarts,
                gave_up=True,
            )
            self._state.note(
                f"[roomwatch] Gave up after {attempt} restart attempt(s); press r to reconnect"
            )
            logger.error(f"Restart attempts exhausted ({attempt}/{self._max_restarts})")

            while not self._reconnect_requested:
                if self._shutdown_event.wait(READ_POLL_INTERVAL):
                    return None
                self._drain_commands()
            self._reconnect_requested = False
            attempt = 0
            skip_backoff = True

        delay = 0.0 if skip_backoff else self._backoff_delay(attempt)
        attempt += 1
        self._set_link(
            LinkState.RECONNECTING,
            reason=self._state.link.reason,
            attempt=attempt,
            max_attempts=self._max_restarts,
        )
        log_restart(logger, attempt, self._max_restarts, delay)

        deadline = time.monotonic() + delay
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if self._shutdown_event.wait(min(remaining, READ_POLL_INTERVAL)):
                return None
            self._drain_commands()
            if self._reconnect_requested:
                self._reconnect_requested = False
                break

        if self._shutdown_event.is_set():
            return None
        return attempt

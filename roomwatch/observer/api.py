"""
ObserverAPI - Clean interface between the monitor and whoever displays it.

All methods are either:
- Queries (get_*): Read-only, safe to call any number of times
- Commands (do_*): Ask the runner to do something, may raise ObserverError

Queries work from StateSnapshot copies, so the TUI never reads state while
the runner thread is half way through applying a line.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from roomwatch.domain import AggregateState, LinkState, LogEntry, StateSnapshot

from .snapshots import (
    ClientDisplaySnapshot,
    DashboardSnapshot,
    HostDisplaySnapshot,
    LinkDisplaySnapshot,
    PuzzleDisplaySnapshot,
    ServerDisplaySnapshot,
)

if TYPE_CHECKING:
    from roomwatch.adapters.host import HostProbe
    from roomwatch.runner import MonitorRunner

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ObserverError(Exception):
    """Base exception for Observer API errors."""

    pass


class RunnerNotRunningError(ObserverError):
    """Raised when a command needs the runner thread but it is not alive."""

    pass


class MonitorStoppedError(ObserverError):
    """Raised when a command arrives after the monitor terminated."""

    pass


# =============================================================================
# Observer API
# =============================================================================


class ObserverAPI:
    """
    Read-only view of AggregateState plus the operator commands.

    Args:
        state: The runner's AggregateState
        runner: MonitorRunner that executes commands (None: queries only)
        host_probe: Source of host load figures (None: no host row)
        stale_after: Seconds without an update before a puzzle is shown stale
    """

    def __init__(
        self,
        state: AggregateState,
        runner: "MonitorRunner | None" = None,
        host_probe: "HostProbe | None" = None,
        stale_after: float = 60.0,
    ):
        self._state = state
        self._runner = runner
        self._host_probe = host_probe
        self._stale_after = stale_after

    # =========================================================================
    # QUERIES (Read-Only)
    # =========================================================================

    def get_dashboard_snapshot(self, now: datetime | None = None) -> DashboardSnapshot:
        """Get everything one render needs, derived at `now`."""
        now = now or datetime.now()
        snap = self._state.snapshot(now)
        return DashboardSnapshot(
            taken_at=now,
            server=self._server_display(snap, now),
            puzzles=self._puzzle_display(snap, now),
            clients=tuple(
                ClientDisplaySnapshot.from_domain(c)
                for c in sorted(snap.clients.values(), key=lambda c: c.first_seen)
            ),
            link=LinkDisplaySnapshot.from_domain(snap.link),
            host=self.get_host_snapshot(),
            log_count=snap.log_count,
            log_capacity=snap.log_capacity,
            last_log_seq=snap.last_log_seq,
            lines_seen=snap.lines_seen,
            unrecognized_count=snap.unrecognized_count,
        )

    def get_puzzles(self, now: datetime | None = None) -> tuple[PuzzleDisplaySnapshot, ...]:
        """Get puzzles ordered by id."""
        now = now or datetime.now()
        return self._puzzle_display(self._state.snapshot(now), now)

    def get_server(self, now: datetime | None = None) -> ServerDisplaySnapshot | None:
        """Get server info with uptime computed at `now` (None before first attach)."""
        now = now or datetime.now()
        return self._server_display(self._state.snapshot(now), now)

    def get_link(self) -> LinkDisplaySnapshot:
        return LinkDisplaySnapshot.from_domain(self._state.link)

    def get_host_snapshot(self) -> HostDisplaySnapshot | None:
        if self._host_probe is None:
            return None
        try:
            return HostDisplaySnapshot.from_stats(self._host_probe.sample())
        except Exception as e:
            # psutil can fail on exotic platforms; the dashboard still works
            logger.warning(f"Host probe failed: {e}")
            return None

    def get_log_entries(self, since_seq: int = 0) -> tuple[LogEntry, ...]:
        """Get log entries newer than since_seq, oldest first."""
        if since_seq <= 0:
            return self._state.log_entries()
        return self._state.log_since(since_seq)

    def is_monitoring(self) -> bool:
        """Whether the runner thread is alive."""
        return self._runner is not None and self._runner.is_alive

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def do_reconnect(self) -> None:
        """
        Restart the external script now and reset the restart counter.

        Raises:
            RunnerNotRunningError: If there is no live runner
            MonitorStoppedError: If the monitor already terminated
        """
        runner = self._require_runner()
        logger.info("Observer requested reconnect")
        runner.request_reconnect()

    def do_clear_log(self) -> None:
        """
        Empty the log pane's buffer.

        Raises:
            RunnerNotRunningError: If there is no live runner
            MonitorStoppedError: If the monitor already terminated
        """
        runner = self._require_runner()
        logger.info("Observer requested log clear")
        runner.request_clear_log()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_runner(self) -> "MonitorRunner":
        if self._state.link.state == LinkState.TERMINATED:
            raise MonitorStoppedError("The monitor has stopped")
        if self._runner is None or not self._runner.is_alive:
            raise RunnerNotRunningError("The monitor runner is not running")
        return self._runner

    def _server_display(self, snap: StateSnapshot, now: datetime) -> ServerDisplaySnapshot | None:
        if snap.server is None:
            return None
        return ServerDisplaySnapshot.from_domain(snap.server, now)

    def _puzzle_display(self, snap: StateSnapshot, now: datetime) -> tuple[PuzzleDisplaySnapshot, ...]:
        return tuple(
            PuzzleDisplaySnapshot.from_domain(snap.puzzles[pid], now, self._stale_after)
            for pid in sorted(snap.puzzles)
        )

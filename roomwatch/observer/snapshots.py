"""
Display snapshots - Read-only views of monitor state for the TUI/headless output.

These types are optimized for display, not for domain logic.
They flatten nested structures and compute derived values (uptime, age,
staleness) at read time, so the numbers move even when no line arrives.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from roomwatch.adapters.host import HostStats
from roomwatch.domain import (
    ClientRecord,
    LinkState,
    LinkStatus,
    PuzzleStatus,
    ServerInfo,
)


def format_duration(delta: timedelta) -> str:
    """HH:MM:SS, with a day count once past 24 hours."""
    total = max(0, int(delta.total_seconds()))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{days}d {clock}" if days else clock


@dataclass(frozen=True)
class PuzzleDisplaySnapshot:
    """One row of the puzzle table."""

    id: str
    state: str
    ip_address: str
    last_updated: datetime
    age: timedelta
    is_stale: bool

    @classmethod
    def from_domain(
        cls, puzzle: PuzzleStatus, now: datetime, stale_after: float
    ) -> "PuzzleDisplaySnapshot":
        """Create from domain PuzzleStatus."""
        return cls(
            id=puzzle.id,
            state=puzzle.state.value,
            ip_address=puzzle.ip_address or "-",
            last_updated=puzzle.observed_at,
            age=max(now - puzzle.observed_at, timedelta(0)),
            is_stale=puzzle.is_stale(now, stale_after),
        )


@dataclass(frozen=True)
class ServerDisplaySnapshot:
    """Server identity and health for the header."""

    hostname: str
    ip_address: str
    start_time: datetime
    uptime: timedelta
    uptime_display: str
    listening_port: int | None
    ready: bool
    last_heartbeat: datetime | None

    @classmethod
    def from_domain(cls, server: ServerInfo, now: datetime) -> "ServerDisplaySnapshot":
        """Create from domain ServerInfo."""
        uptime = server.uptime(now)
        return cls(
            hostname=server.hostname,
            ip_address=server.ip_address,
            start_time=server.start_time,
            uptime=uptime,
            uptime_display=format_duration(uptime),
            listening_port=server.listening_port,
            ready=server.ready,
            last_heartbeat=server.last_heartbeat,
        )


@dataclass(frozen=True)
class ClientDisplaySnapshot:
    """A client (browser or puzzle controller) the server has talked to."""

    ip_address: str
    protocol: str
    first_seen: datetime
    last_seen: datetime
    hits: int

    @classmethod
    def from_domain(cls, client: ClientRecord) -> "ClientDisplaySnapshot":
        return cls(
            ip_address=client.ip_address,
            protocol=client.protocol,
            first_seen=client.first_seen,
            last_seen=client.last_seen,
            hits=client.hits,
        )


@dataclass(frozen=True)
class LinkDisplaySnapshot:
    """Link status plus the banner text the UI shows when it is not healthy."""

    state: str
    since: datetime
    attempt: int
    max_attempts: int
    gave_up: bool
    reason: str | None
    exit_code: int | None

    @property
    def is_healthy(self) -> bool:
        return self.state in (LinkState.ATTACHED.value, LinkState.RUNNING.value)

    @property
    def banner(self) -> str:
        """Empty when healthy."""
        if self.is_healthy or self.state == LinkState.STARTING.value:
            return ""
        if self.state == LinkState.TERMINATED.value:
            return "Monitor stopped"
        if self.gave_up:
            return f"Lost connection to server script after {self.attempt} restart(s) - press r to reconnect"
        if self.state == LinkState.RECONNECTING.value:
            return f"Disconnected - reconnecting (attempt {self.attempt}/{self.max_attempts})"
        detail = f": {self.reason}" if self.reason else ""
        return f"Disconnected{detail}"

    @classmethod
    def from_domain(cls, link: LinkStatus) -> "LinkDisplaySnapshot":
        return cls(
            state=link.state.value,
            since=link.since,
            attempt=link.attempt,
            max_attempts=link.max_attempts,
            gave_up=link.gave_up,
            reason=link.reason,
            exit_code=link.exit_code,
        )


@dataclass(frozen=True)
class HostDisplaySnapshot:
    """Local host load."""

    cpu_percent: float
    ram_used_mb: int
    ram_total_mb: int
    os_uptime_display: str

    @classmethod
    def from_stats(cls, stats: HostStats) -> "HostDisplaySnapshot":
        return cls(
            cpu_percent=stats.cpu_percent,
            ram_used_mb=stats.ram_used_mb,
            ram_total_mb=stats.ram_total_mb,
            os_uptime_display=format_duration(timedelta(seconds=stats.os_uptime_seconds)),
        )


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything one render tick needs."""

    taken_at: datetime
    server: ServerDisplaySnapshot | None
    puzzles: tuple[PuzzleDisplaySnapshot, ...]
    clients: tuple[ClientDisplaySnapshot, ...]
    link: LinkDisplaySnapshot
    host: HostDisplaySnapshot | None
    log_count: int
    log_capacity: int
    last_log_seq: int
    lines_seen: int
    unrecognized_count: int

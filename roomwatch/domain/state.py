"""
AggregateState - the single piece of shared mutable state.

Owned by the MonitorRunner, which is its only writer. The Observer API reads
it through immutable StateSnapshot copies, so the renderer never sees a
half-applied update. The lock is held only for one mutation or one copy.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .link import LinkState, LinkStatus
from .log_buffer import LogBuffer, LogEntry
from .puzzle import PuzzleStatus
from .server import ClientRecord, ServerInfo
from .types import IpAddress, PuzzleId, StreamSource
from .updates import (
    ClientSeen,
    Heartbeat,
    PuzzleUpdate,
    RawLine,
    ServerInfoUpdate,
    StatusUpdate,
)

logger = logging.getLogger(__name__)


class StateSnapshot(BaseModel):
    """Immutable copy of AggregateState at one moment (a render tick)."""
    model_config = ConfigDict(frozen=True)

    taken_at: datetime
    server: ServerInfo | None
    puzzles: dict[PuzzleId, PuzzleStatus]
    clients: dict[IpAddress, ClientRecord]
    link: LinkStatus
    log_count: int
    log_capacity: int
    last_log_seq: int
    lines_seen: int
    unrecognized_count: int


class AggregateState:
    """
    Latest known status per puzzle, server info, clients and recent logs.

    Single-writer discipline: the first call to bind_writer() records the
    writing thread; afterwards mutations from any other thread raise
    RuntimeError. Until bound (e.g. in tests) any thread may write.
    """

    def __init__(self, log_capacity: int = 1000):
        self._lock = threading.Lock()
        self._writer: int | None = None

        self._server: ServerInfo | None = None
        self._puzzles: dict[PuzzleId, PuzzleStatus] = {}
        self._clients: dict[IpAddress, ClientRecord] = {}
        self._logs = LogBuffer(log_capacity)
        self._link = LinkStatus(state=LinkState.STARTING, since=datetime.now())

        self._lines_seen = 0
        self._unrecognized = 0

    # =========================================================================
    # Writer side
    # =========================================================================

    def bind_writer(self) -> None:
        """Make the calling thread the only thread allowed to mutate state."""
        self._writer = threading.get_ident()

    def release_writer(self) -> None:
        self._writer = None

    def _check_writer(self) -> None:
        if self._writer is not None and self._writer != threading.get_ident():
            raise RuntimeError("AggregateState mutated from a thread other than its writer")

    def attach(self, server: ServerInfo) -> None:
        """Record a new process lifetime. Puzzles, clients and logs are kept."""
        self._check_writer()
        with self._lock:
            self._server = server
        logger.debug(f"Attached: host={server.hostname} ip={server.ip_address} start={server.start_time.isoformat()}")

    def set_link(self, status: LinkStatus) -> None:
        self._check_writer()
        with self._lock:
            self._link = status

    def note(self, text: str, now: datetime | None = None) -> LogEntry:
        """Append a monitor-originated line (restart notices and the like)."""
        self._check_writer()
        with self._lock:
            return self._logs.append(text, StreamSource.MONITOR, now or datetime.now())

    def apply(self, update: StatusUpdate, raw: RawLine) -> bool:
        """
        Apply one parsed update and record its raw line in the log buffer.

        Returns:
            True if puzzle, server or client state changed
        """
        self._check_writer()
        with self._lock:
            self._lines_seen += 1
            changed = False

            match update.type:
                case "puzzle":
                    changed = self._apply_puzzle(update, raw.received_at)
                case "server_info":
                    changed = self._apply_server_info(update)
                case "heartbeat":
                    changed = self._apply_heartbeat(update, raw.received_at)
                case "client":
                    changed = self._apply_client(update, raw.received_at)
                case "unrecognized":
                    self._unrecognized += 1
                case "log":
                    pass

            self._logs.append(
                raw.text,
                raw.source,
                raw.received_at,
                diagnostic=update.type == "unrecognized",
            )
            return changed

    def clear_log(self) -> None:
        self._check_writer()
        with self._lock:
            self._logs.clear()

    # --- apply helpers (called with the lock held) ---

    def _apply_puzzle(self, update: PuzzleUpdate, now: datetime) -> bool:
        current = self._puzzles.get(update.puzzle_id)

        if current is not None:
            if update.register_only:
                return False
            # Only script clocks are ordered; otherwise the later arrival wins
            both_script = update.script_time and current.script_time
            if both_script and update.timestamp < current.last_updated:
                logger.debug(
                    f"Discarding out-of-order update for {update.puzzle_id}: "
                    f"T={update.timestamp} < stored T={current.last_updated}"
                )
                return False

        ip = update.ip_address
        if ip is None and current is not None:
            ip = current.ip_address

        self._puzzles[update.puzzle_id] = PuzzleStatus(
            id=update.puzzle_id,
            state=update.state,
            ip_address=ip,
            last_updated=update.timestamp,
            script_time=update.script_time,
            observed_at=now,
        )
        return True

    def _apply_server_info(self, update: ServerInfoUpdate) -> bool:
        if self._server is None:
            return False
        self._server = self._server.model_copy(
            update={"listening_port": update.listening_port, "ready": update.ready}
        )
        return True

    def _apply_heartbeat(self, update: Heartbeat, now: datetime) -> bool:
        if self._server is None:
            return False
        self._server = self._server.model_copy(
            update={"last_heartbeat": now, "reported_uptime": update.uptime}
        )
        return True

    def _apply_client(self, update: ClientSeen, now: datetime) -> bool:
        existing = self._clients.get(update.ip_address)
        if existing is None:
            self._clients[update.ip_address] = ClientRecord(
                ip_address=update.ip_address,
                protocol=update.protocol,
                first_seen=now,
                last_seen=now,
            )
        else:
            self._clients[update.ip_address] = existing.model_copy(
                update={"last_seen": now, "hits": existing.hits + 1, "protocol": update.protocol}
            )
        return True

    # =========================================================================
    # Reader side
    # =========================================================================

    def snapshot(self, now: datetime | None = None) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(
                taken_at=now or datetime.now(),
                server=self._server,
                puzzles=dict(self._puzzles),
                clients=dict(self._clients),
                link=self._link,
                log_count=len(self._logs),
                log_capacity=self._logs.capacity,
                last_log_seq=self._logs.last_seq,
                lines_seen=self._lines_seen,
                unrecognized_count=self._unrecognized,
            )

    def log_since(self, seq: int) -> tuple[LogEntry, ...]:
        with self._lock:
            return self._logs.since(seq)

    def log_entries(self) -> tuple[LogEntry, ...]:
        with self._lock:
            return self._logs.entries()

    @property
    def link(self) -> LinkStatus:
        with self._lock:
            return self._link

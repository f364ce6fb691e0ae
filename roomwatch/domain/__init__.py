"""Domain models for RoomWatch.

Pure data with no I/O. Records are frozen pydantic models; AggregateState is
the one mutable object and guards itself with a lock.
"""

from .types import PuzzleId, IpAddress, StreamSource
from .puzzle import PuzzleState, PuzzleStatus
from .server import ServerInfo, ClientRecord
from .link import LinkState, LinkStatus, LINK_TRANSITIONS, can_transition
from .updates import (
    RawLine,
    PuzzleUpdate,
    LogLine,
    ServerInfoUpdate,
    Heartbeat,
    ClientSeen,
    Unrecognized,
    StatusUpdate,
)
from .log_buffer import LogBuffer, LogEntry
from .state import AggregateState, StateSnapshot

__all__ = [
    "PuzzleId",
    "IpAddress",
    "StreamSource",
    "PuzzleState",
    "PuzzleStatus",
    "ServerInfo",
    "ClientRecord",
    "LinkState",
    "LinkStatus",
    "LINK_TRANSITIONS",
    "can_transition",
    "RawLine",
    "PuzzleUpdate",
    "LogLine",
    "ServerInfoUpdate",
    "Heartbeat",
    "ClientSeen",
    "Unrecognized",
    "StatusUpdate",
    "LogBuffer",
    "LogEntry",
    "AggregateState",
    "StateSnapshot",
]

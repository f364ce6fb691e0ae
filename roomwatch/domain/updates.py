"""
Parsed update types - the tagged result of parsing one line.

Every raw line from the external script becomes exactly one of these.
The union is discriminated on the `type` field so consumers resolve it with
a `match update.type` rather than isinstance checks.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator

from .puzzle import PuzzleState
from .types import IpAddress, PuzzleId, StreamSource


class RawLine(BaseModel):
    """One line as read from the script, before parsing."""
    model_config = ConfigDict(frozen=True)

    text: str
    source: StreamSource = StreamSource.STDOUT
    received_at: datetime


# --- Updates ---

class PuzzleUpdate(BaseModel):
    """Status observation for one puzzle."""
    model_config = ConfigDict(frozen=True)
    type: Literal["puzzle"] = "puzzle"

    puzzle_id: PuzzleId
    state: PuzzleState = PuzzleState.UNKNOWN
    ip_address: IpAddress | None = None
    timestamp: float
    # True when timestamp came from the script (T=), not from arrival time
    script_time: bool = False
    # Registration lines create a puzzle but never overwrite a known one
    register_only: bool = False


class LogLine(BaseModel):
    """A plain log message from the script."""
    model_config = ConfigDict(frozen=True)
    type: Literal["log"] = "log"

    level: str
    message: str


class ServerInfoUpdate(BaseModel):
    """The script reported something about its server (e.g. listening port)."""
    model_config = ConfigDict(frozen=True)
    type: Literal["server_info"] = "server_info"

    listening_port: int | None = None
    ready: bool = True


class Heartbeat(BaseModel):
    """Periodic liveness line, optionally carrying the script's own uptime."""
    model_config = ConfigDict(frozen=True)
    type: Literal["heartbeat"] = "heartbeat"

    timestamp: float | None = None
    uptime: float | None = None


class ClientSeen(BaseModel):
    """A network client (HTTP request or UDP message) talked to the script."""
    model_config = ConfigDict(frozen=True)
    type: Literal["client"] = "client"

    ip_address: IpAddress
    protocol: Literal["http", "udp"]


class Unrecognized(BaseModel):
    """A line that matched no known pattern. Kept verbatim for the operator."""
    model_config = ConfigDict(frozen=True)
    type: Literal["unrecognized"] = "unrecognized"

    raw: str
    reason: str | None = None


# --- The discriminated union ---

StatusUpdate = Annotated[
    Union[
        PuzzleUpdate,
        LogLine,
        ServerInfoUpdate,
        Heartbeat,
        ClientSeen,
        Unrecognized,
    ],
    Discriminator("type"),
]

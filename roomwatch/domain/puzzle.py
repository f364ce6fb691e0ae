from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .types import IpAddress, PuzzleId


class PuzzleState(Enum):
    UNKNOWN = "Unknown"
    IDLE = "Idle"
    ACTIVE = "Active"
    SOLVED = "Solved"
    ERROR = "Error"

    @classmethod
    def parse(cls, value: str | None) -> "PuzzleState":
        """Case-insensitive lookup. Anything unrecognised degrades to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        wanted = value.strip().lower()
        for state in cls:
            if state.value.lower() == wanted:
                return state
        return cls.UNKNOWN


class PuzzleStatus(BaseModel):
    """Latest known status of one puzzle.

    last_updated orders updates. It is the script clock when script_time is
    set (the line carried T=), otherwise the arrival time, and the two are
    never compared with each other. observed_at is the local arrival time
    and drives staleness.
    """
    model_config = ConfigDict(frozen=True)

    id: PuzzleId
    state: PuzzleState = PuzzleState.UNKNOWN
    ip_address: IpAddress | None = None
    last_updated: float
    script_time: bool = False
    observed_at: datetime

    def is_stale(self, now: datetime, stale_after: float) -> bool:
        """True when no update has arrived within stale_after seconds."""
        return (now - self.observed_at).total_seconds() > stale_after

"""Link state machine values for the connection to the external script."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class LinkState(Enum):
    STARTING = "starting"
    ATTACHED = "attached"
    RUNNING = "running"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


# Allowed transitions. TERMINATED is reachable from anywhere (user quit).
LINK_TRANSITIONS: dict[LinkState, frozenset[LinkState]] = {
    LinkState.STARTING: frozenset({LinkState.ATTACHED, LinkState.DISCONNECTED}),
    LinkState.ATTACHED: frozenset({LinkState.RUNNING, LinkState.DISCONNECTED}),
    LinkState.RUNNING: frozenset({LinkState.DISCONNECTED}),
    LinkState.DISCONNECTED: frozenset({LinkState.RECONNECTING}),
    LinkState.RECONNECTING: frozenset({LinkState.ATTACHED, LinkState.DISCONNECTED}),
    LinkState.TERMINATED: frozenset(),
}


def can_transition(old: LinkState, new: LinkState) -> bool:
    if new is LinkState.TERMINATED:
        return old is not LinkState.TERMINATED
    return new in LINK_TRANSITIONS[old]


class LinkStatus(BaseModel):
    """Current link state plus what the UI needs to explain it."""
    model_config = ConfigDict(frozen=True)

    state: LinkState = LinkState.STARTING
    since: datetime
    attempt: int = 0
    max_attempts: int = 0
    gave_up: bool = False
    reason: str | None = None
    exit_code: int | None = None

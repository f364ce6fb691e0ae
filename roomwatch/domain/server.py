from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from .types import IpAddress


class ServerInfo(BaseModel):
    """Identity of the supervised script's host and the current process lifetime.

    hostname, ip_address and start_time are fixed at attach. Uptime is never
    stored; it is derived from start_time whenever it is displayed.
    """
    model_config = ConfigDict(frozen=True)

    hostname: str
    ip_address: str
    start_time: datetime

    # Reported by the script itself
    listening_port: int | None = None
    ready: bool = False
    last_heartbeat: datetime | None = None
    reported_uptime: float | None = None

    def uptime(self, now: datetime) -> timedelta:
        """Time since the current process was attached (never negative)."""
        return max(now - self.start_time, timedelta(0))


class ClientRecord(BaseModel):
    """A client (HTTP or UDP peer) seen talking to the script."""
    model_config = ConfigDict(frozen=True)

    ip_address: IpAddress
    protocol: str
    first_seen: datetime
    last_seen: datetime
    hits: int = 1

"""Host probe - identity and load of the machine running the escape-room server."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def local_hostname() -> str:
    try:
        return socket.gethostname() or UNKNOWN
    except OSError:
        return UNKNOWN


def local_ip() -> str:
    """Primary local IPv4 address (the one used for outbound traffic).

    Connecting a UDP socket sends no packets; it only makes the kernel pick
    a source address.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(("10.255.255.255", 1))
            return probe.getsockname()[0]
    except OSError:
        pass
    try:
        return socket.gethostbyname(local_hostname())
    except OSError:
        return UNKNOWN


@dataclass(frozen=True)
class HostStats:
    """One sample of host load."""

    cpu_percent: float
    ram_used_mb: int
    ram_total_mb: int
    os_uptime_seconds: float


class HostProbe:
    """Samples CPU, memory and OS uptime through psutil."""

    def __init__(self) -> None:
        # First cpu_percent(None) call only establishes a baseline
        psutil.cpu_percent(interval=None)
        self._boot_time = psutil.boot_time()

    def sample(self) -> HostStats:
        vm = psutil.virtual_memory()
        return HostStats(
            cpu_percent=psutil.cpu_percent(interval=None),
            ram_used_mb=int(vm.used / 1024 / 1024),
            ram_total_mb=int(vm.total / 1024 / 1024),
            os_uptime_seconds=max(0.0, time.time() - self._boot_time),
        )

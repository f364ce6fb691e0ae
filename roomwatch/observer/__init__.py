"""
Observer layer - Operator interface for the monitor.

Provides:
- ObserverAPI: Query/command interface for the TUI and headless mode
- Display snapshots: Read-only views of monitor state
"""

from .snapshots import (
    ClientDisplaySnapshot,
    DashboardSnapshot,
    HostDisplaySnapshot,
    LinkDisplaySnapshot,
    PuzzleDisplaySnapshot,
    ServerDisplaySnapshot,
    format_duration,
)
from .api import (
    MonitorStoppedError,
    ObserverAPI,
    ObserverError,
    RunnerNotRunningError,
)

__all__ = [
    "ObserverAPI",
    "ObserverError",
    "RunnerNotRunningError",
    "MonitorStoppedError",
    "ClientDisplaySnapshot",
    "DashboardSnapshot",
    "HostDisplaySnapshot",
    "LinkDisplaySnapshot",
    "PuzzleDisplaySnapshot",
    "ServerDisplaySnapshot",
    "format_duration",
]

"""Identifier types and small enums shared across the domain."""

from enum import Enum
from typing import NewType

# Type aliases for domain identifiers
PuzzleId = NewType("PuzzleId", str)
IpAddress = NewType("IpAddress", str)


class StreamSource(str, Enum):
    """Where a log line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"
    MONITOR = "monitor"  # Written by RoomWatch itself (restarts, disconnects)

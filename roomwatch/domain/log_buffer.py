"""Bounded, ordered log buffer (oldest entries evicted first)."""

from collections import deque
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .types import StreamSource


class LogEntry(BaseModel):
    """One line in the log pane."""
    model_config = ConfigDict(frozen=True)

    seq: int
    timestamp: datetime
    source: StreamSource
    text: str
    diagnostic: bool = False  # True for lines the parser did not recognise

    @property
    def display_text(self) -> str:
        if self.source is StreamSource.STDERR:
            return f"[STDERR] {self.text}"
        return self.text


class LogBuffer:
    """
    FIFO buffer with a capacity fixed at construction.

    Entries get a strictly increasing sequence number that survives eviction
    and clearing, so readers can ask for "everything after seq N".

    Not thread-safe on its own; AggregateState guards it.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"LogBuffer capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._next_seq = 1
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def evicted(self) -> int:
        """Total number of entries dropped to make room."""
        return self._evicted

    @property
    def last_seq(self) -> int:
        """Sequence number of the newest entry ever appended (0 if none)."""
        return self._next_seq - 1

    def __len__(self) -> int:
        return len(self._entries)

    def append(
        self,
        text: str,
        source: StreamSource,
        timestamp: datetime,
        diagnostic: bool = False,
    ) -> LogEntry:
        entry = LogEntry(
            seq=self._next_seq,
            timestamp=timestamp,
            source=source,
            text=text,
            diagnostic=diagnostic,
        )
        self._next_seq += 1
        if len(self._entries) == self._capacity:
            self._evicted += 1
        self._entries.append(entry)
        return entry

    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def since(self, seq: int) -> tuple[LogEntry, ...]:
        """Entries with a sequence number greater than seq, oldest first."""
        if seq >= self.last_seq:
            return ()
        return tuple(e for e in self._entries if e.seq > seq)

    def clear(self) -> None:
        self._entries.clear()

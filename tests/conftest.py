"""Shared pytest fixtures for RoomWatch tests."""

import sys
import time
from datetime import datetime, timedelta
from typing import Callable

import pytest

from roomwatch.adapters.process import LineSource, _EndOfStream
from roomwatch.domain import (
    AggregateState,
    IpAddress,
    PuzzleId,
    RawLine,
    ServerInfo,
    StreamSource,
)
from roomwatch.errors import ProcessLost
from roomwatch.parsing import StatusParser


# =============================================================================
# Basic Values
# =============================================================================

@pytest.fixture
def now() -> datetime:
    """A fixed wall-clock instant."""
    return datetime(2024, 6, 15, 20, 0, 0)


@pytest.fixture
def puzzle_id() -> PuzzleId:
    return PuzzleId("p1")


@pytest.fixture
def server_info(now: datetime) -> ServerInfo:
    """Server info for a process attached ten minutes before `now`."""
    return ServerInfo(
        hostname="escape-host",
        ip_address="192.168.1.10",
        start_time=now - timedelta(minutes=10),
    )


def make_raw(text: str, at: datetime | None = None, source: StreamSource = StreamSource.STDOUT) -> RawLine:
    return RawLine(text=text, source=source, received_at=at or datetime.now())


@pytest.fixture
def raw() -> Callable[..., RawLine]:
    """Factory for RawLine objects."""
    return make_raw


# =============================================================================
# State and Parser
# =============================================================================

@pytest.fixture
def parser() -> StatusParser:
    """A parser using the built-in grammar."""
    return StatusParser()


@pytest.fixture
def state() -> AggregateState:
    """An empty state with a small log buffer."""
    return AggregateState(log_capacity=50)


@pytest.fixture
def feed(state: AggregateState, parser: StatusParser) -> Callable[..., bool]:
    """Parse a line and apply it to `state`, like the runner does."""

    def _feed(text: str, at: datetime | None = None) -> bool:
        line = make_raw(text, at)
        return state.apply(parser.parse(line), line)

    return _feed


# =============================================================================
# Line Sources
# =============================================================================

class ScriptedSource(LineSource):
    """
    In-memory line source for runner tests.

    Delivers `lines`, then ends (unless hold_open) with `exit_code`.
    With fail_open the source behaves like a script that cannot be started.
    """

    def __init__(
        self,
        lines: list[str] | None = None,
        exit_code: int | None = 1,
        hold_open: bool = False,
        fail_open: bool = False,
    ):
        super().__init__()
        self._lines = list(lines or [])
        self._code = exit_code
        self._hold_open = hold_open
        self._fail_open = fail_open
        self.opened = False
        self.closed = False

    def describe(self) -> str:
        return "scripted source"

    def open(self) -> datetime:
        if self._fail_open:
            raise ProcessLost("failed to start scripted source")
        self.opened = True
        self.started_at = datetime.now()
        self._stream_count = 1
        for text in self._lines:
            self._queue.put(make_raw(text))
        if not self._hold_open:
            self._queue.put(_EndOfStream(StreamSource.STDOUT))
        return self.started_at

    def _exit_code(self) -> int | None:
        return self._code

    def close(self, timeout: float = 5.0) -> None:
        self._closing.set()
        self.closed = True


class SourceFactory:
    """Hands out prepared sources in order; repeats the last one when exhausted."""

    def __init__(self, *sources: Callable[[], ScriptedSource]):
        self._builders = list(sources)
        self.created: list[ScriptedSource] = []

    def __call__(self) -> ScriptedSource:
        index = min(len(self.created), len(self._builders) - 1)
        source = self._builders[index]()
        self.created.append(source)
        return source

    @property
    def calls(self) -> int:
        return len(self.created)


@pytest.fixture
def scripted_source() -> type[ScriptedSource]:
    return ScriptedSource


@pytest.fixture
def source_factory() -> type[SourceFactory]:
    return SourceFactory


# =============================================================================
# Helpers
# =============================================================================

def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is true. Returns False on timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait() -> Callable[..., bool]:
    return wait_until


@pytest.fixture
def python_command() -> Callable[[str], list[str]]:
    """Build a command that runs a Python snippet in a child interpreter."""

    def _command(code: str) -> list[str]:
        return [sys.executable, "-u", "-c", code]

    return _command


@pytest.fixture
def client_ip() -> IpAddress:
    return IpAddress("192.168.1.42")

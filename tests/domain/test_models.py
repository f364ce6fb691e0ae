"""Tests for roomwatch.domain puzzle, server and link models."""

import pytest
from datetime import datetime, timedelta
from pydantic import TypeAdapter, ValidationError

from roomwatch.domain import (
    LINK_TRANSITIONS,
    ClientSeen,
    LinkState,
    PuzzleId,
    PuzzleState,
    PuzzleStatus,
    PuzzleUpdate,
    ServerInfo,
    StatusUpdate,
    Unrecognized,
    can_transition,
)


class TestPuzzleState:
    """Tests for PuzzleState parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Active", PuzzleState.ACTIVE),
            ("solved", PuzzleState.SOLVED),
            ("IDLE", PuzzleState.IDLE),
            (" Error ", PuzzleState.ERROR),
        ],
    )
    def test_parse_is_case_insensitive(self, text, expected):
        assert PuzzleState.parse(text) == expected

    @pytest.mark.parametrize("text", [None, "", "exploded", "Solvedish"])
    def test_unknown_values_degrade(self, text):
        """Anything unrecognised becomes UNKNOWN rather than failing."""
        assert PuzzleState.parse(text) == PuzzleState.UNKNOWN


class TestPuzzleStatus:
    """Tests for PuzzleStatus model."""

    def test_staleness(self, now: datetime):
        status = PuzzleStatus(
            id=PuzzleId("p1"),
            state=PuzzleState.ACTIVE,
            last_updated=100.0,
            observed_at=now - timedelta(seconds=90),
        )
        assert status.is_stale(now, stale_after=60)
        assert not status.is_stale(now, stale_after=120)

    def test_immutability(self, now: datetime):
        status = PuzzleStatus(id=PuzzleId("p1"), last_updated=1.0, observed_at=now)
        with pytest.raises(ValidationError):
            status.state = PuzzleState.SOLVED  # type: ignore


class TestServerInfo:
    """Tests for ServerInfo uptime."""

    def test_uptime_grows_with_wall_time(self, server_info: ServerInfo, now: datetime):
        earlier = server_info.uptime(now)
        later = server_info.uptime(now + timedelta(seconds=30))
        assert earlier == timedelta(minutes=10)
        assert later - earlier == timedelta(seconds=30)

    def test_uptime_never_negative(self, server_info: ServerInfo):
        assert server_info.uptime(server_info.start_time - timedelta(hours=1)) == timedelta(0)


class TestLinkTransitions:
    """Tests for the link state machine table."""

    def test_normal_lifecycle(self):
        path = [
            LinkState.STARTING,
            LinkState.ATTACHED,
            LinkState.RUNNING,
            LinkState.DISCONNECTED,
            LinkState.RECONNECTING,
            LinkState.ATTACHED,
        ]
        for old, new in zip(path, path[1:]):
            assert can_transition(old, new), f"{old} -> {new}"

    def test_terminated_reachable_from_everywhere(self):
        for state in LinkState:
            if state is LinkState.TERMINATED:
                continue
            assert can_transition(state, LinkState.TERMINATED)

    def test_terminated_is_final(self):
        for state in LinkState:
            assert not can_transition(LinkState.TERMINATED, state)

    def test_cannot_skip_reconnecting(self):
        assert not can_transition(LinkState.DISCONNECTED, LinkState.ATTACHED)
        assert not can_transition(LinkState.DISCONNECTED, LinkState.RUNNING)

    def test_every_state_has_an_entry(self):
        assert set(LINK_TRANSITIONS) == set(LinkState)


class TestStatusUpdateUnion:
    """Tests for the discriminated update union."""

    def test_validates_by_type(self):
        adapter = TypeAdapter(StatusUpdate)
        update = adapter.validate_python(
            {"type": "puzzle", "puzzle_id": "p1", "state": "Solved", "timestamp": 5}
        )
        assert isinstance(update, PuzzleUpdate)
        assert update.state == PuzzleState.SOLVED

    def test_client_protocol_is_restricted(self):
        with pytest.raises(ValidationError):
            ClientSeen(ip_address="10.0.0.1", protocol="ftp")  # type: ignore

    def test_unrecognized_keeps_raw_text(self):
        assert Unrecognized(raw="garbage").raw == "garbage"

"""Tests for roomwatch.observer.api module."""

import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock

from roomwatch.adapters import HostStats
from roomwatch.domain import AggregateState, LinkState, LinkStatus, ServerInfo
from roomwatch.observer import (
    MonitorStoppedError,
    ObserverAPI,
    ObserverError,
    RunnerNotRunningError,
)


@pytest.fixture
def mock_runner():
    """A runner whose thread is alive."""
    runner = Mock()
    runner.is_alive = True
    return runner


@pytest.fixture
def mock_probe():
    probe = Mock()
    probe.sample.return_value = HostStats(
        cpu_percent=5.0, ram_used_mb=100, ram_total_mb=1000, os_uptime_seconds=60.0
    )
    return probe


@pytest.fixture
def api(state: AggregateState, mock_runner, mock_probe) -> ObserverAPI:
    return ObserverAPI(state, runner=mock_runner, host_probe=mock_probe, stale_after=60)


class TestQueries:
    """Tests for read-only queries."""

    def test_empty_dashboard(self, api: ObserverAPI):
        snap = api.get_dashboard_snapshot()
        assert snap.server is None
        assert snap.puzzles == ()
        assert snap.clients == ()
        assert snap.link.state == "starting"
        assert snap.host.cpu_percent == 5.0

    def test_puzzles_sorted_by_id(self, api: ObserverAPI, feed):
        feed("PUZZLE zeta STATE=Idle T=1")
        feed("PUZZLE alpha STATE=Solved T=1")
        assert [p.id for p in api.get_puzzles()] == ["alpha", "zeta"]

    def test_staleness_at_read_time(self, api: ObserverAPI, feed, now: datetime):
        feed("PUZZLE p1 STATE=Active T=1", at=now)
        assert not api.get_puzzles(now + timedelta(seconds=30))[0].is_stale
        assert api.get_puzzles(now + timedelta(seconds=61))[0].is_stale

    def test_uptime_increases(self, api: ObserverAPI, state: AggregateState, server_info: ServerInfo, now: datetime):
        state.attach(server_info)
        first = api.get_server(now)
        second = api.get_server(now + timedelta(seconds=10))
        assert second.uptime > first.uptime

    def test_log_entries_since(self, api: ObserverAPI, feed):
        feed("one")
        feed("two")
        feed("three")
        assert [e.text for e in api.get_log_entries()] == ["one", "two", "three"]
        assert [e.text for e in api.get_log_entries(since_seq=2)] == ["three"]

    def test_dashboard_counts(self, api: ObserverAPI, feed):
        feed("PUZZLE p1 STATE=Active T=1")
        feed("???")
        snap = api.get_dashboard_snapshot()
        assert snap.lines_seen == 2
        assert snap.unrecognized_count == 1
        assert snap.log_count == 2
        assert snap.last_log_seq == 2

    def test_host_probe_failure_is_tolerated(self, state: AggregateState, mock_runner):
        probe = Mock()
        probe.sample.side_effect = OSError("no /proc")
        api = ObserverAPI(state, runner=mock_runner, host_probe=probe)
        assert api.get_dashboard_snapshot().host is None

    def test_without_probe(self, state: AggregateState):
        assert ObserverAPI(state).get_host_snapshot() is None

    def test_queries_do_not_mutate(self, api: ObserverAPI, state: AggregateState, feed):
        feed("PUZZLE p1 STATE=Active T=1")
        before = state.snapshot()
        api.get_dashboard_snapshot()
        api.get_log_entries()
        after = state.snapshot()
        assert before.puzzles == after.puzzles
        assert before.last_log_seq == after.last_log_seq


class TestCommands:
    """Tests for operator commands."""

    def test_reconnect(self, api: ObserverAPI, mock_runner):
        api.do_reconnect()
        mock_runner.request_reconnect.assert_called_once()

    def test_clear_log(self, api: ObserverAPI, mock_runner):
        api.do_clear_log()
        mock_runner.request_clear_log.assert_called_once()

    def test_commands_need_a_live_runner(self, state: AggregateState, mock_runner):
        mock_runner.is_alive = False
        api = ObserverAPI(state, runner=mock_runner)
        with pytest.raises(RunnerNotRunningError):
            api.do_reconnect()

    def test_commands_without_runner(self, state: AggregateState):
        with pytest.raises(ObserverError):
            ObserverAPI(state).do_clear_log()

    def test_commands_after_termination(self, api: ObserverAPI, state: AggregateState):
        state.set_link(LinkStatus(state=LinkState.TERMINATED, since=datetime.now()))
        with pytest.raises(MonitorStoppedError):
            api.do_reconnect()

    def test_is_monitoring(self, api: ObserverAPI, mock_runner):
        assert api.is_monitoring()
        mock_runner.is_alive = False
        assert not api.is_monitoring()

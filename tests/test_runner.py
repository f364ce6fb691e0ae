"""Tests for roomwatch.runner module.

The runner runs its real thread against in-memory ScriptedSource objects,
so most of these tests cover the restart policy and link state machine
without spawning processes.
"""

import time
import pytest
import psutil
from unittest.mock import Mock

from roomwatch.adapters import make_source_factory
from roomwatch.domain import AggregateState, LinkState, PuzzleId, PuzzleState, StreamSource
from roomwatch.parsing import StatusParser
from roomwatch.runner import MonitorRunner


def make_runner(state: AggregateState, factory, **overrides) -> MonitorRunner:
    settings = dict(
        max_restarts=3,
        backoff_initial=0.01,
        backoff_max=0.05,
        stable_after=30.0,
        shutdown_timeout=2.0,
        identity=lambda: ("test-host", "10.0.0.1"),
    )
    settings.update(overrides)
    return MonitorRunner(state, StatusParser(), factory, **settings)


@pytest.fixture
def running():
    """Track runners so a failing test never leaks a thread."""
    runners: list[MonitorRunner] = []
    yield runners
    for runner in runners:
        runner.shutdown(timeout=2.0)


class TestSession:
    """Tests for reading one healthy session."""

    def test_lines_are_applied(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(
            ["PUZZLE 3 STATE=Active IP=10.0.0.5 T=100", "PUZZLE 3 STATE=Solved IP=10.0.0.5 T=50"],
            hold_open=True,
        ))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()

        assert wait(lambda: state.snapshot().lines_seen == 2)
        snap = state.snapshot()
        assert snap.puzzles[PuzzleId("3")].state == PuzzleState.ACTIVE
        assert snap.link.state == LinkState.RUNNING
        assert snap.server.hostname == "test-host"

    def test_link_sequence_on_start(self, state, scripted_source, source_factory, wait, running):
        seen = []
        factory = source_factory(lambda: scripted_source(["HEARTBEAT"], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.on_link_change(lambda status: seen.append(status.state))
        runner.start()

        assert wait(lambda: LinkState.RUNNING in seen)
        assert seen[:2] == [LinkState.ATTACHED, LinkState.RUNNING]

    def test_update_callbacks(self, state, scripted_source, source_factory, wait, running):
        updates = []
        factory = source_factory(lambda: scripted_source(["Serving at port 8000", "junk"], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.on_update(updates.append)
        runner.start()

        assert wait(lambda: len(updates) == 2)
        assert [u.type for u in updates] == ["server_info", "unrecognized"]

    def test_failing_callback_does_not_stop_reading(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(["a", "b", "c"], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.on_update(Mock(side_effect=RuntimeError("ui exploded")))
        runner.start()

        assert wait(lambda: state.snapshot().lines_seen == 3)

    def test_bad_line_does_not_restart(self, state, scripted_source, source_factory, wait, running):
        """A line that fails field conversion is logged and the next line still applies."""
        factory = source_factory(lambda: scripted_source(
            ["Serving at port " + "9" * 5000, "PUZZLE 1 STATE=Active T=1"],
            hold_open=True,
        ))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()

        assert wait(lambda: PuzzleId("1") in state.snapshot().puzzles)
        snap = state.snapshot()
        assert snap.unrecognized_count == 1
        assert snap.link.state == LinkState.RUNNING
        assert factory.calls == 1

    def test_state_writes_belong_to_runner_thread(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source([], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()

        assert wait(lambda: state.link.state == LinkState.ATTACHED)
        with pytest.raises(RuntimeError):
            state.note("from the test thread")


class TestShutdown:
    """Tests for stopping the runner."""

    def test_shutdown_closes_source_and_terminates(self, state, scripted_source, source_factory, wait):
        factory = source_factory(lambda: scripted_source(["HEARTBEAT"], hold_open=True))
        runner = make_runner(state, factory)
        runner.start()
        assert wait(lambda: state.link.state == LinkState.RUNNING)

        assert runner.shutdown(timeout=2.0)
        assert not runner.is_alive
        assert factory.created[0].closed
        assert state.link.state == LinkState.TERMINATED

    def test_shutdown_kills_blocked_script(self, state, python_command, wait):
        """Quitting while the script blocks without output kills it within the timeout."""
        factory = make_source_factory(command=python_command("import time; print('ready'); time.sleep(60)"))
        runner = make_runner(state, factory)
        runner.start()
        assert wait(lambda: state.link.state == LinkState.RUNNING)
        pid = runner.pid
        assert pid is not None

        started = time.monotonic()
        assert runner.shutdown(timeout=4.0)
        assert time.monotonic() - started < 4.0
        assert not psutil.pid_exists(pid)
        assert state.link.state == LinkState.TERMINATED

    def test_shutdown_during_backoff(self, state, scripted_source, source_factory, wait):
        """A long backoff wait is interrupted by shutdown."""
        factory = source_factory(lambda: scripted_source(fail_open=True))
        runner = make_runner(state, factory, backoff_initial=60.0, backoff_max=60.0)
        runner.start()
        assert wait(lambda: state.link.state == LinkState.RECONNECTING)

        assert runner.shutdown(timeout=2.0)
        assert state.link.state == LinkState.TERMINATED

    def test_shutdown_without_start(self, state, source_factory, scripted_source):
        runner = make_runner(state, source_factory(lambda: scripted_source()))
        assert runner.shutdown()


class TestRestarts:
    """Tests for the restart policy."""

    def test_reconnects_and_keeps_state(self, state, scripted_source, source_factory, wait, running):
        """After the script dies the runner restarts it; the last known state survives."""
        factory = source_factory(
            lambda: scripted_source(["PUZZLE p1 STATE=Solved T=10"], exit_code=1),
            lambda: scripted_source(["PUZZLE p2 STATE=Active T=20"], hold_open=True),
        )
        seen = []
        runner = make_runner(state, factory)
        running.append(runner)
        runner.on_link_change(lambda status: seen.append(status.state))
        runner.start()

        assert wait(lambda: PuzzleId("p2") in state.snapshot().puzzles)
        assert wait(lambda: state.link.state == LinkState.RUNNING)

        snap = state.snapshot()
        assert snap.puzzles[PuzzleId("p1")].state == PuzzleState.SOLVED
        assert factory.calls == 2
        assert seen[:6] == [
            LinkState.ATTACHED,
            LinkState.RUNNING,
            LinkState.DISCONNECTED,
            LinkState.RECONNECTING,
            LinkState.ATTACHED,
            LinkState.RUNNING,
        ]

    def test_disconnect_is_noted_in_log(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(
            lambda: scripted_source(["x"], exit_code=7),
            lambda: scripted_source([], hold_open=True),
        )
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()

        assert wait(lambda: factory.calls == 2)
        monitor_lines = [e.text for e in state.log_entries() if e.source == StreamSource.MONITOR]
        assert any("Lost connection" in text and "exit code 7" in text for text in monitor_lines)

    def test_gives_up_after_max_restarts(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(fail_open=True))
        runner = make_runner(state, factory, max_restarts=2)
        running.append(runner)
        runner.start()

        assert wait(lambda: state.link.gave_up)
        link = state.link
        assert link.state == LinkState.DISCONNECTED
        assert link.attempt == 2
        # first try plus two restarts
        assert factory.calls == 3

    def test_manual_reconnect_after_giving_up(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(
            lambda: scripted_source(fail_open=True),
            lambda: scripted_source(fail_open=True),
            lambda: scripted_source(["PUZZLE p1 STATE=Active T=1"], hold_open=True),
        )
        runner = make_runner(state, factory, max_restarts=1)
        running.append(runner)
        runner.start()

        assert wait(lambda: state.link.gave_up)
        runner.request_reconnect()

        assert wait(lambda: state.link.state == LinkState.RUNNING)
        assert not state.link.gave_up
        assert factory.calls == 3

    def test_manual_reconnect_restarts_healthy_session(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(["HEARTBEAT"], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()
        assert wait(lambda: state.link.state == LinkState.RUNNING)

        runner.request_reconnect()

        assert wait(lambda: factory.calls == 2)
        assert factory.created[0].closed

    def test_unexpected_error_is_treated_as_lost(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(["boom"], hold_open=True))
        parser = Mock()
        parser.parse.side_effect = RuntimeError("parser bug")
        runner = MonitorRunner(
            state, parser, factory,
            max_restarts=0, backoff_initial=0.01, backoff_max=0.01,
            identity=lambda: ("h", "10.0.0.1"),
        )
        running.append(runner)
        runner.start()

        assert wait(lambda: state.link.gave_up)
        assert "internal error" in state.link.reason

    def test_backoff_doubles_and_caps(self, state, source_factory, scripted_source):
        runner = make_runner(
            state, source_factory(lambda: scripted_source()), backoff_initial=1.0, backoff_max=5.0
        )
        assert [runner._backoff_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


class TestCommands:
    """Tests for commands sent through the queue."""

    def test_clear_log(self, state, scripted_source, source_factory, wait, running):
        factory = source_factory(lambda: scripted_source(["a", "b"], hold_open=True))
        runner = make_runner(state, factory)
        running.append(runner)
        runner.start()
        assert wait(lambda: state.snapshot().lines_seen == 2)

        runner.request_clear_log()

        assert wait(lambda: state.log_entries() == ())

"""
RoomWatch TUI - Main Application.

A Textual dashboard for the escape-room server script: header with server
identity and link status, puzzle table, client list and a log pane.

The script is read by a MonitorRunner in its own thread. That thread posts
messages to the app (post_message is thread-safe and never blocks it); the
app renders from ObserverAPI snapshots on the main thread only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import Footer

from roomwatch.observer import ObserverError

from .widgets import ClientsPanel, LogPanel, PuzzlePanel, ServerHeader

if TYPE_CHECKING:
    from roomwatch.domain import LinkStatus, StatusUpdate
    from roomwatch.observer import ObserverAPI
    from roomwatch.runner import MonitorRunner

logger = logging.getLogger("roomwatch.tui")


class RoomWatchTUI(App):
    """
    A Textual TUI for monitoring the escape-room server.

    Refresh modes:
    - interval: re-render every refresh_interval seconds
    - line: re-render after each parsed line, with at most one render pending

    Link changes always trigger a render, in either mode.
    """

    CSS_PATH = "theme.tcss"
    TITLE = "RoomWatch"

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("r", "reconnect", "Reconnect", show=True),
        Binding("c", "clear_log", "Clear log", show=True),
        Binding("f", "toggle_follow", "Follow", show=True),
        Binding("home", "log_home", "Top", show=False),
        Binding("end", "log_end", "Bottom", show=False),
        Binding("up", "log_scroll(-1)", "", show=False),
        Binding("down", "log_scroll(1)", "", show=False),
        Binding("pageup", "log_page(-1)", "", show=False),
        Binding("pagedown", "log_page(1)", "", show=False),
    ]

    class LineParsed(Message):
        """Posted from the runner thread after a line was applied (line mode)."""

    class LinkChanged(Message):
        """Posted from the runner thread on a link state change."""

        def __init__(self, status: "LinkStatus") -> None:
            super().__init__()
            self.status = status

    def __init__(
        self,
        runner: "MonitorRunner",
        api: "ObserverAPI",
        refresh_mode: str = "interval",
        refresh_interval: float = 0.25,
        log_capacity: int = 1000,
    ):
        super().__init__()
        self._runner = runner
        self.api = api
        self._refresh_mode = refresh_mode
        self._refresh_interval = refresh_interval
        self._log_capacity = log_capacity
        self._render_pending = False
        self.render_count = 0

    def compose(self) -> ComposeResult:
        yield ServerHeader(id="server-header")
        with Horizontal(id="main-content"):
            yield PuzzlePanel(id="puzzle-panel")
            yield ClientsPanel(id="clients-panel")
        yield LogPanel(max_lines=self._log_capacity, id="log-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Register runner callbacks, start the runner thread, start refreshing."""
        self._runner.on_link_change(self._on_link_change)
        if self._refresh_mode == "line":
            self._runner.on_update(self._on_update)

        self._runner.start()
        self.refresh_dashboard()

        if self._refresh_mode == "interval":
            self.set_interval(self._refresh_interval, self.refresh_dashboard)
        else:
            # Uptime and staleness still have to move when the script is quiet
            self.set_interval(1.0, self.refresh_dashboard)

    def on_unmount(self) -> None:
        """Stop the runner thread (and the script) when the app closes."""
        self._runner.shutdown()

    # === Runner Callbacks (runner thread) ===

    def _on_update(self, update: "StatusUpdate") -> None:
        if self._render_pending:
            return
        self._render_pending = True
        self.post_message(self.LineParsed())

    def _on_link_change(self, status: "LinkStatus") -> None:
        self.post_message(self.LinkChanged(status))

    # === Message Handlers (main thread) ===

    @on(LineParsed)
    def _handle_line_parsed(self, message: LineParsed) -> None:
        self._render_pending = False
        self.refresh_dashboard()

    @on(LinkChanged)
    def _handle_link_changed(self, message: LinkChanged) -> None:
        logger.debug(f"Link changed: {message.status.state.value}")
        self.refresh_dashboard()

    # === Rendering ===

    def refresh_dashboard(self) -> None:
        """Pull one snapshot from the Observer API and update every widget."""
        snapshot = self.api.get_dashboard_snapshot()

        self.query_one(ServerHeader).update_from_snapshot(snapshot)
        self.query_one(PuzzlePanel).update_puzzles(snapshot.puzzles)
        self.query_one(ClientsPanel).update_clients(snapshot.clients)

        log_panel = self.query_one(LogPanel)
        if snapshot.last_log_seq > log_panel.last_seq:
            log_panel.add_entries(self.api.get_log_entries(since_seq=log_panel.last_seq))

        self.sub_title = f"{snapshot.lines_seen} lines | {snapshot.log_count}/{snapshot.log_capacity} logged"
        self.render_count += 1

    # === Actions ===

    def action_reconnect(self) -> None:
        """Restart the server script now."""
        try:
            self.api.do_reconnect()
        except ObserverError as e:
            self.notify(str(e), severity="error")

    def action_clear_log(self) -> None:
        """Clear the log pane and the log buffer behind it."""
        try:
            self.api.do_clear_log()
        except ObserverError as e:
            self.notify(str(e), severity="error")
            return
        self.query_one(LogPanel).clear()

    def action_toggle_follow(self) -> None:
        following = self.query_one(LogPanel).toggle_follow()
        self.notify("Following log" if following else "Log paused", timeout=2)

    def action_log_home(self) -> None:
        self.query_one(LogPanel).scroll_to_start()

    def action_log_end(self) -> None:
        self.query_one(LogPanel).scroll_to_end()

    def action_log_scroll(self, delta: int) -> None:
        self.query_one(LogPanel).scroll_lines(delta)

    def action_log_page(self, delta: int) -> None:
        self.query_one(LogPanel).scroll_pages(delta)

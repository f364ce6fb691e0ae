"""Log pane widget: the script's raw output, newest at the bottom."""

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static, RichLog
from rich.text import Text

from roomwatch.domain import LogEntry, StreamSource


# Styles by line origin
SOURCE_STYLES = {
    StreamSource.STDOUT: "white",
    StreamSource.STDERR: "#f0883e",
    StreamSource.MONITOR: "bold #a78bfa",
}


class LogPanel(Vertical):
    """
    A scrolling view of the log buffer.

    Tracks the sequence number of the last entry written so each refresh
    only appends what is new. Follow mode keeps the view pinned to the end.
    """

    def __init__(self, max_lines: int = 1000, **kwargs):
        super().__init__(**kwargs)
        self._max_lines = max_lines
        self._last_seq = 0
        self._follow = True

    @property
    def last_seq(self) -> int:
        return self._last_seq

    @property
    def follow(self) -> bool:
        return self._follow

    def compose(self) -> ComposeResult:
        yield Static("Log", id="log-panel-label", classes="panel-label")
        yield RichLog(
            max_lines=self._max_lines,
            wrap=True,
            highlight=False,
            markup=False,
            auto_scroll=True,
            id="log-view",
        )

    @property
    def view(self) -> RichLog:
        return self.query_one("#log-view", RichLog)

    def add_entries(self, entries: tuple[LogEntry, ...]) -> None:
        """Append entries newer than the last one shown."""
        log = self.view
        for entry in entries:
            if entry.seq <= self._last_seq:
                continue
            text = Text()
            text.append(entry.timestamp.strftime("%H:%M:%S "), style="dim")
            style = SOURCE_STYLES.get(entry.source, "white")
            if entry.diagnostic:
                style = f"{style} italic"
            text.append(entry.display_text, style=style)
            log.write(text, scroll_end=self._follow)
            self._last_seq = entry.seq

    def clear(self) -> None:
        """Clear the pane; entries already shown are not fetched again."""
        self.view.clear()

    def toggle_follow(self) -> bool:
        self._follow = not self._follow
        self.view.auto_scroll = self._follow
        if self._follow:
            self.view.scroll_end(animate=False)
        label = "Log" if self._follow else "Log (paused - f to follow)"
        self.query_one("#log-panel-label", Static).update(label)
        return self._follow

    # --- scrolling ---

    def scroll_to_start(self) -> None:
        self.view.scroll_home(animate=False)

    def scroll_to_end(self) -> None:
        self.view.scroll_end(animate=False)

    def scroll_lines(self, delta: int) -> None:
        self.view.scroll_relative(y=delta, animate=False)

    def scroll_pages(self, delta: int) -> None:
        if delta < 0:
            self.view.scroll_page_up(animate=False)
        else:
            self.view.scroll_page_down(animate=False)

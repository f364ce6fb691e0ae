"""Puzzle table widget: one row per puzzle with state, IP and last update."""

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static
from rich.table import Table
from rich.text import Text

from roomwatch.observer import PuzzleDisplaySnapshot


# Map puzzle state values to display colors
STATE_COLORS = {
    "Unknown": "dim",
    "Idle": "cyan",
    "Active": "yellow",
    "Solved": "bold green",
    "Error": "bold red",
}


def _age_text(puzzle: PuzzleDisplaySnapshot) -> Text:
    seconds = int(puzzle.age.total_seconds())
    label = f"{seconds}s ago" if seconds < 120 else f"{seconds // 60}m ago"
    if puzzle.is_stale:
        return Text(f"{label} (stale)", style="dim italic")
    return Text(label, style="dim")


class PuzzlePanel(Vertical):
    """
    Table of known puzzles, sorted by id.

    Stale puzzles (no update within stale_after) are dimmed rather than
    removed: the last known state is still the best information we have.
    """

    def compose(self) -> ComposeResult:
        yield Static("Puzzles", id="puzzle-panel-label", classes="panel-label")
        yield Static("Waiting for puzzle status...", id="puzzle-table")

    def update_puzzles(self, puzzles: tuple[PuzzleDisplaySnapshot, ...]) -> None:
        body = self.query_one("#puzzle-table", Static)
        if not puzzles:
            body.update(Text("Waiting for puzzle status...", style="dim italic"))
            return

        table = Table(expand=True, box=None, padding=(0, 1), header_style="bold")
        table.add_column("Puzzle")
        table.add_column("State")
        table.add_column("IP")
        table.add_column("Updated", justify="right")

        for puzzle in puzzles:
            color = STATE_COLORS.get(puzzle.state, "white")
            row_style = "dim" if puzzle.is_stale else ""
            table.add_row(
                Text(puzzle.id, style="bold"),
                Text(puzzle.state, style=color),
                puzzle.ip_address,
                _age_text(puzzle),
                style=row_style,
            )

        body.update(table)
        self.query_one("#puzzle-panel-label", Static).update(f"Puzzles ({len(puzzles)})")

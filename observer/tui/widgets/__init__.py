"""TUI widgets for the RoomWatch dashboard."""

from .header import ServerHeader
from .puzzle_panel import PuzzlePanel
from .clients_panel import ClientsPanel
from .log_panel import LogPanel

__all__ = ["ServerHeader", "PuzzlePanel", "ClientsPanel", "LogPanel"]

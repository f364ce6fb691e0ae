"""
Observer Interface - the operator's window into the escape room.

The observer sees everything the server script reports but never writes to
it. This package provides the TUI; queries go through roomwatch.observer.
"""

from .tui import RoomWatchTUI

__all__ = ["RoomWatchTUI"]

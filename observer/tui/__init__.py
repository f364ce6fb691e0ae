"""
RoomWatch TUI - A Textual dashboard for the escape-room server script.

Shows server identity and uptime, puzzle states, clients, and the script's
raw output, and keeps showing the last known state when the link drops.
"""

from .app import RoomWatchTUI

__all__ = ["RoomWatchTUI"]

"""
RoomWatch - a terminal dashboard for the escape-room control script.

The monitor supervises the external script, parses its output line by line,
and keeps an in-memory picture of the room (puzzles, clients, server uptime,
recent logs) for the Observer TUI to render.

Package layout:
    domain/    Pure data: puzzle status, server info, updates, aggregate state
    parsing/   Line grammar and the tolerant status parser
    adapters/  Process adapter (subprocess / pipe) and host probe
    observer/  Read-only query API and display snapshots
    runner.py  MonitorRunner - reader thread, link state machine, restarts
"""

__version__ = "0.1.0"

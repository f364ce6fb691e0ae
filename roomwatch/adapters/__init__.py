"""Adapters to the outside world: the external script's stream and the host."""

from .process import FileCursor, LineSource, ScriptProcess, PipeSource, make_source_factory
from .host import HostProbe, HostStats, local_hostname, local_ip

__all__ = [
    "LineSource",
    "ScriptProcess",
    "PipeSource",
    "FileCursor",
    "make_source_factory",
    "HostProbe",
    "HostStats",
    "local_hostname",
    "local_ip",
]

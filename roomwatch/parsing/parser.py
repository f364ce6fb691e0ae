"""
StatusParser - turns raw script output lines into tagged updates.

Parsing is tolerant: a malformed field degrades to Unknown/absent, and a
line that cannot be understood at all becomes Unrecognized so it still
reaches the operator's log pane. One bad line never affects the next.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from datetime import datetime
from typing import Iterable, Iterator

from roomwatch.domain import (
    ClientSeen,
    Heartbeat,
    IpAddress,
    LogLine,
    PuzzleId,
    PuzzleState,
    PuzzleUpdate,
    RawLine,
    ServerInfoUpdate,
    StatusUpdate,
    StreamSource,
    Unrecognized,
)
from roomwatch.errors import ParseError

from .grammar import LineGrammar

logger = logging.getLogger(__name__)


def _parse_ip(value: str | None) -> IpAddress | None:
    if not value:
        return None
    try:
        return IpAddress(str(ipaddress.ip_address(value.strip())))
    except ValueError:
        return None


def _parse_float(value: str | None) -> float | None:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    # nan/inf would break ordering
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


class StatusParser:
    """
    Matches lines against a LineGrammar.

    Usage:
        parser = StatusParser()
        update = parser.parse(raw_line)
        match update.type:
            case "puzzle": ...
    """

    def __init__(self, grammar: LineGrammar | None = None):
        self.grammar = grammar or LineGrammar()
        g = self.grammar
        self._puzzle_status = re.compile(g.puzzle_status)
        self._puzzle_dict = re.compile(g.puzzle_dict)
        self._dict_state = re.compile(g.dict_state)
        self._registration = re.compile(g.puzzle_registration)
        self._server_ready = re.compile(g.server_ready)
        self._heartbeat = re.compile(g.heartbeat)
        self._http_client = re.compile(g.http_client)
        self._udp_client = re.compile(g.udp_client)
        self._log = re.compile(g.log)
        self._field = re.compile(g.field)

    def parse(self, raw: RawLine) -> StatusUpdate:
        """Parse one line. Never raises."""
        try:
            return self._parse(raw)
        except (ValueError, IndexError) as e:
            # Field conversion or a pattern missing a group
            logger.warning(f"Failed to parse line ({type(e).__name__}: {e}): {raw.text[:200]!r}")
            return Unrecognized(raw=raw.text, reason=f"{type(e).__name__}: {e}")
        except ParseError as e:
            logger.debug(f"Unparseable line ({e}): {raw.text!r}")
            return Unrecognized(raw=raw.text, reason=str(e))

    def parse_text(
        self,
        text: str,
        received_at: datetime | None = None,
        source: StreamSource = StreamSource.STDOUT,
    ) -> StatusUpdate:
        """Convenience wrapper for parsing a bare string."""
        return self.parse(RawLine(text=text, source=source, received_at=received_at or datetime.now()))

    def parse_many(self, lines: Iterable[RawLine]) -> Iterator[tuple[RawLine, StatusUpdate]]:
        for raw in lines:
            yield raw, self.parse(raw)

    # -------------------------------------------------------------------------
    # Pattern matching
    # -------------------------------------------------------------------------

    def _parse(self, raw: RawLine) -> StatusUpdate:
        text = raw.text.rstrip("\r\n")
        arrival = raw.received_at.timestamp()

        if m := self._puzzle_status.search(text):
            return self._parse_puzzle_status(m.group("rest"), arrival)

        if m := self._puzzle_dict.search(text):
            state_match = self._dict_state.search(text)
            state = PuzzleState.parse(state_match.group("state")) if state_match else PuzzleState.ACTIVE
            return PuzzleUpdate(
                puzzle_id=PuzzleId(m.group("id")),
                state=state,
                ip_address=_parse_ip(m.group("ip")),
                timestamp=arrival,
            )

        if m := self._registration.search(text):
            # Timestamp 0: any real status report supersedes a bare registration
            return PuzzleUpdate(
                puzzle_id=PuzzleId(m.group("id")),
                state=PuzzleState.IDLE,
                timestamp=0.0,
                register_only=True,
            )

        if m := self._server_ready.search(text):
            try:
                port = int(m.group("port"))
            except ValueError as e:
                raise ParseError(f"bad port {m.group('port')[:20]!r}") from e
            if not 0 < port < 65536:
                raise ParseError(f"port out of range: {m.group('port')[:20]!r}")
            return ServerInfoUpdate(listening_port=port, ready=True)

        if m := self._heartbeat.search(text):
            fields = self._fields(m.group("rest"))
            return Heartbeat(
                timestamp=_parse_float(fields.get("T")),
                uptime=_parse_float(fields.get("UPTIME")),
            )

        if m := self._http_client.search(text):
            ip = _parse_ip(m.group("ip"))
            if ip is not None:
                return ClientSeen(ip_address=ip, protocol="http")

        if m := self._udp_client.search(text):
            ip = _parse_ip(m.group("ip"))
            if ip is not None:
                return ClientSeen(ip_address=ip, protocol="udp")

        if m := self._log.search(text):
            level = m.group("level").upper()
            if level == "WARN":
                level = "WARNING"
            return LogLine(level=level, message=m.group("message"))

        return Unrecognized(raw=raw.text)

    def _fields(self, rest: str) -> dict[str, str]:
        """KEY=VALUE pairs, keys upper-cased. Later duplicates win."""
        return {m.group("key").upper(): m.group("value") for m in self._field.finditer(rest)}

    def _parse_puzzle_status(self, rest: str, arrival: float) -> PuzzleUpdate:
        tokens = rest.split()
        puzzle_id = next((t for t in tokens if "=" not in t), None)
        if puzzle_id is None:
            raise ParseError("puzzle status line without a puzzle id")

        fields = self._fields(rest)
        timestamp = _parse_float(fields.get("T"))
        return PuzzleUpdate(
            puzzle_id=PuzzleId(puzzle_id),
            state=PuzzleState.parse(fields.get("STATE")),
            ip_address=_parse_ip(fields.get("IP")),
            timestamp=timestamp if timestamp is not None else arrival,
            script_time=timestamp is not None,
        )


def format_update(update: PuzzleUpdate) -> str:
    """Render a puzzle update as a canonical puzzle status line.

    parse(format_update(u)) yields the same puzzle id, state and IP.
    """
    parts = [f"PUZZLE {update.puzzle_id}", f"STATE={update.state.value}"]
    if update.ip_address:
        parts.append(f"IP={update.ip_address}")
    ts = update.timestamp
    parts.append(f"T={int(ts) if float(ts).is_integer() else ts}")
    return " ".join(parts)

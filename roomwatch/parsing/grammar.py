"""
Line grammar for the external script's output.

The script's output format is a versioned text protocol that RoomWatch does
not control. The patterns live in a data model rather than in code so a
changed format can be handled with a JSON file (--grammar) instead of a
release.
"""

import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from roomwatch.errors import ConfigError

# Version of the built-in grammar below
DEFAULT_GRAMMAR_VERSION = 1

# Named groups the parser reads from each pattern
REQUIRED_GROUPS: dict[str, tuple[str, ...]] = {
    "puzzle_status": ("rest",),
    "puzzle_dict": ("id", "ip"),
    "dict_state": ("state",),
    "puzzle_registration": ("id",),
    "server_ready": ("port",),
    "heartbeat": ("rest",),
    "http_client": ("ip",),
    "udp_client": ("ip",),
    "log": ("level", "message"),
    "field": ("key", "value"),
}


class LineGrammar(BaseModel):
    """Regular expressions recognised in the script's output, tried in field order.

    Named groups are part of the contract:
    - puzzle_status: rest          (id and KEY=VALUE fields are parsed from it)
    - puzzle_dict: id, ip          (optional state via dict_state)
    - puzzle_registration: id
    - server_ready: port
    - heartbeat: rest              (UPTIME= and T= fields)
    - http_client / udp_client: ip
    - log: level, message
    """
    model_config = ConfigDict(frozen=True)

    version: int = DEFAULT_GRAMMAR_VERSION

    puzzle_status: str = r"^\s*PUZZLE\b(?P<rest>.*)$"
    puzzle_dict: str = r"\{'name':\s*'(?P<id>[^']+)',.*?'ip':\s*'(?P<ip>[^']+)'"
    dict_state: str = r"'state':\s*'(?P<state>[^']+)'"
    puzzle_registration: str = r"Registering new puzzle\s+(?P<id>\w+)"
    server_ready: str = r"Serving at port\s+(?P<port>\d+)"
    heartbeat: str = r"^\s*HEARTBEAT\b(?P<rest>.*)$"
    http_client: str = r"^(?P<ip>\d{1,3}(?:\.\d{1,3}){3})\s+-\s+-"
    udp_client: str = r"Received message from \('(?P<ip>\d{1,3}(?:\.\d{1,3}){3})',"
    log: str = r"^(?P<level>DEBUG|INFO|WARNING|WARN|ERROR|CRITICAL)[:\s]\s*(?P<message>.*)$"

    # KEY=VALUE pairs inside puzzle status and heartbeat lines
    field: str = r"(?P<key>[A-Za-z_]+)=(?P<value>\S*)"

    @field_validator(
        "puzzle_status",
        "puzzle_dict",
        "dict_state",
        "puzzle_registration",
        "server_ready",
        "heartbeat",
        "http_client",
        "udp_client",
        "log",
        "field",
    )
    @classmethod
    def _must_compile(cls, value: str, info: ValidationInfo) -> str:
        try:
            pattern = re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression {value!r}: {e}") from e
        missing = [g for g in REQUIRED_GROUPS[info.field_name] if g not in pattern.groupindex]
        if missing:
            raise ValueError(f"pattern {value!r} lacks named group(s): {', '.join(missing)}")
        return value


def load_grammar(path: Path | str) -> LineGrammar:
    """
    Load a grammar from a JSON file. Missing keys fall back to the defaults.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    grammar_path = Path(path)
    try:
        text = grammar_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read grammar file {grammar_path}: {e}") from e

    try:
        return LineGrammar.model_validate_json(text)
    except ValidationError as e:
        raise ConfigError(f"Invalid grammar file {grammar_path}: {e}") from e

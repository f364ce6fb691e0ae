"""
Monitor configuration.

Sources, lowest priority first:
1. Defaults below
2. ROOMWATCH_* environment variables (a .env file is loaded by main.py)
3. Command-line flags

Everything is validated into a frozen MonitorConfig. Any problem surfaces
as ConfigError, which main.py turns into a message and exit status 2.
"""

from __future__ import annotations

import os
import shlex
import sys
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from roomwatch.errors import ConfigError
from roomwatch.parsing import LineGrammar, load_grammar

ENV_PREFIX = "ROOMWATCH_"

# Fields that may come from the environment (ROOMWATCH_<NAME>)
ENV_FIELDS = (
    "script",
    "python",
    "command",
    "attach",
    "cwd",
    "refresh_mode",
    "refresh_interval",
    "log_capacity",
    "stale_after",
    "max_restarts",
    "backoff_initial",
    "backoff_max",
    "stable_after",
    "shutdown_timeout",
    "grammar_file",
    "log_dir",
)


class MonitorConfig(BaseModel):
    """Validated settings for one RoomWatch session."""
    model_config = ConfigDict(frozen=True)

    # What to supervise
    script: Path = Path("server.py")
    python: str = Field(default_factory=lambda: sys.executable or "python3")
    command: tuple[str, ...] | None = None
    attach: Path | None = None
    cwd: Path | None = None

    # Refresh loop
    refresh_mode: Literal["interval", "line"] = "interval"
    refresh_interval: float = Field(default=0.25, gt=0)

    # State
    log_capacity: int = Field(default=1000, ge=1)
    stale_after: float = Field(default=60.0, gt=0)

    # Restart policy
    max_restarts: int = Field(default=5, ge=0)
    backoff_initial: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    stable_after: float = Field(default=30.0, ge=0)
    shutdown_timeout: float = Field(default=5.0, gt=0)

    # Parsing
    grammar_file: Path | None = None
    grammar: LineGrammar = Field(default_factory=LineGrammar)

    # Ambient
    log_dir: Path = Path(".roomwatch")
    debug: bool = False
    headless: bool = False

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            parts = shlex.split(value)
            return tuple(parts) if parts else None
        return value

    @field_validator("refresh_mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def resolved_command(self) -> list[str]:
        """The command line used to spawn the script."""
        if self.command:
            return list(self.command)
        return [self.python, "-u", str(self.script)]

    def script_path(self) -> Path:
        """Script location as seen from the working directory the script runs in."""
        if self.script.is_absolute() or self.cwd is None:
            return self.script
        return self.cwd / self.script

    def check_paths(self) -> None:
        """
        Verify that what we are asked to supervise exists.

        Raises:
            ConfigError: If the script (or pipe, or working directory) is missing
        """
        if self.cwd is not None and not self.cwd.is_dir():
            raise ConfigError(f"Working directory not found: {self.cwd}")
        if self.attach is not None:
            if not self.attach.exists():
                raise ConfigError(f"Pipe to attach to not found: {self.attach}")
            return
        if self.command:
            return
        script = self.script_path()
        if not script.is_file():
            raise ConfigError(
                f"External script not found: {script} "
                f"(use --script PATH, --command CMD or set {ENV_PREFIX}SCRIPT)"
            )


def _env_values(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in ENV_FIELDS:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            values[name] = raw
    return values


def load_config(
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    check_paths: bool = True,
) -> MonitorConfig:
    """
    Build a MonitorConfig from the environment and explicit overrides.

    Args:
        overrides: Values from the command line; None entries are ignored
        env: Environment mapping (default: os.environ)
        check_paths: Also verify the script/pipe exists

    Raises:
        ConfigError: On any invalid or missing setting
    """
    values = _env_values(os.environ if env is None else env)
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    grammar_file = values.get("grammar_file")
    if grammar_file:
        values["grammar"] = load_grammar(grammar_file)

    try:
        config = MonitorConfig(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e

    if config.backoff_max < config.backoff_initial:
        raise ConfigError(
            f"backoff_max ({config.backoff_max}) must not be below backoff_initial ({config.backoff_initial})"
        )

    if check_paths:
        config.check_paths()
    return config

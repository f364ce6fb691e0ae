"""
Exception hierarchy for RoomWatch.

- ParseError: local to the parser; the line becomes Unrecognized
- ProcessLost: the script's stream closed or could not be opened;
  recovered by the runner's restart loop
- ConfigError: unrecoverable configuration problem found at startup

"Disconnected" is not an exception: it is a link state shown in the UI
(see roomwatch.domain.link.LinkState).
"""


class RoomWatchError(Exception):
    """Base exception for RoomWatch errors."""

    pass


class ParseError(RoomWatchError):
    """Raised when a line matches a pattern but its required fields are unusable."""

    pass


class ProcessLost(RoomWatchError):
    """Raised when the external script's output stream ends or fails."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(RoomWatchError):
    """Raised for invalid configuration. Fatal: the app exits before the UI starts."""

    pass

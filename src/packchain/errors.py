# errors.py
from __future__ import annotations

from dataclasses import dataclass


class PackchainError(Exception):
    """Base class for every failure the CLI reports as a clean error message."""


class ConfigError(PackchainError):
    """Missing, unreadable or malformed pack configuration."""


class DependencyError(PackchainError):
    """A depends_on target is unknown, or following depends_on loops back."""


class SortError(PackchainError):
    """Topological sort could not emit every item."""


class ManifestError(PackchainError):
    """package.json is missing, malformed, or lacks a required field."""


class ArtifactError(PackchainError):
    """No packaging artifact could be located after a build."""


class PlaceholderError(PackchainError):
    """A {{token}} in a command has no matching dependency output."""

    def __init__(self, token: str, command: str):
        super().__init__(f'Unknown dependency: "{token}" in command "{command}"')
        self.token = token
        self.command = command


@dataclass
class CommandError(PackchainError):
    """
    An external command failed.

    exit_code is None when the program could not be launched at all.
    """
    command: str
    exit_code: int | None = None
    reason: str | None = None

    def __str__(self) -> str:
        if self.exit_code is None:
            return f'Failed to execute "{self.command}": {self.reason or "spawn error"}'
        msg = f'Command "{self.command}" exited with code {self.exit_code}'
        if self.reason:
            msg += f" ({self.reason})"
        return msg


class SessionError(PackchainError):
    """Session file missing, or a record in it could not be found."""


class MalformedSessionError(SessionError):
    """Session file exists but is not a valid session document."""


class SignalPermissionError(PackchainError):
    """The OS refused to deliver a signal to a recorded pid."""


@dataclass
class ChainItemError(PackchainError):
    """Failure of one item of the chain; the chain stops here."""
    item: str
    cause: Exception

    def __str__(self) -> str:
        return f'Failed to execute "{self.item}": {self.cause}'


class ShutdownRequested(BaseException):
    """
    Raised from the installed signal hook so the main thread unwinds
    (running every manifest restore on the way) before cleanup happens.
    """

    def __init__(self, signum: int):
        super().__init__(signum)
        self.signum = signum

    @property
    def signal_name(self) -> str:
        import signal

        try:
            return signal.Signals(self.signum).name
        except ValueError:
            return str(self.signum)

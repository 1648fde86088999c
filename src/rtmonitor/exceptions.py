"""Custom exceptions for the folder monitor package."""

from pathlib import Path
from typing import Optional


class MonitorError(Exception):
    """Base exception for all monitor errors."""
    pass


class ConfigurationError(MonitorError):
    """Monitor configuration cannot be used (not retried)."""
    pass


class UnsupportedProtocolError(ConfigurationError):
    """A folder path phrase names a protocol that cannot be watched."""

    def __init__(self, protocol: str, phrase: str):
        super().__init__(
            f"The {protocol} protocol does not support directory monitoring:\n\n{phrase}"
        )
        self.protocol = protocol
        self.phrase = phrase


class FolderError(MonitorError):
    """Filesystem error while watching a folder."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class CommandError(MonitorError):
    """The external command could not be launched."""

    def __init__(self, command_line: str, reason: str):
        super().__init__(f"Command {command_line!r} failed.\n\n{reason}")
        self.command_line = command_line
        self.reason = reason


class MonitorAlreadyRunningError(MonitorError):
    """Monitor is already running."""
    pass


class ExecuteNow(Exception):
    """Quiet period has elapsed: leave the change wait and run the command."""
    pass


class AbortMonitoring(Exception):
    """Cancellation requested by the caller; unwinds the whole monitor."""

    def __init__(self, reason):
        super().__init__(f"Monitoring aborted: {reason}")
        self.reason = reason

"""Configuration for the folder monitor package."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Union

from .exceptions import ConfigurationError


@dataclass
class MonitorConfig:
    """
    Configuration options for the folder monitor.

    Attributes:
        directories: Folder path phrases to watch, in configured order
        command: Command line to run, may contain %macro% placeholders
        delay: Quiet period in seconds after the last change before running
            the command
        hide_console_window: Launch the command without a console (Windows)
        callback_interval_ms: Longest time any wait may block before the
            UI refresh hook is called again
        ui_update_interval_ms: Minimum time between status refreshes
        existence_check_interval: Seconds between liveness checks of the
            watched folders and between probes of a missing folder
        retry_after_error: Seconds to pause before restarting after an error
        ignore_suffixes: File endings of the sync tool's own temporary files
        recursive: Whether to watch subfolders
    """
    directories: List[str] = field(default_factory=list)
    command: str = ""
    delay: float = 10
    hide_console_window: bool = False
    callback_interval_ms: int = 50
    ui_update_interval_ms: int = 100
    existence_check_interval: float = 1.0
    retry_after_error: float = 15.0
    ignore_suffixes: List[str] = field(default_factory=lambda: [
        ".ffs_tmp",   # sync.8ea2.ffs_tmp
        ".ffs_lock",  # sync.ffs_lock, sync.Del.ffs_lock
        ".ffs_db",    # sync.ffs_db
    ])
    recursive: bool = True

    @property
    def callback_interval(self) -> float:
        """Callback interval in seconds."""
        return self.callback_interval_ms / 1000.0

    @property
    def ui_update_interval(self) -> float:
        """UI update interval in seconds."""
        return self.ui_update_interval_ms / 1000.0

    def should_ignore(self, path: Union[str, Path]) -> bool:
        """
        Check if a changed path belongs to the sync tool's own artifacts.

        Args:
            path: Path of the changed item

        Returns:
            True if the change must not count as user activity
        """
        path_str = str(path)
        return any(path_str.endswith(suffix) for suffix in self.ignore_suffixes)

    def validate(self) -> "MonitorConfig":
        """
        Check the configuration before monitoring starts.

        Whitespace-only folder entries are dropped without touching the
        remaining phrases.

        Returns:
            A copy with blank folder entries removed and the command trimmed

        Raises:
            ConfigurationError: If no folder or no command is configured
        """
        directories = [d for d in self.directories if d.strip()]
        if not directories:
            raise ConfigurationError("A folder input field is empty.")

        command = self.command.strip()
        if not command:
            raise ConfigurationError("No command line configured.")

        if self.delay < 0:
            raise ConfigurationError(f"Delay must not be negative: {self.delay}")

        return replace(self, directories=directories, command=command)

    @classmethod
    def from_env(cls, **overrides) -> "MonitorConfig":
        """
        Build a config from RTMONITOR_* environment variables.

        Keyword arguments that are not None take precedence over the
        environment.
        """
        values = {}

        directories = os.environ.get("RTMONITOR_DIRECTORIES")
        if directories:
            values["directories"] = [d for d in directories.split(os.pathsep) if d]

        command = os.environ.get("RTMONITOR_COMMAND")
        if command:
            values["command"] = command

        delay = os.environ.get("RTMONITOR_DELAY")
        if delay:
            try:
                values["delay"] = float(delay)
            except ValueError:
                raise ConfigurationError(f"Invalid RTMONITOR_DELAY: {delay!r}")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

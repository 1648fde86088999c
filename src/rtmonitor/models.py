"""Data models for the folder monitor package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union
import time


class ChangeType(Enum):
    """Kinds of change reported for a watched folder."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BASE_FOLDER_UNAVAILABLE = "base_folder_unavailable"

    @property
    def action_name(self) -> str:
        """Label passed to the external command as ``change_action``."""
        return _ACTION_NAMES[self]


_ACTION_NAMES = {
    ChangeType.CREATE: "Create",
    ChangeType.UPDATE: "Update",
    ChangeType.DELETE: "Delete",
    ChangeType.BASE_FOLDER_UNAVAILABLE: "Base Folder Unavailable",
}


class Phase(Enum):
    """Monitor state as shown to the user."""
    ACTIVE = "active"
    WAITING = "waiting"
    ERROR = "error"


class CancelReason(Enum):
    """Why monitoring was cancelled."""
    REQUEST_GUI = "request_gui"
    REQUEST_EXIT = "request_exit"


@dataclass(frozen=True)
class ChangeRecord:
    """
    A single change detected inside a watched folder.

    Attributes:
        path: Full path of the changed item
        change_type: What happened to the item
        timestamp: Unix timestamp when the change was seen
    """
    path: Path
    change_type: ChangeType
    timestamp: float = field(default_factory=time.time)

    @property
    def action_name(self) -> str:
        return self.change_type.action_name


@dataclass(frozen=True)
class ItemChanged:
    """Wait outcome: an item inside a watched folder changed."""
    record: ChangeRecord

    @property
    def cause(self) -> ChangeRecord:
        return self.record


@dataclass(frozen=True)
class FolderUnavailable:
    """Wait outcome: a watched folder is missing or cannot be accessed."""
    path: Path

    @property
    def cause(self) -> ChangeRecord:
        return ChangeRecord(self.path, ChangeType.BASE_FOLDER_UNAVAILABLE)


WaitOutcome = Union[ItemChanged, FolderUnavailable]


@dataclass
class WatchTarget:
    """
    A configured folder phrase and its most recent resolution.

    Attributes:
        phrase: Folder path as entered by the user (may contain macros
            or a ``[volume name]`` prefix)
        resolved: Canonical path from the last resolution, if any
    """
    phrase: str
    resolved: Optional[Path] = None

    def __post_init__(self):
        if not self.phrase.strip():
            raise ValueError("phrase must not be blank")

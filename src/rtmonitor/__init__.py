"""
Folder Monitor Package

Watches a set of folders and runs a command once their contents have
stopped changing.

Features:
- Folder phrases with macros and volume names, re-resolved while running
- Waits for missing folders (unplugged USB sticks, dropped network shares)
- Debounced command execution after a configurable idle time
- Ignores the sync tool's own temporary, lock and database files
- Cooperative cancellation through a single callback
"""

from .models import (
    ChangeType,
    ChangeRecord,
    ItemChanged,
    FolderUnavailable,
    WaitOutcome,
    WatchTarget,
    Phase,
    CancelReason,
)

from .config import MonitorConfig

from .exceptions import (
    MonitorError,
    ConfigurationError,
    UnsupportedProtocolError,
    FolderError,
    CommandError,
    MonitorAlreadyRunningError,
    ExecuteNow,
    AbortMonitoring,
)

from .path_resolver import expand_macros, resolve_path
from .targets import TargetSet
from .fs_watcher import DirWatcher, DirWatcherPool, FSEventHandler
from .availability import AvailabilityWaiter, is_available
from .change_watcher import ChangeWatcher
from .trigger import TriggerExecutor
from .callback import MonitorCallback, ConsoleCallback
from .monitor import FolderMonitor, MonitorStats


__all__ = [
    # Models
    "ChangeType",
    "ChangeRecord",
    "ItemChanged",
    "FolderUnavailable",
    "WaitOutcome",
    "WatchTarget",
    "Phase",
    "CancelReason",
    # Config
    "MonitorConfig",
    # Exceptions
    "MonitorError",
    "ConfigurationError",
    "UnsupportedProtocolError",
    "FolderError",
    "CommandError",
    "MonitorAlreadyRunningError",
    "ExecuteNow",
    "AbortMonitoring",
    # Components
    "expand_macros",
    "resolve_path",
    "TargetSet",
    "DirWatcher",
    "DirWatcherPool",
    "FSEventHandler",
    "AvailabilityWaiter",
    "is_available",
    "ChangeWatcher",
    "TriggerExecutor",
    "MonitorCallback",
    "ConsoleCallback",
    # Main Monitor
    "FolderMonitor",
    "MonitorStats",
]

__version__ = "0.1.0"

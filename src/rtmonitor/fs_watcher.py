"""Change sources for watched folders using the watchdog library."""

import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, Iterator, List, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import FileSystemEvent, FileSystemEventHandler

from .exceptions import FolderError
from .models import ChangeRecord, ChangeType

logger = logging.getLogger(__name__)


def _to_path(raw_path) -> Path:
    return Path(os.fsdecode(raw_path))


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events to ChangeRecords."""

    def __init__(self, callback: Callable[[ChangeRecord], None], root: Path):
        super().__init__()
        self.callback = callback
        self.root = root

    def _emit(self, change_type: ChangeType, raw_path) -> None:
        """Emit a ChangeRecord to the callback."""
        path = _to_path(raw_path)
        # Removal of the root itself is found by the liveness check
        if path == self.root:
            return
        self.callback(ChangeRecord(path, change_type))

    def on_created(self, event: FileSystemEvent):
        self._emit(ChangeType.CREATE, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        self._emit(ChangeType.DELETE, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        # A folder is "modified" whenever an item inside it changes
        if event.is_directory:
            return
        self._emit(ChangeType.UPDATE, event.src_path)

    def on_closed(self, event: FileSystemEvent):
        self._emit(ChangeType.UPDATE, event.src_path)

    def on_moved(self, event: FileSystemEvent):
        self._emit(ChangeType.DELETE, event.src_path)
        self._emit(ChangeType.CREATE, event.dest_path)


class DirWatcher:
    """
    Change source for a single folder, including subfolders.

    Changes accumulate in memory until fetched. The ``activity`` event is
    set whenever a change arrives so a caller can sleep until something
    happens.
    """

    def __init__(
        self,
        path: Path,
        recursive: bool = True,
        activity: Optional[threading.Event] = None,
    ):
        """
        Start watching a folder.

        Args:
            path: Folder to watch
            recursive: Whether to watch subfolders
            activity: Event to set when changes arrive

        Raises:
            FolderError: If the folder cannot be monitored
        """
        self.path = path
        self.activity = activity or threading.Event()
        self._changes: Deque[ChangeRecord] = deque()
        self._lock = threading.Lock()

        self._observer = Observer()
        self._observer.daemon = True
        handler = FSEventHandler(self._on_change, path)

        try:
            self._observer.schedule(handler, str(path), recursive=recursive)
            self._observer.start()
        except OSError as e:
            raise FolderError(f"Cannot monitor directory {path}: {e}", path) from e

    def _on_change(self, record: ChangeRecord) -> None:
        with self._lock:
            self._changes.append(record)
        self.activity.set()

    def is_alive(self) -> bool:
        """Check that the observer and its emitters are still running."""
        if not self._observer.is_alive():
            return False
        return all(emitter.is_alive() for emitter in self._observer.emitters)

    def fetch_changes(self) -> List[ChangeRecord]:
        """
        Extract the changes accumulated since the last call.

        Does not block.

        Returns:
            Changes in arrival order

        Raises:
            FolderError: If the observer stopped, e.g. the folder went away
        """
        with self._lock:
            records = list(self._changes)
            self._changes.clear()

        if not records and not self.is_alive():
            raise FolderError(f"Cannot monitor directory {self.path}.", self.path)

        return records

    def close(self) -> None:
        """Stop watching and release the observer."""
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5.0)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class DirWatcherPool:
    """
    Manages one DirWatcher per folder.

    All watchers share one activity event, so a single wait covers every
    folder in the pool.
    """

    def __init__(self, recursive: bool = True):
        """
        Initialize the watcher pool.

        Args:
            recursive: Whether to watch subfolders
        """
        self.recursive = recursive
        self.activity = threading.Event()
        self._watchers: Dict[Path, DirWatcher] = {}
        self._lock = threading.Lock()

    def start_watching(self, path: Path) -> bool:
        """
        Start watching a folder.

        Args:
            path: Folder to watch

        Returns:
            True if watching started, False if already watching

        Raises:
            FolderError: If the folder cannot be monitored
        """
        with self._lock:
            if path in self._watchers:
                return False

            self._watchers[path] = DirWatcher(path, self.recursive, self.activity)
            logger.debug(f"Started watching {path}")
            return True

    def stop_all(self) -> int:
        """
        Stop all watchers.

        Returns:
            Number of watchers stopped
        """
        with self._lock:
            watchers = list(self._watchers.values())
            self._watchers.clear()

        for watcher in watchers:
            watcher.close()
        return len(watchers)

    def items(self) -> Iterator[Tuple[Path, DirWatcher]]:
        """Iterate over (folder, watcher) pairs in the order they were added."""
        with self._lock:
            pairs = list(self._watchers.items())
        return iter(pairs)

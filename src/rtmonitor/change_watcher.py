"""Waiting for the next change in any of the watched folders."""

import logging
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Iterable, Optional

from .availability import is_available
from .config import MonitorConfig
from .exceptions import ConfigurationError, FolderError
from .fs_watcher import DirWatcherPool
from .models import ChangeRecord, FolderUnavailable, ItemChanged, WaitOutcome

logger = logging.getLogger(__name__)


class ChangeWatcher:
    """
    Owns the change sources of all watched folders for one watching episode.

    Create it after all folders were found available and close it as soon
    as one of them goes away; the next episode opens fresh sources.
    """

    def __init__(
        self,
        paths: Iterable[Path],
        config: MonitorConfig,
        probe: Callable[[Path], bool] = is_available,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Open one change source per folder.

        A folder that cannot be opened because it vanished in the meantime
        is reported by the first wait_for_next_event() call.

        Args:
            paths: Resolved, available folders
            config: Monitor configuration
            probe: Existence check for a folder
            clock: Monotonic time source

        Raises:
            ConfigurationError: If no folder is given
            FolderError: If a source cannot be opened for an accessible folder
        """
        self.paths = list(paths)
        if not self.paths:
            # Would otherwise wait forever
            raise ConfigurationError("A folder input field is empty.")

        self.config = config
        self._probe = probe
        self._clock = clock
        self._pool = DirWatcherPool(recursive=config.recursive)
        self._unavailable: Optional[Path] = None
        self._pending: Deque[ChangeRecord] = deque()
        self._last_check = clock()

        for path in self.paths:
            try:
                self._pool.start_watching(path)
            except FolderError:
                if not self._probe(path):
                    logger.debug(f"Folder vanished before watching started: {path}")
                    self._unavailable = path
                    return
                self._pool.stop_all()
                raise

    def wait_for_next_event(self, on_tick: Callable[[], None]) -> WaitOutcome:
        """
        Wait until a change is detected or a folder becomes unavailable.

        ``on_tick()`` is called once per callback interval that passed
        without a change. Changes to the sync tool's own temporary, lock and
        database files are dropped and do not count as activity: a folder
        receiving only those still produces ticks on schedule.

        Args:
            on_tick: Cooperative refresh hook; may raise to leave the wait

        Returns:
            ItemChanged or FolderUnavailable

        Raises:
            FolderError: On errors not explained by a missing folder
        """
        if self._unavailable is not None:
            return FolderUnavailable(self._unavailable)

        activity = self._pool.activity
        interval = self.config.existence_check_interval
        tick_at = self._clock() + self.config.callback_interval

        while True:
            if self._pending:
                return ItemChanged(self._pending.popleft())

            check_now = False
            now = self._clock()
            if now > self._last_check + interval:
                self._last_check = now
                check_now = True

            activity.clear()

            for path, watcher in self._pool.items():
                # Change sources do not reliably report removal of the
                # watched folder itself
                if check_now and not self._probe(path):
                    logger.info(f"Folder became unavailable: {path}")
                    return FolderUnavailable(path)

                try:
                    records = watcher.fetch_changes()
                except FolderError:
                    if not self._probe(path):
                        logger.info(f"Folder became unavailable: {path}")
                        return FolderUnavailable(path)
                    raise

                for record in records:
                    if self.config.should_ignore(record.path):
                        continue
                    logger.debug(f"{record.action_name}: {record.path}")
                    self._pending.append(record)

            if self._pending:
                continue

            remaining = tick_at - self._clock()
            if remaining > 0:
                # Artifact writes may wake this early; sleep out the slice
                activity.wait(remaining)
                continue

            on_tick()
            tick_at = self._clock() + self.config.callback_interval

    def close(self) -> None:
        """Stop all change sources."""
        self._pool.stop_all()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

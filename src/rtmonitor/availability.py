"""Waiting until all watched folders exist and can be accessed."""

import logging
import os
import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Dict, List

from .config import MonitorConfig
from .path_resolver import resolve_path
from .targets import TargetSet

logger = logging.getLogger(__name__)


def is_available(path: Path) -> bool:
    """
    Check that a folder exists and can be accessed.

    May block for a long time on unresponsive network shares.
    """
    try:
        os.stat(path)
        return True
    except OSError:
        return False


def run_async(func: Callable, *args) -> Future:
    """
    Run func in a daemon thread.

    Unlike an executor, a hanging call (e.g. a dead network path) never
    keeps the interpreter from exiting.

    Returns:
        Future receiving the result or exception
    """
    future: Future = Future()

    def runner():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(func(*args))
        except Exception as e:
            future.set_exception(e)

    thread = threading.Thread(target=runner, name="FolderProbe", daemon=True)
    thread.start()
    return future


class AvailabilityWaiter:
    """
    Blocks until every configured folder is available at the same time.

    All waiting is done in slices of ``config.callback_interval``; after
    each slice ``on_probing(path)`` is called, which is where the caller
    refreshes its UI or raises to cancel.
    """

    def __init__(
        self,
        config: MonitorConfig,
        probe: Callable[[Path], bool] = is_available,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._probe = probe
        self._clock = clock
        self._sleep = sleep

    def _wait_for_probe(self, future: Future, path: Path, on_probing: Callable[[Path], None]) -> bool:
        while True:
            try:
                return bool(future.result(timeout=self.config.callback_interval))
            except FutureTimeoutError:
                on_probing(path)

    def _probe_now(self, path: Path, on_probing: Callable[[Path], None]) -> bool:
        return self._wait_for_probe(run_async(self._probe, path), path, on_probing)

    def _pause_until(self, deadline: float, path: Path, on_probing: Callable[[Path], None]) -> None:
        while self._clock() < deadline:
            on_probing(path)
            self._sleep(self.config.callback_interval)

    def wait_until_all_available(
        self,
        targets: TargetSet,
        on_probing: Callable[[Path], None],
    ) -> Dict[Path, str]:
        """
        Wait until all folders are available (again).

        Folders are resolved again on every pass, so volume names that
        change meaning while waiting are picked up. A missing folder is
        re-probed on its own until it shows up, then the whole pass is
        repeated: success requires one pass in which every folder was
        found.

        Args:
            targets: The configured folders
            on_probing: Called with the awaited folder after each wait slice

        Returns:
            Mapping of resolved folder path to its phrase

        Raises:
            UnsupportedProtocolError: If a phrase cannot be monitored
        """
        targets.check_supported()

        while True:
            resolved = targets.resolve()

            # Start all checks at once: a missing network path may block
            probes = {path: run_async(self._probe, path) for path in resolved}

            missing: List[str] = []
            for path, future in probes.items():
                if not self._wait_for_probe(future, path, on_probing):
                    logger.info(f"Waiting for folder: {path}")
                    missing.append(resolved[path])

            if not missing:
                return resolved

            interval = self.config.existence_check_interval
            delay_until = self._clock() + interval

            for phrase in missing:
                while True:
                    path = resolve_path(phrase)
                    self._pause_until(delay_until, path, on_probing)

                    if self._probe_now(path, on_probing):
                        logger.info(f"Folder available: {path}")
                        break
                    # Do not needlessly poll the folders that exist
                    delay_until = self._clock() + interval

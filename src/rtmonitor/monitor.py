"""Folder monitor: waits for changes to settle, then runs the command."""

import logging
import math
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from .availability import AvailabilityWaiter
from .callback import ConsoleCallback, MonitorCallback
from .change_watcher import ChangeWatcher
from .config import MonitorConfig
from .exceptions import (
    AbortMonitoring,
    ConfigurationError,
    ExecuteNow,
    MonitorAlreadyRunningError,
    MonitorError,
)
from .models import CancelReason, ChangeRecord, FolderUnavailable, Phase
from .targets import TargetSet
from .trigger import TriggerExecutor

logger = logging.getLogger(__name__)

WatcherFactory = Callable[[Iterable[Path], MonitorConfig], ChangeWatcher]


@dataclass
class MonitorStats:
    """Counters emitted by the monitor for observability."""

    changes_seen: int = 0
    folders_lost: int = 0
    commands_run: int = 0
    errors_reported: int = 0


class FolderMonitor:
    """
    Watches folders and runs a command once changes have settled.

    The command runs after ``config.delay`` seconds without any change,
    and only while all folders are available. Everything happens on the
    calling thread; the callback's request_ui_refresh() is the only place
    where the caller gets control back, and raising AbortMonitoring there
    is the only way to stop.
    """

    def __init__(
        self,
        config: MonitorConfig,
        callback: Optional[MonitorCallback] = None,
        *,
        waiter: Optional[AvailabilityWaiter] = None,
        watcher_factory: WatcherFactory = ChangeWatcher,
        executor: Optional[TriggerExecutor] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the monitor.

        Args:
            config: Monitor configuration
            callback: Status receiver (default: ConsoleCallback)
            waiter: Availability waiter (default: built from config)
            watcher_factory: Creates the change watcher for a set of folders
            executor: Command launcher (default: built from config)
            clock: Monotonic time source
            sleep: Sleep function used during the error cool-down
        """
        self.config = config
        self.callback = callback or ConsoleCallback(config.ui_update_interval)
        self.stats = MonitorStats()
        self.result: Optional[CancelReason] = None
        self._cause: Optional[ChangeRecord] = None

        self._waiter = waiter
        self._watcher_factory = watcher_factory
        self._executor = executor
        self._clock = clock
        self._sleep = sleep

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Check if the monitor is running."""
        return self._running

    def run(self) -> CancelReason:
        """
        Monitor until cancelled (blocking).

        Configuration errors are reported once and end monitoring with
        REQUEST_GUI. Any other error is reported, followed by a cool-down,
        and monitoring starts over by waiting for all folders.

        Returns:
            The reason passed with AbortMonitoring

        Raises:
            MonitorAlreadyRunningError: If already running
        """
        with self._lock:
            if self._running:
                raise MonitorAlreadyRunningError("Monitor is already running")
            self._running = True
            self._cause = None

        try:
            try:
                config = self.config.validate()
                targets = TargetSet(config.directories)
                targets.check_supported()
            except ConfigurationError as e:
                self._report_error(str(e))
                self.result = CancelReason.REQUEST_GUI
                return self.result

            self.config = config
            waiter = self._waiter or AvailabilityWaiter(config, clock=self._clock, sleep=self._sleep)
            executor = self._executor or TriggerExecutor(config, report_error=self._report_error)

            logger.info(f"Monitoring {len(targets.phrases)} folder(s), delay {config.delay}s")
            for phrase in targets.phrases:
                logger.info(f"  - {phrase}")

            while True:
                try:
                    self._run_cycle(targets, waiter, executor)
                except ConfigurationError as e:
                    self._report_error(str(e))
                    self.result = CancelReason.REQUEST_GUI
                    return self.result
                except (MonitorError, OSError) as e:
                    self._report_error(str(e))
                    self._cool_down()

        except AbortMonitoring as e:
            logger.info(f"Monitoring stopped: {e.reason.value}")
            self.result = e.reason
            return e.reason
        finally:
            with self._lock:
                self._running = False
            logger.info(
                f"Monitor finished after {self.stats.commands_run} command run(s), "
                f"{self.stats.changes_seen} change(s)"
            )

    def _run_cycle(
        self,
        targets: TargetSet,
        waiter: AvailabilityWaiter,
        executor: TriggerExecutor,
    ) -> None:
        """Wait for all folders, then watch and run the command; only returns by raising."""
        callback = self.callback
        delay = self.config.delay

        def on_probing(path: Path) -> None:
            callback.set_phase(Phase.WAITING, path)
            callback.request_ui_refresh()

        folders = waiter.wait_until_all_available(targets, on_probing)
        callback.set_phase(Phase.ACTIVE)

        # Schedule first execution *after* all folders have arrived. A cause
        # left over from a cycle that ended in an error is still pending.
        next_exec_time = self._clock() + delay

        def on_tick() -> None:
            callback.set_phase(Phase.ACTIVE)
            callback.request_ui_refresh()

            # Only fire for a change
            if self._cause is not None and self._clock() >= next_exec_time:
                raise ExecuteNow()

        watcher = self._watcher_factory(list(folders), self.config)
        try:
            while True:
                try:
                    while True:
                        outcome = watcher.wait_for_next_event(on_tick)
                        self._cause = outcome.cause

                        if isinstance(outcome, FolderUnavailable):
                            self.stats.folders_lost += 1
                            callback.set_phase(Phase.WAITING, outcome.path)
                            watcher.close()
                            # Never run the command before all folders are back
                            folders = waiter.wait_until_all_available(targets, on_probing)
                            callback.set_phase(Phase.ACTIVE)
                            watcher = self._watcher_factory(list(folders), self.config)
                        else:
                            self.stats.changes_seen += 1
                            target = targets.find_target_for_path(outcome.cause.path)
                            if target is not None:
                                logger.debug(f"Change below {target.phrase!r}: {outcome.cause.path}")

                        next_exec_time = self._clock() + delay
                except ExecuteNow:
                    pass

                cause, self._cause = self._cause, None
                next_exec_time = math.inf

                self.stats.commands_run += 1
                executor.run(cause)
        finally:
            watcher.close()

    def _report_error(self, message: str) -> None:
        self.stats.errors_reported += 1
        self.callback.report_error(message)

    def _cool_down(self) -> None:
        """Pause before retrying, staying responsive to cancellation."""
        delay_until = self._clock() + self.config.retry_after_error
        while self._clock() < delay_until:
            self.callback.request_ui_refresh()
            self._sleep(self.config.callback_interval)

    def start_async(self) -> threading.Thread:
        """
        Run the monitor in a background thread.

        Returns:
            The started thread

        Raises:
            MonitorAlreadyRunningError: If already running
        """
        with self._lock:
            if self._running or (self._thread is not None and self._thread.is_alive()):
                raise MonitorAlreadyRunningError("Monitor is already running")

        self._thread = threading.Thread(target=self.run, name="FolderMonitor", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, reason: CancelReason = CancelReason.REQUEST_EXIT, timeout: float = 5.0) -> None:
        """
        Cancel the monitor and wait for its thread to finish.

        Requires a callback with a cancel() method, like ConsoleCallback.
        """
        cancel = getattr(self.callback, "cancel", None)
        if cancel is None:
            raise MonitorError("Callback does not support cancellation")
        cancel(reason)
        self.join(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the background thread to finish."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._thread is not None and self._thread.is_alive():
            self.stop()
        return False

"""Interface between the monitor and whoever presents its status."""

import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Optional, Protocol

from .exceptions import AbortMonitoring
from .models import CancelReason, Phase

logger = logging.getLogger(__name__)

# Most recent error messages kept for display
MAX_ERRORS = 20


class MonitorCallback(Protocol):
    """Protocol for monitor status receivers."""

    def set_phase(self, phase: Phase, missing_path: Optional[Path] = None) -> None:
        """Report the current phase; missing_path is set while waiting."""
        ...

    def request_ui_refresh(self) -> None:
        """Called at least once per callback interval; raise AbortMonitoring to cancel."""
        ...

    def report_error(self, message: str) -> None:
        """Report an error; the monitor retries afterwards."""
        ...


class ConsoleCallback:
    """
    Callback that reports status through logging.

    Cancellation is requested from any thread with cancel() and takes
    effect at the next request_ui_refresh() call made by the monitor.
    """

    def __init__(
        self,
        ui_update_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the callback.

        Args:
            ui_update_interval: Minimum seconds between status refreshes
            clock: Monotonic time source
        """
        self.ui_update_interval = ui_update_interval
        self.phase: Optional[Phase] = None
        self.missing_path: Optional[Path] = None
        self.errors: Deque[str] = deque(maxlen=MAX_ERRORS)
        self.refresh_count = 0
        self._clock = clock
        self._last_refresh = float("-inf")
        self._cancel_reason: Optional[CancelReason] = None
        self._lock = threading.Lock()

    def cancel(self, reason: CancelReason = CancelReason.REQUEST_EXIT) -> None:
        """Request the monitor to stop."""
        with self._lock:
            if self._cancel_reason is None:
                self._cancel_reason = reason

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_reason is not None

    def set_phase(self, phase: Phase, missing_path: Optional[Path] = None) -> None:
        if phase == self.phase and missing_path == self.missing_path:
            return

        self.phase = phase
        self.missing_path = missing_path

        if phase is Phase.WAITING:
            logger.info(f"Waiting for missing folder: {missing_path}")
        elif phase is Phase.ACTIVE:
            logger.info("Monitoring active")

    def request_ui_refresh(self) -> None:
        with self._lock:
            reason = self._cancel_reason
        if reason is not None:
            raise AbortMonitoring(reason)

        now = self._clock()
        if now > self._last_refresh + self.ui_update_interval:
            self._last_refresh = now
            self.refresh_count += 1
            self.on_refresh()

    def on_refresh(self) -> None:
        """Hook for subclasses that have something to redraw."""
        pass

    def report_error(self, message: str) -> None:
        self.set_phase(Phase.ERROR)
        self.errors.append(message)
        logger.error(message)

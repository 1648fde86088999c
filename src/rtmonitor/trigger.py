"""Running the configured command after changes settled."""

import logging
import os
import subprocess
import sys
import threading
from typing import Callable, Dict, Optional

from .config import MonitorConfig
from .exceptions import CommandError
from .models import ChangeRecord
from .path_resolver import expand_macros

logger = logging.getLogger(__name__)


def change_variables(cause: ChangeRecord) -> Dict[str, str]:
    """Variables describing the change that triggered the command."""
    return {
        "change_path": str(cause.path),
        "change_action": cause.action_name,
    }


class TriggerExecutor:
    """
    Launches the external command without waiting for it.

    The changed item is passed both as %change_path% / %change_action%
    macros in the command line and as environment variables of the same
    name.
    """

    def __init__(
        self,
        config: MonitorConfig,
        report_error: Optional[Callable[[str], None]] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        """
        Initialize the executor.

        Args:
            config: Monitor configuration holding the command line
            report_error: Receives launch failures (non-fatal)
            popen: Process factory
        """
        self.config = config
        self.report_error = report_error
        self._popen = popen

    def expand_command(self, cause: ChangeRecord) -> str:
        """Expand all macros in the configured command line."""
        return expand_macros(self.config.command, extra=change_variables(cause))

    def launch(self, cause: ChangeRecord) -> subprocess.Popen:
        """
        Start the command for the given change.

        Raises:
            CommandError: If the process cannot be started
        """
        env = dict(os.environ)
        env.update(change_variables(cause))
        command_line = self.expand_command(cause)

        kwargs = {}
        if sys.platform == "win32" and self.config.hide_console_window:
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        logger.info(f"Running command ({cause.action_name}: {cause.path}): {command_line}")
        try:
            process = self._popen(command_line, shell=True, env=env, **kwargs)
        except (OSError, ValueError) as e:
            raise CommandError(command_line, str(e)) from e

        self._watch_exit(process, command_line)
        return process

    def run(self, cause: ChangeRecord) -> Optional[subprocess.Popen]:
        """
        Start the command; failures are reported, never raised.

        Returns:
            The started process, or None if it could not be started
        """
        try:
            return self.launch(cause)
        except CommandError as e:
            logger.error(str(e))
            if self.report_error:
                self.report_error(str(e))
            return None

    def _watch_exit(self, process: subprocess.Popen, command_line: str) -> None:
        def reaper():
            exit_code = process.wait()
            if exit_code != 0:
                logger.warning(f"Command {command_line!r} failed. Exit code {exit_code}")
            else:
                logger.debug(f"Command finished: {command_line}")

        threading.Thread(target=reaper, name="CommandReaper", daemon=True).start()

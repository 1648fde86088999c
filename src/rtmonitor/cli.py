#!/usr/bin/env python3
"""
CLI for the folder monitor.

Usage:
    rtmonitor run /path/to/folder1 /path/to/folder2 --command "sync.sh" --delay 10
    rtmonitor resolve /path/to/folder "[USBSTICK]/backup"
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .availability import is_available
from .callback import ConsoleCallback
from .config import MonitorConfig
from .exceptions import ConfigurationError
from .models import CancelReason
from .monitor import FolderMonitor
from .targets import TargetSet


logger = logging.getLogger("rtmonitor.cli")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


class GracefulShutdown:
    """Cancel monitoring on SIGINT/SIGTERM."""

    def __init__(self, callback: ConsoleCallback):
        self.callback = callback
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.callback.cancel(CancelReason.REQUEST_EXIT)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # watchdog logs every inotify event at debug level
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def cmd_run(args) -> int:
    """Run the folder monitor until interrupted."""
    try:
        config = MonitorConfig.from_env(
            directories=args.folders or None,
            command=args.command,
            delay=args.delay,
            hide_console_window=args.hide_console or None,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    callback = ConsoleCallback(config.ui_update_interval)
    GracefulShutdown(callback)

    monitor = FolderMonitor(config, callback)
    logger.info("Press Ctrl+C to stop")
    reason = monitor.run()

    if reason is CancelReason.REQUEST_EXIT:
        return EXIT_OK
    return EXIT_CONFIG_ERROR


def cmd_resolve(args) -> int:
    """Show what the folder phrases resolve to and whether they exist."""
    try:
        targets = TargetSet(args.folders)
        targets.check_supported()
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    resolved = targets.resolve()
    print(f"\nFolders ({len(resolved)}):")
    for path, phrase in resolved.items():
        status = "available" if is_available(path) else "missing"
        if phrase.strip() != str(path):
            print(f"  - {path}  ({phrase.strip()})  [{status}]")
        else:
            print(f"  - {path}  [{status}]")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="rtmonitor",
        description="Watch folders and run a command when their contents change",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a sync job 10 seconds after the last change
  rtmonitor run ~/Documents /media/backup --command "sync-job.sh" --delay 10

  # Pass the changed file to the command
  rtmonitor run ~/inbox --command "echo %change_action% %change_path%"

  # Check how folder phrases are resolved
  rtmonitor resolve "[USBSTICK]/backup" "%HOME%/Documents"
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run_parser = subparsers.add_parser("run", help="Monitor folders and run a command")
    run_parser.add_argument("folders", nargs="*", help="Folders to watch (or RTMONITOR_DIRECTORIES)")
    run_parser.add_argument("-c", "--command", default=None, help="Command line to run (or RTMONITOR_COMMAND)")
    run_parser.add_argument("-d", "--delay", type=float, default=None,
                            help="Idle time in seconds before running the command (default: 10)")
    run_parser.add_argument("--hide-console", action="store_true", help="Run the command without a console window")
    run_parser.set_defaults(func=cmd_run)

    resolve_parser = subparsers.add_parser("resolve", help="Show resolved folder paths")
    resolve_parser.add_argument("folders", nargs="+", help="Folder path phrases")
    resolve_parser.set_defaults(func=cmd_resolve)

    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

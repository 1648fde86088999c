#!/usr/bin/env python3
"""
Folder monitor demo.

This example demonstrates:
1. Debouncing - a burst of file changes runs the command only once
2. Macros - the command line receives %change_action% and %change_path%
3. Missing folders - monitoring pauses while a folder is gone

Usage:
    python examples/monitor_demo.py

The demo will:
- Create a temporary directory structure
- Start the monitor in a background thread
- Create/modify/delete files
- Remove and restore a watched folder
- Print every command run
- Clean up when done
"""

import logging
import shutil
import sys
import tempfile
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rtmonitor import ConsoleCallback, FolderMonitor, MonitorConfig, Phase


class DemoCallback(ConsoleCallback):
    """Prints phase changes instead of logging them."""

    def set_phase(self, phase, missing_path=None):
        if phase != self.phase or missing_path != self.missing_path:
            if phase is Phase.WAITING:
                print(f"[MONITOR] Waiting for {missing_path}")
            else:
                print(f"[MONITOR] {phase.value}")
        super().set_phase(phase, missing_path)


def main():
    logging.basicConfig(level=logging.WARNING)

    demo_dir = Path(tempfile.mkdtemp(prefix="rtmonitor_demo_"))
    inbox = demo_dir / "inbox"
    usb = demo_dir / "usb_stick"
    inbox.mkdir()
    usb.mkdir()

    config = MonitorConfig(
        directories=[str(inbox), str(usb)],
        command='echo "[COMMAND] %change_action%: %change_path%"',
        delay=1,
    )
    callback = DemoCallback(config.ui_update_interval)
    monitor = FolderMonitor(config, callback)

    print(f"Demo directory: {demo_dir}")
    monitor.start_async()

    try:
        time.sleep(1)

        print("\n--- Burst of changes: one command run expected ---")
        for i in range(5):
            (inbox / f"file_{i}.txt").write_text(f"content {i}")
            time.sleep(0.2)
        time.sleep(2)

        print("\n--- Modify and delete ---")
        (inbox / "file_0.txt").write_text("modified")
        (inbox / "file_1.txt").unlink()
        time.sleep(2)

        print("\n--- Unplug the USB stick ---")
        shutil.rmtree(usb)
        time.sleep(3)

        print("\n--- Plug it back in ---")
        usb.mkdir()
        time.sleep(3)

        stats = monitor.stats
        print(f"\nChanges seen: {stats.changes_seen}, folders lost: {stats.folders_lost}, "
              f"commands run: {stats.commands_run}")
    finally:
        monitor.stop()
        shutil.rmtree(demo_dir, ignore_errors=True)
        print("Demo complete!")


if __name__ == "__main__":
    main()

"""Tests for folder monitor module."""

import pytest
import sys
import time
from pathlib import Path

from rtmonitor.callback import ConsoleCallback
from rtmonitor.config import MonitorConfig
from rtmonitor.exceptions import FolderError, MonitorAlreadyRunningError
from rtmonitor.models import (
    CancelReason,
    ChangeRecord,
    ChangeType,
    FolderUnavailable,
    ItemChanged,
    Phase,
)
from rtmonitor.monitor import FolderMonitor


TICK = 0.1


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class FakeWaiter:
    """Availability waiter whose calls take a scripted number of ticks."""

    def __init__(self, clock, waits=()):
        self.clock = clock
        self.waits = list(waits)
        self.calls = 0
        self.returned_at = []

    def wait_until_all_available(self, targets, on_probing):
        self.calls += 1
        resolved = targets.resolve()
        ticks = self.waits.pop(0) if self.waits else 0
        for _ in range(ticks):
            self.clock.now += TICK
            on_probing(next(iter(resolved)))
        self.returned_at.append(self.clock.now)
        return resolved


class FakeWatcher:
    """
    Replays a script shared by all watchers of a factory.

    Script steps are outcomes to return, exceptions to raise, or
    ("idle", n) for n quiet ticks. When the script runs out, the
    callback is cancelled.
    """

    def __init__(self, factory, paths):
        self.factory = factory
        self.paths = paths
        self.closed = False

    def wait_for_next_event(self, on_tick):
        script = self.factory.script
        while True:
            if not script:
                self.factory.callback.cancel()
                on_tick()
                continue

            step = script[0]
            if isinstance(step, (ItemChanged, FolderUnavailable)):
                script.pop(0)
                self.factory.events_at.append(self.factory.clock.now)
                return step
            if isinstance(step, Exception):
                script.pop(0)
                raise step

            _, ticks = step
            if ticks <= 1:
                script.pop(0)
            else:
                script[0] = ("idle", ticks - 1)
            self.factory.clock.now += TICK
            on_tick()

    def close(self):
        self.closed = True


class FakeWatcherFactory:
    def __init__(self, clock, callback, script, errors=()):
        self.clock = clock
        self.callback = callback
        self.script = list(script)
        self.errors = list(errors)
        self.watchers = []
        self.events_at = []

    def __call__(self, paths, config):
        if self.errors:
            raise self.errors.pop(0)
        watcher = FakeWatcher(self, list(paths))
        self.watchers.append(watcher)
        return watcher


class FakeExecutor:
    def __init__(self, clock):
        self.clock = clock
        self.runs = []

    def run(self, cause):
        self.runs.append((self.clock.now, cause))


def changed(name, change_type=ChangeType.UPDATE):
    return ItemChanged(ChangeRecord(Path("/data/a") / name, change_type))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def callback(clock):
    return ConsoleCallback(ui_update_interval=0, clock=clock)


@pytest.fixture
def config():
    return MonitorConfig(
        directories=["/data/a", "/data/b"],
        command="sync.sh",
        delay=1,
        retry_after_error=2.0,
    )


def make_monitor(config, clock, callback, script, waits=(), errors=(), executor=None):
    factory = FakeWatcherFactory(clock, callback, script, errors)
    waiter = FakeWaiter(clock, waits)
    executor = executor or FakeExecutor(clock)
    monitor = FolderMonitor(
        config,
        callback,
        waiter=waiter,
        watcher_factory=factory,
        executor=executor,
        clock=clock,
        sleep=clock.sleep,
    )
    return monitor, factory, waiter, executor


class TestDebounce:
    """Tests for when the command runs."""

    def test_no_run_without_changes(self, config, clock, callback):
        monitor, _, _, executor = make_monitor(config, clock, callback, [("idle", 50)])

        assert monitor.run() == CancelReason.REQUEST_EXIT
        assert executor.runs == []

    def test_runs_after_delay(self, config, clock, callback):
        event = changed("report.txt")
        monitor, factory, _, executor = make_monitor(
            config, clock, callback, [event, ("idle", 50)]
        )

        monitor.run()

        assert len(executor.runs) == 1
        run_at, cause = executor.runs[0]
        assert cause is event.cause
        assert config.delay <= run_at - factory.events_at[0] < config.delay + 2 * TICK

    def test_burst_coalesced(self, config, clock, callback):
        first = changed("a.txt")
        second = changed("b.txt")
        last = changed("c.txt", ChangeType.CREATE)
        monitor, factory, _, executor = make_monitor(config, clock, callback, [
            first, ("idle", 5),
            second, ("idle", 5),
            last, ("idle", 50),
        ])

        monitor.run()

        assert len(executor.runs) == 1
        run_at, cause = executor.runs[0]
        assert cause is last.cause
        assert run_at - factory.events_at[-1] >= config.delay
        assert monitor.stats.changes_seen == 3

    def test_runs_again_for_new_changes(self, config, clock, callback):
        first = changed("a.txt")
        second = changed("b.txt")
        monitor, _, _, executor = make_monitor(config, clock, callback, [
            first, ("idle", 20),
            second, ("idle", 20),
        ])

        monitor.run()

        assert [cause for _, cause in executor.runs] == [first.cause, second.cause]
        assert monitor.stats.commands_run == 2

    def test_zero_delay(self, config, clock, callback):
        config.delay = 0
        event = changed("report.txt")
        monitor, factory, _, executor = make_monitor(
            config, clock, callback, [event, ("idle", 5)]
        )

        monitor.run()

        run_at, _ = executor.runs[0]
        assert run_at == pytest.approx(factory.events_at[0] + TICK)

    def test_phase_active_while_watching(self, config, clock, callback):
        monitor, _, _, _ = make_monitor(config, clock, callback, [("idle", 3)])

        monitor.run()

        assert callback.phase == Phase.ACTIVE


class TestUnavailableFolders:
    """Tests for folders going missing while monitoring."""

    def test_unavailable_folder_is_cause(self, config, clock, callback):
        lost = FolderUnavailable(Path("/data/b"))
        monitor, factory, waiter, executor = make_monitor(config, clock, callback, [
            changed("a.txt"), lost, ("idle", 50),
        ])

        monitor.run()

        assert len(executor.runs) == 1
        _, cause = executor.runs[0]
        assert cause.change_type == ChangeType.BASE_FOLDER_UNAVAILABLE
        assert cause.path == Path("/data/b")
        assert monitor.stats.folders_lost == 1

    def test_watcher_reopened(self, config, clock, callback):
        monitor, factory, waiter, _ = make_monitor(config, clock, callback, [
            FolderUnavailable(Path("/data/b")), ("idle", 5),
        ])

        monitor.run()

        assert waiter.calls == 2
        assert len(factory.watchers) == 2
        assert factory.watchers[0].closed
        assert factory.watchers[1].closed

    def test_no_run_while_waiting(self, config, clock, callback):
        monitor, _, waiter, executor = make_monitor(
            config, clock, callback,
            [changed("a.txt"), FolderUnavailable(Path("/data/b")), ("idle", 50)],
            waits=[0, 30],
        )

        monitor.run()

        run_at, _ = executor.runs[0]
        assert run_at - waiter.returned_at[1] >= config.delay

    def test_waiting_phase_reports_folder(self, config, clock):
        phases = []

        class Recording(ConsoleCallback):
            def set_phase(self, phase, missing_path=None):
                phases.append((phase, missing_path))
                super().set_phase(phase, missing_path)

        callback = Recording(ui_update_interval=0, clock=clock)
        monitor, _, _, _ = make_monitor(
            config, clock, callback,
            [FolderUnavailable(Path("/data/b")), ("idle", 2)],
            waits=[0, 3],
        )

        monitor.run()

        assert (Phase.WAITING, Path("/data/b")) in phases
        assert phases[-1] == (Phase.ACTIVE, None)


class TestCancellation:
    """Tests for stopping the monitor."""

    def test_cancel_before_start(self, config, clock, callback):
        callback.cancel()
        monitor, _, _, executor = make_monitor(
            config, clock, callback, [changed("a.txt"), ("idle", 50)], waits=[1]
        )

        assert monitor.run() == CancelReason.REQUEST_EXIT
        assert executor.runs == []

    def test_no_run_after_cancel(self, config, clock, callback):
        # Script ends before the delay passed; cancellation follows
        monitor, _, _, executor = make_monitor(
            config, clock, callback, [changed("a.txt"), ("idle", 3)]
        )

        assert monitor.run() == CancelReason.REQUEST_EXIT
        assert executor.runs == []

    def test_cancel_reason_returned(self, config, clock, callback):
        callback.cancel(CancelReason.REQUEST_GUI)
        monitor, _, _, _ = make_monitor(config, clock, callback, [], waits=[1])

        assert monitor.run() == CancelReason.REQUEST_GUI
        assert monitor.result == CancelReason.REQUEST_GUI
        assert not monitor.is_running

    def test_watcher_closed_on_cancel(self, config, clock, callback):
        monitor, factory, _, _ = make_monitor(config, clock, callback, [("idle", 3)])

        monitor.run()

        assert all(watcher.closed for watcher in factory.watchers)


class TestErrorHandling:
    """Tests for error reporting and retry."""

    def test_empty_folder_list(self, clock, callback):
        config = MonitorConfig(directories=["  "], command="sync.sh")
        monitor, _, waiter, _ = make_monitor(config, clock, callback, [])

        assert monitor.run() == CancelReason.REQUEST_GUI
        assert callback.phase == Phase.ERROR
        assert len(callback.errors) == 1
        assert waiter.calls == 0

    def test_empty_command(self, clock, callback):
        config = MonitorConfig(directories=["/data/a"], command="")
        monitor, _, _, _ = make_monitor(config, clock, callback, [])

        assert monitor.run() == CancelReason.REQUEST_GUI

    def test_unsupported_protocol(self, clock, callback):
        config = MonitorConfig(directories=["/data/a", "sftp:server/dir"], command="sync.sh")
        monitor, _, waiter, _ = make_monitor(config, clock, callback, [])

        assert monitor.run() == CancelReason.REQUEST_GUI
        assert "sftp" in callback.errors[0]
        assert waiter.calls == 0

    def test_folder_error_retried(self, config, clock, callback):
        event = changed("a.txt")
        monitor, _, waiter, executor = make_monitor(
            config, clock, callback, [event, ("idle", 20)],
            errors=[FolderError("Cannot monitor directory /data/a.")],
        )

        monitor.run()

        assert list(callback.errors) == ["Cannot monitor directory /data/a."]
        assert monitor.stats.errors_reported == 1
        assert waiter.calls == 2
        assert waiter.returned_at[1] - waiter.returned_at[0] >= config.retry_after_error
        assert [cause for _, cause in executor.runs] == [event.cause]

    def test_pending_change_survives_restart(self, config, clock, callback):
        event = changed("a.txt")
        monitor, factory, waiter, executor = make_monitor(config, clock, callback, [
            event,
            FolderError("Cannot read changes of /data/a."),
            ("idle", 50),
        ])

        monitor.run()

        assert [cause for _, cause in executor.runs] == [event.cause]
        assert list(callback.errors) == ["Cannot read changes of /data/a."]
        assert waiter.calls == 2
        assert factory.watchers[0].closed
        run_at, _ = executor.runs[0]
        assert run_at - waiter.returned_at[1] >= config.delay

    def test_os_error_retried(self, config, clock, callback):
        monitor, _, waiter, _ = make_monitor(
            config, clock, callback, [("idle", 2)],
            errors=[PermissionError("denied")],
        )

        monitor.run()

        assert len(callback.errors) == 1
        assert waiter.calls == 2

    def test_cancel_during_cool_down(self, config, clock, callback):
        cancelling = []

        class CancelOnError(ConsoleCallback):
            def report_error(self, message):
                super().report_error(message)
                cancelling.append(message)
                self.cancel()

        callback = CancelOnError(ui_update_interval=0, clock=clock)
        monitor, _, waiter, _ = make_monitor(
            config, clock, callback, [],
            errors=[FolderError("Cannot monitor directory /data/a.")],
        )

        assert monitor.run() == CancelReason.REQUEST_EXIT
        assert waiter.calls == 1
        assert len(cancelling) == 1

    def test_run_twice_concurrently(self, config, clock, callback):
        nested = []

        class Reentrant(FakeExecutor):
            def run(self, cause):
                with pytest.raises(MonitorAlreadyRunningError):
                    monitor.run()
                nested.append(cause)

        monitor, _, _, _ = make_monitor(
            config, clock, callback, [changed("a.txt"), ("idle", 20)],
            executor=Reentrant(clock),
        )

        monitor.run()

        assert len(nested) == 1


class TestBackgroundMonitor:
    """Tests against real folders and commands."""

    @pytest.fixture
    def fast_config(self, tmp_path):
        watched = tmp_path / "watched"
        watched.mkdir()
        return MonitorConfig(
            directories=[str(watched)],
            command="true",
            delay=0.3,
            callback_interval_ms=10,
            ui_update_interval_ms=10,
            existence_check_interval=0.1,
        )

    def test_start_and_stop(self, fast_config):
        monitor = FolderMonitor(fast_config)

        monitor.start_async()
        try:
            deadline = time.monotonic() + 2.0
            while not monitor.is_running and time.monotonic() < deadline:
                time.sleep(0.01)
            assert monitor.is_running

            with pytest.raises(MonitorAlreadyRunningError):
                monitor.start_async()
        finally:
            monitor.stop()

        assert not monitor.is_running
        assert monitor.result == CancelReason.REQUEST_EXIT

    def test_context_manager_stops(self, fast_config):
        with FolderMonitor(fast_config) as monitor:
            thread = monitor.start_async()
            time.sleep(0.2)

        assert not thread.is_alive()

    @pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell")
    def test_runs_command_after_change(self, tmp_path, fast_config):
        watched = Path(fast_config.directories[0])
        marker = tmp_path / "marker.txt"
        fast_config.command = f'echo "$change_action $change_path" >> "{marker}"'

        monitor = FolderMonitor(fast_config)
        monitor.start_async()
        try:
            time.sleep(0.8)
            assert not marker.exists()

            (watched / "report.txt").write_text("hello")

            deadline = time.monotonic() + 5.0
            while not marker.exists() and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            monitor.stop()

        assert marker.exists()
        assert "report.txt" in marker.read_text()
        assert monitor.stats.commands_run >= 1

    @pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell")
    def test_waits_for_missing_folder(self, tmp_path, fast_config):
        late = tmp_path / "late"
        marker = tmp_path / "marker.txt"
        fast_config.directories.append(str(late))
        fast_config.command = f'echo "$change_path" >> "{marker}"'

        callback = ConsoleCallback(fast_config.ui_update_interval)
        monitor = FolderMonitor(fast_config, callback)
        monitor.start_async()
        try:
            deadline = time.monotonic() + 2.0
            while callback.phase != Phase.WAITING and time.monotonic() < deadline:
                time.sleep(0.01)
            assert callback.phase == Phase.WAITING
            assert callback.missing_path == late

            late.mkdir()

            deadline = time.monotonic() + 5.0
            while callback.phase != Phase.ACTIVE and time.monotonic() < deadline:
                time.sleep(0.01)
            assert callback.phase == Phase.ACTIVE
            time.sleep(0.2)

            (late / "new.txt").write_text("hello")

            deadline = time.monotonic() + 5.0
            while not marker.exists() and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            monitor.stop()

        assert "new.txt" in marker.read_text()

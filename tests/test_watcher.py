import threading
from unittest import mock

import pytest
from watchdog.events import FileModifiedEvent

from relaunch.supervisor import IllegalStateError, Supervisor
from relaunch.watcher import ChangeWatcher, WatchSetupError
from tests.conftest import SLEEPER, FakeClock, modified, wait_for


def make_watcher(tmp_path, clock, debounce=0.0, target="App.java"):
    trigger = mock.Mock()
    watcher = ChangeWatcher(tmp_path, target, trigger, debounce=debounce, poll_interval=0.05, clock=clock)
    return watcher, trigger


# ----------------------------------------------------------------------
# Filtering and debouncing ----------------------------------------------
# ----------------------------------------------------------------------
def test_only_the_watched_name_triggers(tmp_path, fake_clock):
    watcher, trigger = make_watcher(tmp_path, fake_clock)
    batch = [modified(tmp_path, "Other.java"), modified(tmp_path, "App.java"), modified(tmp_path, "App.java.swp")]

    assert watcher.process_batch(batch) == 1
    trigger.assert_called_once_with()


def test_name_match_is_exact(tmp_path, fake_clock):
    watcher, trigger = make_watcher(tmp_path, fake_clock)

    watcher.process_batch([modified(tmp_path, "app.java"), modified(tmp_path, "*.java"), modified(tmp_path, "App")])

    trigger.assert_not_called()


@pytest.mark.parametrize("window, gap, expected", [
    (0.0, 0.0, 2),
    (0.0, 0.001, 2),
    (0.1, 0.01, 1),
    (0.1, 0.2, 2),
    (2, 1, 1),
    (2, 2, 1),
    (2, 3, 2),
])
def test_debounce_law(tmp_path, fake_clock, window, gap, expected):
    watcher, trigger = make_watcher(tmp_path, fake_clock, debounce=window)

    watcher.process_batch([modified(tmp_path, "App.java")])
    fake_clock.advance(gap)
    watcher.process_batch([modified(tmp_path, "App.java")])

    assert trigger.call_count == expected


def test_zero_window_fires_on_an_unchanged_clock(tmp_path):
    watcher, trigger = make_watcher(tmp_path, clock=lambda: 5, debounce=0)

    fired = watcher.process_batch([modified(tmp_path, "App.java")] * 3)

    assert fired == 3
    assert trigger.call_count == 3


def test_window_boundary_is_exclusive_on_exact_clock(tmp_path):
    clock = FakeClock(now=100)
    watcher, trigger = make_watcher(tmp_path, clock, debounce=2)

    watcher.process_batch([modified(tmp_path, "App.java")])
    clock.advance(2)
    assert watcher.process_batch([modified(tmp_path, "App.java")]) == 0
    clock.advance(1)
    assert watcher.process_batch([modified(tmp_path, "App.java")]) == 1
    assert trigger.call_count == 2


def test_first_qualifying_event_always_fires(tmp_path):
    watcher, trigger = make_watcher(tmp_path, clock=lambda: 0.0, debounce=60.0)

    watcher.process_batch([modified(tmp_path, "App.java")])

    trigger.assert_called_once_with()


def test_dropped_events_do_not_extend_the_window(tmp_path, fake_clock):
    watcher, trigger = make_watcher(tmp_path, fake_clock, debounce=0.1)

    watcher.process_batch([modified(tmp_path, "App.java")])
    fake_clock.advance(0.06)
    watcher.process_batch([modified(tmp_path, "App.java")])
    fake_clock.advance(0.06)
    watcher.process_batch([modified(tmp_path, "App.java")])

    assert trigger.call_count == 2


def test_trigger_errors_propagate(tmp_path, fake_clock):
    watcher = ChangeWatcher(tmp_path, "App.java", mock.Mock(side_effect=IllegalStateError("no child")), clock=fake_clock)

    with pytest.raises(IllegalStateError):
        watcher.process_batch([modified(tmp_path, "App.java")])


def test_restart_scenario(tmp_path, fake_clock):
    sup = Supervisor(SLEEPER)
    watcher = ChangeWatcher(tmp_path, "App.java", sup.reload, debounce=0.0, clock=fake_clock)
    try:
        sup.start()
        pid_a = sup.pid

        watcher.process_batch([modified(tmp_path, "App.java")])
        pid_b = sup.pid
        assert pid_b != pid_a

        fake_clock.advance(1.0)
        watcher.process_batch([modified(tmp_path, "Other.java")])
        assert sup.pid == pid_b

        watcher.debounce = 0.1
        fake_clock.advance(1.0)
        watcher.process_batch([modified(tmp_path, "App.java")])
        pid_c = sup.pid
        fake_clock.advance(0.01)
        watcher.process_batch([modified(tmp_path, "App.java")])

        assert pid_c != pid_b
        assert sup.pid == pid_c
        assert sup.restart_count == 2
    finally:
        sup.stop()


def test_spawn_failure_then_change_relaunches(tmp_path, fake_clock):
    sup = Supervisor(["/nonexistent/path/to/runtime", "App.java"])
    watcher = ChangeWatcher(tmp_path, "App.java", sup.reload, clock=fake_clock)

    assert sup.start() is False
    with mock.patch.object(sup, "start", wraps=sup.start) as start:
        watcher.process_batch([modified(tmp_path, "App.java")])

    start.assert_called_once_with()
    assert not sup.is_running


# ----------------------------------------------------------------------
# Watch loop ------------------------------------------------------------
# ----------------------------------------------------------------------
def test_missing_directory_fails_setup(tmp_path):
    watcher = ChangeWatcher(tmp_path / "missing", "App.java", mock.Mock())

    with pytest.raises(WatchSetupError):
        watcher.run()
    with pytest.raises(WatchSetupError):
        watcher.start()
    assert not watcher.is_armed


def test_file_as_directory_fails_setup(tmp_path):
    path = tmp_path / "App.java"
    path.write_text("class App {}")

    with pytest.raises(WatchSetupError):
        ChangeWatcher(path, "App.java", mock.Mock()).arm()


def test_loop_exits_promptly_on_stop(tmp_path):
    watcher = ChangeWatcher(tmp_path, "App.java", mock.Mock(), poll_interval=0.05)
    thread = watcher.start()

    watcher.stop()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert not watcher.is_armed
    assert watcher.failure is None


def test_loop_survives_transient_poll_errors(tmp_path):
    watcher = ChangeWatcher(tmp_path, "App.java", mock.Mock(), poll_interval=0.05)
    calls = []

    def flaky_poll():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient")
        watcher.stop()
        return []

    with mock.patch.object(watcher, "_poll_batch", side_effect=flaky_poll):
        watcher.run()

    assert len(calls) == 2
    assert not watcher.is_armed


def test_queued_batch_is_processed_in_order(tmp_path, fake_clock):
    order = []
    watcher = ChangeWatcher(tmp_path, "App.java", lambda: order.append("trigger"), clock=fake_clock)
    watcher._events.put(modified(tmp_path, "Other.java"))
    watcher._events.put(modified(tmp_path, "App.java"))
    watcher._events.put(modified(tmp_path, "App.java"))

    batch = watcher._poll_batch()

    assert [e.src_path for e in batch] == [
        str(tmp_path / "Other.java"), str(tmp_path / "App.java"), str(tmp_path / "App.java"),
    ]
    assert watcher.process_batch(batch) == 2
    assert order == ["trigger", "trigger"]


def test_trigger_failure_stops_the_loop_thread(tmp_path):
    watcher = ChangeWatcher(tmp_path, "App.java", mock.Mock(side_effect=IllegalStateError("no child")),
                            poll_interval=0.05)
    watcher._events.put(FileModifiedEvent(str(tmp_path / "App.java")))

    thread = watcher.start()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert isinstance(watcher.failure, IllegalStateError)
    assert not watcher.is_armed


def test_dead_observer_is_rearmed(tmp_path):
    watcher = ChangeWatcher(tmp_path, "App.java", mock.Mock(), poll_interval=0.05)
    watcher.arm()
    first = watcher._observer
    first.stop()
    first.join()

    watcher._ensure_observer_alive()

    assert watcher._observer is not first
    assert watcher._observer.is_alive()
    watcher.disarm()


def test_real_file_modification_triggers(tmp_path):
    target = tmp_path / "App.java"
    target.write_text("class App {}")
    other = tmp_path / "Other.java"
    other.write_text("class Other {}")
    fired = threading.Event()
    watcher = ChangeWatcher(tmp_path, "App.java", fired.set, poll_interval=0.05)

    thread = watcher.start()
    try:
        other.write_text("class Other { int x; }")
        assert not fired.wait(timeout=0.5)

        target.write_text("class App { int x; }")
        assert fired.wait(timeout=5)
    finally:
        watcher.stop()
        thread.join(timeout=2)

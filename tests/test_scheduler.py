"""Test the periodic timer."""
import threading
import time

import pytest

from scheduler import PeriodicTimer


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicTimer(0, lambda: None)


def test_start_stop():
    calls = []
    timer = PeriodicTimer(0.01, lambda: calls.append(1), name="test")
    assert not timer.running

    timer.start()
    assert timer.running
    time.sleep(0.1)
    timer.stop()
    assert not timer.running

    count = len(calls)
    assert count > 0
    time.sleep(0.05)
    assert len(calls) == count


def test_restart_after_stop():
    fired = threading.Event()
    timer = PeriodicTimer(0.01, fired.set)
    timer.start()
    timer.stop()
    fired.clear()
    timer.start()
    assert fired.wait(1)
    timer.stop()


def test_errors_do_not_stop_timer():
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("poll failed")

    timer = PeriodicTimer(0.01, flaky)
    timer.start()
    time.sleep(0.1)
    timer.stop()
    assert len(calls) > 1


def test_stop_from_own_callback():
    timer = None
    stopped = threading.Event()

    def once():
        timer.stop()
        stopped.set()

    timer = PeriodicTimer(0.01, once)
    timer.start()
    assert stopped.wait(1)
    assert not timer.running


def test_stop_when_never_started():
    PeriodicTimer(1, lambda: None).stop()

"""
Pytest configuration and shared fixtures for the relaunch test suite.
"""

import sys
import time
from pathlib import Path

import pytest
from watchdog.events import FileModifiedEvent

from relaunch.supervisor import Supervisor

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]
QUICK_EXIT = [sys.executable, "-c", "pass"]


def wait_for(predicate, timeout=10.0, interval=0.02):
    """Polls `predicate` until it is truthy or `timeout` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeClock:
    """A monotonic clock that only moves when told to."""

    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def modified(directory, name):
    return FileModifiedEvent(str(Path(directory) / name))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def supervisor():
    sup = Supervisor(SLEEPER, env={"PYTHON_OPTS": "-X dev"}, kill_timeout=5.0)
    yield sup
    sup.stop()

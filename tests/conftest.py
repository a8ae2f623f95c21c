import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from course_library.persistence import SnapshotFile
from course_library.store import LibraryStore


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class FakeClock:
    """Each reading is one second after the previous one."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class RecordingFile(SnapshotFile):
    def __init__(self, path):
        super().__init__(path)
        self.writes = []
        self.before_write = None

    def write(self, payload):
        if self.before_write is not None:
            hook, self.before_write = self.before_write, None
            hook()
        self.writes.append(payload)
        super().write(payload)


@pytest.fixture
def timers():
    return []


@pytest.fixture
def timer_factory(timers):
    def factory(interval, function):
        t = FakeTimer(interval, function)
        timers.append(t)
        return t

    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_path(tmp_path):
    return tmp_path / "library.json"


@pytest.fixture
def make_store(data_path, clock, timer_factory):
    def _make(path=None, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("timer_factory", timer_factory)
        storage = RecordingFile(path or data_path)
        return LibraryStore(storage, **kwargs)

    return _make


@pytest.fixture
def store(make_store):
    return make_store()


def file_info(name, folder="/courses/python", **extra):
    info = {"file_name": name, "file_path": f"{folder}/{name}", "duration": 600.0, "file_size": 1024}
    info.update(extra)
    return info

"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from PyQt6.QtWidgets import QApplication

from study_timer.core.errors import StorageError
from study_timer.core.timer_service import TimerService
from study_timer.data.storage import Storage


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def set(self, moment: datetime) -> None:
        self.now = moment


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday
    return FakeClock(datetime(2026, 3, 18, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(tmp_path) -> Storage:
    store = Storage(tmp_path / "timer.db")
    store.init_db()
    return store


@pytest.fixture
def service(storage, clock) -> TimerService:
    return TimerService(storage, clock=clock, tz=timezone.utc)


class FlakyStorage:
    """Storage wrapper whose listed operations raise ``StorageError`` while enabled."""

    def __init__(self, inner: Storage, failing: set[str]) -> None:
        self._inner = inner
        self.failing = failing
        self.enabled = False

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            if self.enabled and name in self.failing:
                raise StorageError(f"{name} unavailable")
            return attr(*args, **kwargs)

        return call


@pytest.fixture
def make_flaky_storage(storage):
    def _make(*failing: str) -> FlakyStorage:
        return FlakyStorage(storage, set(failing))

    return _make


@pytest.fixture(scope="session")
def qt_app():
    # widgets need a QApplication; the offscreen platform runs without a display
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    return QApplication.instance() or QApplication([])

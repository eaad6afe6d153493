from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from study_timer.core.config import AppConfig
from study_timer.core.timer import TimerState
from study_timer.main import build_service


def test_defaults() -> None:
    config = AppConfig()

    assert config.user_id == "local"
    assert config.db_path.name == "study_timer.db"
    assert config.tick_interval_ms == 250
    assert config.tzinfo() is None


def test_string_path_and_timezone(tmp_path) -> None:
    config = AppConfig(db_path=str(tmp_path / "t.db"), timezone="Europe/Berlin")

    assert isinstance(config.db_path, Path)
    assert config.tzinfo() == ZoneInfo("Europe/Berlin")


def test_rejects_non_positive_intervals() -> None:
    with pytest.raises(ValueError):
        AppConfig(storage_timeout_seconds=0)
    with pytest.raises(ValueError):
        AppConfig(tick_interval_ms=-1)


def test_build_service_initializes_database(tmp_path) -> None:
    config = AppConfig(db_path=tmp_path / "nested" / "timer.db")

    service = build_service(config)

    assert config.db_path.exists()
    assert service.state(config.user_id) == TimerState.IDLE

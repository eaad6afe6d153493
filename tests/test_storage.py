from datetime import datetime, timezone

import pytest

from study_timer.core.errors import StorageError
from study_timer.data.storage import Storage


def _record(ts: datetime, session_type: str = "focus", duration: int = 1500) -> dict:
    return {
        "session_type": session_type,
        "actual_duration_seconds": duration,
        "scheduled_duration_seconds": 1500,
        "completed_at": ts,
        "was_skipped_early": False,
        "task_id": None,
    }


def test_init_db_creates_file(tmp_path) -> None:
    db = tmp_path / "timer.db"
    storage = Storage(db)
    storage.init_db()
    assert db.exists()


def test_settings_are_scoped_per_user(storage) -> None:
    storage.set_setting("alice", "volume", 0)
    storage.set_setting("bob", "volume", 7)

    assert storage.get_setting("alice", "volume") == 0
    assert storage.get_setting("bob", "volume") == 7
    assert storage.get_setting("alice", "missing", "x") == "x"


def test_configuration_round_trip(storage) -> None:
    assert storage.get_configuration("alice") is None
    storage.save_configuration("alice", {"focus_duration_seconds": 1200})
    assert storage.get_configuration("alice") == {"focus_duration_seconds": 1200}


def test_active_session_save_and_clear(storage) -> None:
    storage.save_active_session("alice", {"session_type": "focus", "started_at": "2026-01-01T10:00:00+00:00"})
    assert storage.get_active_session("alice")["session_type"] == "focus"
    assert storage.get_active_session("bob") is None

    storage.clear_active_session("alice")
    assert storage.get_active_session("alice") is None


def test_completed_sessions_listed_oldest_first(storage) -> None:
    late = datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc)
    early = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
    storage.append_completed_session("alice", _record(late))
    storage.append_completed_session("alice", _record(early, "short_break", 300))
    storage.append_completed_session("bob", _record(early))

    rows = list(storage.list_completed_sessions("alice"))

    assert [row["completed_at"] for row in rows] == [early, late]
    assert rows[0]["session_type"] == "short_break"
    assert rows[0]["was_skipped_early"] is False


def test_completed_sessions_since_filter(storage) -> None:
    storage.append_completed_session("alice", _record(datetime(2026, 1, 1, tzinfo=timezone.utc)))
    storage.append_completed_session("alice", _record(datetime(2026, 1, 5, tzinfo=timezone.utc)))

    rows = list(storage.list_completed_sessions("alice", since=datetime(2026, 1, 3, tzinfo=timezone.utc)))

    assert len(rows) == 1
    assert rows[0]["completed_at"] == datetime(2026, 1, 5, tzinfo=timezone.utc)


def test_list_is_a_one_shot_generator(storage) -> None:
    storage.append_completed_session("alice", _record(datetime(2026, 1, 1, tzinfo=timezone.utc)))

    rows = storage.list_completed_sessions("alice")

    assert len(list(rows)) == 1
    assert list(rows) == []


def test_missing_tables_raise_storage_error(tmp_path) -> None:
    storage = Storage(tmp_path / "empty.db")

    with pytest.raises(StorageError):
        storage.get_active_session("alice")
    with pytest.raises(StorageError):
        list(storage.list_completed_sessions("alice"))

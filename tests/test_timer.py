from datetime import timedelta

import pytest

from study_timer.core.errors import InvalidTransition
from study_timer.core.settings import TimerSettings
from study_timer.core.timer import (
    ActiveSession,
    SessionTimer,
    SessionType,
    TimerState,
    format_time_remaining,
    next_session_type,
)


def test_start_focus_remaining_equals_focus_duration(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=1500))

    assert timer.state == TimerState.RUNNING
    assert timer.remaining_seconds() == 1500
    assert timer.session.focus_session_ordinal == 1


def test_start_twice_fails(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings())

    with pytest.raises(InvalidTransition):
        timer.start(SessionType.SHORT_BREAK, TimerSettings())
    assert timer.session.session_type == SessionType.FOCUS
    assert timer.last_focus_ordinal == 1


def test_pause_resume_keeps_elapsed_stable(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=600))

    clock.advance(100)
    timer.pause()
    paused = timer.remaining_seconds()
    clock.advance(300)
    frozen = timer.remaining_seconds()
    timer.resume()
    resumed = timer.remaining_seconds()
    clock.advance(50)

    assert paused == 500
    assert frozen == 500
    assert resumed == 500
    assert timer.remaining_seconds() == 450
    assert timer.session.accumulated_elapsed_seconds == 100


def test_many_short_pauses_do_not_lose_time(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=600))

    for _ in range(10):
        clock.advance(0.5)
        timer.pause()
        clock.advance(5)
        timer.resume()

    assert timer.session.elapsed_seconds(clock()) == 5
    assert timer.remaining_seconds() == 595


def test_pause_twice_fails_without_state_change(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings())
    clock.advance(10)
    timer.pause()
    before = timer.session.to_document()

    with pytest.raises(InvalidTransition):
        timer.pause()
    assert timer.session.to_document() == before


def test_resume_requires_paused(clock) -> None:
    timer = SessionTimer(clock=clock)
    with pytest.raises(InvalidTransition):
        timer.resume()
    timer.start(SessionType.FOCUS, TimerSettings())
    with pytest.raises(InvalidTransition):
        timer.resume()


def test_finish_early_records_elapsed(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=1500))
    clock.advance(420)

    record = timer.finish(long_break_interval=4)

    assert timer.state == TimerState.IDLE
    assert record.was_skipped_early is True
    assert record.actual_duration_seconds == 420
    assert record.completed_at == clock()
    assert timer.remaining_seconds() == 0


def test_finish_after_expiry_uses_expiry_moment(clock) -> None:
    timer = SessionTimer(clock=clock)
    started = clock()
    timer.start(SessionType.SHORT_BREAK, TimerSettings(short_break_duration_seconds=300))
    clock.advance(400)

    assert timer.is_expired()
    record = timer.finish(long_break_interval=4)

    assert record.was_skipped_early is False
    assert record.actual_duration_seconds == 300
    assert record.completed_at == started + timedelta(seconds=300)
    assert timer.suggested_next == SessionType.FOCUS


def test_finish_idle_fails(clock) -> None:
    with pytest.raises(InvalidTransition):
        SessionTimer(clock=clock).finish(long_break_interval=4)


def test_break_carries_last_focus_ordinal(clock) -> None:
    timer = SessionTimer(clock=clock, last_focus_ordinal=3)
    timer.start(SessionType.SHORT_BREAK, TimerSettings())

    assert timer.session.focus_session_ordinal == 3
    assert timer.last_focus_ordinal == 3


@pytest.mark.parametrize(
    "ordinal, expected",
    [
        (1, SessionType.SHORT_BREAK),
        (2, SessionType.SHORT_BREAK),
        (3, SessionType.SHORT_BREAK),
        (4, SessionType.LONG_BREAK),
        (5, SessionType.SHORT_BREAK),
        (7, SessionType.SHORT_BREAK),
        (8, SessionType.LONG_BREAK),
    ],
)
def test_break_rotation(ordinal, expected) -> None:
    assert next_session_type(SessionType.FOCUS, ordinal, 4) == expected


def test_after_any_break_comes_focus() -> None:
    assert next_session_type(SessionType.SHORT_BREAK, 3, 4) == SessionType.FOCUS
    assert next_session_type(SessionType.LONG_BREAK, 4, 4) == SessionType.FOCUS


def test_snapshot_progress(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=100))
    clock.advance(25)

    snapshot = timer.snapshot()

    assert snapshot.state == TimerState.RUNNING
    assert snapshot.elapsed_seconds == 25
    assert snapshot.remaining_seconds == 75
    assert snapshot.progress == pytest.approx(0.25)


def test_active_session_document_restores_countdown(clock) -> None:
    timer = SessionTimer(clock=clock)
    timer.start(SessionType.FOCUS, TimerSettings(focus_duration_seconds=1500), task_id="task-1")
    clock.advance(200)
    doc = timer.session.to_document()

    restored = SessionTimer(clock=clock, session=ActiveSession.from_document(doc), last_focus_ordinal=1)

    assert restored.remaining_seconds() == 1300
    assert restored.session.task_id == "task-1"


def test_format_time_remaining() -> None:
    assert format_time_remaining(0) == "00:00"
    assert format_time_remaining(1500) == "25:00"
    assert format_time_remaining(61) == "01:01"
    assert format_time_remaining(-5) == "00:00"

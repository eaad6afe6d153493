from __future__ import annotations

"""Usage statistics folded from the session ledger."""

from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo

from study_timer.core.ledger import SessionLedger
from study_timer.core.timer import Clock, SessionType, utc_now

DEFAULT_WEEKLY_GOAL = 10


@dataclass(frozen=True)
class UsageStatistics:
    total_study_seconds: int = 0
    total_break_seconds: int = 0
    total_sessions_completed: int = 0
    completed_today: int = 0
    completed_this_week: int = 0
    current_streak_days: int = 0
    weekly_goal_sessions: int = DEFAULT_WEEKLY_GOAL
    average_session_length_minutes: int = 0
    most_productive_hour: int | None = None
    focus_sessions_by_hour: tuple[int, ...] = field(default_factory=lambda: (0,) * 24)

    @property
    def total_study_minutes(self) -> int:
        return self.total_study_seconds // 60

    @property
    def total_break_minutes(self) -> int:
        return self.total_break_seconds // 60

    @property
    def weekly_goal_progress(self) -> float:
        """Share of the weekly goal reached, capped at 1.0."""
        if self.weekly_goal_sessions <= 0:
            return 0.0
        return min(1.0, self.completed_this_week / self.weekly_goal_sessions)


class StatsAggregator:
    """Computes ``UsageStatistics`` as a pure fold over the ledger.

    Days, weeks and hours are bucketed in ``tz`` (system local time when
    ``None``). Weeks start on Monday.
    """

    def __init__(self, ledger: SessionLedger, clock: Clock = utc_now, tz: tzinfo | None = None) -> None:
        self._ledger = ledger
        self._clock = clock
        self._tz = tz

    def local_today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def compute(self, user_id: str, weekly_goal_sessions: int = DEFAULT_WEEKLY_GOAL) -> UsageStatistics:
        today = self.local_today()
        week_start = today - timedelta(days=today.weekday())

        study_seconds = 0
        break_seconds = 0
        total = 0
        focus_count = 0
        completed_today = 0
        completed_this_week = 0
        focus_days: set[date] = set()
        by_hour = [0] * 24

        for record in self._ledger.list(user_id):
            total += 1
            if record.session_type is not SessionType.FOCUS:
                break_seconds += record.actual_duration_seconds
                continue
            study_seconds += record.actual_duration_seconds
            focus_count += 1
            local = record.completed_at.astimezone(self._tz)
            day = local.date()
            focus_days.add(day)
            by_hour[local.hour] += 1
            if day == today:
                completed_today += 1
            if week_start <= day <= today:
                completed_this_week += 1

        average = 0
        if focus_count:
            average = int(study_seconds / focus_count / 60 + 0.5)

        most_productive = None
        if focus_count:
            # max() keeps the first maximum, so ties go to the earliest hour
            most_productive = max(range(24), key=lambda hour: by_hour[hour])

        return UsageStatistics(
            total_study_seconds=study_seconds,
            total_break_seconds=break_seconds,
            total_sessions_completed=total,
            completed_today=completed_today,
            completed_this_week=completed_this_week,
            current_streak_days=_streak_days(focus_days, today),
            weekly_goal_sessions=weekly_goal_sessions,
            average_session_length_minutes=average,
            most_productive_hour=most_productive,
            focus_sessions_by_hour=tuple(by_hour),
        )


def _streak_days(days: set[date], today: date) -> int:
    cursor = today
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak

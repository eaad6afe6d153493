from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterator

from study_timer.core.timer import Clock, CompletedSessionRecord, SessionType, utc_now

HISTORY_PERIODS = ("all", "today", "this_week", "this_month")
HISTORY_SORTS = ("completed_at", "duration", "type")


class SessionLedger:
    """Append-only record of finished sessions, backed by the storage collaborator."""

    def __init__(self, storage, clock: Clock = utc_now, tz: tzinfo | None = None) -> None:
        self._storage = storage
        self._clock = clock
        self._tz = tz

    def append(self, user_id: str, record: CompletedSessionRecord) -> None:
        self._storage.append_completed_session(
            user_id,
            {
                "session_type": record.session_type.value,
                "actual_duration_seconds": record.actual_duration_seconds,
                "scheduled_duration_seconds": record.scheduled_duration_seconds,
                "completed_at": record.completed_at,
                "was_skipped_early": record.was_skipped_early,
                "task_id": record.task_id,
            },
        )

    def list(self, user_id: str, since: datetime | None = None) -> Iterator[CompletedSessionRecord]:
        """Lazily yields records oldest first."""
        for row in self._storage.list_completed_sessions(user_id, since):
            yield CompletedSessionRecord(
                session_type=SessionType(row["session_type"]),
                actual_duration_seconds=int(row["actual_duration_seconds"]),
                completed_at=row["completed_at"],
                was_skipped_early=bool(row["was_skipped_early"]),
                scheduled_duration_seconds=int(row.get("scheduled_duration_seconds") or 0),
                task_id=row.get("task_id"),
            )

    def history(
        self,
        user_id: str,
        period: str = "all",
        session_type: SessionType | None = None,
        sort_by: str = "completed_at",
        limit: int | None = None,
    ) -> list[CompletedSessionRecord]:
        """Returns records for history views, newest (or longest) first."""
        if period not in HISTORY_PERIODS:
            raise ValueError(f"Unknown history period: {period}")
        if sort_by not in HISTORY_SORTS:
            raise ValueError(f"Unknown sort option: {sort_by}")

        records = list(self.list(user_id, since=self._period_start(period)))
        if session_type is not None:
            wanted = SessionType(session_type)
            records = [r for r in records if r.session_type is wanted]

        records.reverse()
        if sort_by == "duration":
            records.sort(key=lambda r: r.actual_duration_seconds, reverse=True)
        elif sort_by == "type":
            records.sort(key=lambda r: r.session_type.value, reverse=True)
        if limit is not None:
            records = records[:limit]
        return records

    def _period_start(self, period: str) -> datetime | None:
        if period == "all":
            return None
        local_now = self._clock().astimezone(self._tz)
        day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        if period == "today":
            return day_start
        if period == "this_week":
            return day_start - timedelta(days=day_start.weekday())
        return day_start.replace(day=1)

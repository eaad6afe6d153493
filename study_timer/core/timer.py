from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from study_timer.core.errors import InvalidTransition
from study_timer.core.settings import TimerSettings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class SessionType(str, Enum):
    FOCUS = "focus"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @property
    def is_break(self) -> bool:
        return self is not SessionType.FOCUS

    @property
    def label(self) -> str:
        return SESSION_LABELS[self]


SESSION_LABELS = {
    SessionType.FOCUS: "Focus Time",
    SessionType.SHORT_BREAK: "Short Break",
    SessionType.LONG_BREAK: "Long Break",
}


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


def next_session_type(completed: SessionType, focus_ordinal: int, long_break_interval: int) -> SessionType:
    """Break rotation: every ``long_break_interval``-th focus earns a long break."""
    if completed is SessionType.FOCUS:
        if focus_ordinal > 0 and focus_ordinal % long_break_interval == 0:
            return SessionType.LONG_BREAK
        return SessionType.SHORT_BREAK
    return SessionType.FOCUS


def format_time_remaining(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@dataclass
class ActiveSession:
    session_type: SessionType
    scheduled_duration_seconds: int
    started_at: datetime
    accumulated_elapsed_seconds: float = 0.0
    is_running: bool = True
    focus_session_ordinal: int = 0
    task_id: str | None = None
    finalized: bool = False

    def precise_elapsed_seconds(self, now: datetime) -> float:
        elapsed = self.accumulated_elapsed_seconds
        if self.is_running:
            elapsed += max(0.0, (now - self.started_at).total_seconds())
        return elapsed

    def elapsed_seconds(self, now: datetime) -> int:
        return int(self.precise_elapsed_seconds(now))

    def remaining_seconds(self, now: datetime) -> int:
        return max(0, self.scheduled_duration_seconds - self.elapsed_seconds(now))

    def expires_at(self) -> datetime | None:
        """Wall-clock moment a running session reaches zero; ``None`` while paused."""
        if not self.is_running:
            return None
        left = self.scheduled_duration_seconds - self.accumulated_elapsed_seconds
        return self.started_at + timedelta(seconds=max(0, left))

    def to_document(self) -> dict[str, Any]:
        return {
            "session_type": self.session_type.value,
            "scheduled_duration_seconds": self.scheduled_duration_seconds,
            "started_at": self.started_at.isoformat(),
            "accumulated_elapsed_seconds": self.accumulated_elapsed_seconds,
            "is_running": self.is_running,
            "focus_session_ordinal": self.focus_session_ordinal,
            "task_id": self.task_id,
            "finalized": self.finalized,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ActiveSession:
        return cls(
            session_type=SessionType(doc["session_type"]),
            scheduled_duration_seconds=int(doc["scheduled_duration_seconds"]),
            started_at=ensure_aware_utc(datetime.fromisoformat(doc["started_at"])),
            accumulated_elapsed_seconds=float(doc.get("accumulated_elapsed_seconds", 0)),
            is_running=bool(doc.get("is_running", True)),
            focus_session_ordinal=int(doc.get("focus_session_ordinal", 0)),
            task_id=doc.get("task_id"),
            finalized=bool(doc.get("finalized", False)),
        )


@dataclass(frozen=True)
class CompletedSessionRecord:
    session_type: SessionType
    actual_duration_seconds: int
    completed_at: datetime
    was_skipped_early: bool
    scheduled_duration_seconds: int = 0
    task_id: str | None = None


@dataclass(frozen=True)
class TimerSnapshot:
    state: TimerState
    session_type: SessionType | None
    total_seconds: int
    remaining_seconds: int
    elapsed_seconds: int
    progress: float
    focus_session_ordinal: int
    suggested_next: SessionType


class SessionTimer:
    """Timestamp-anchored pomodoro state machine detached from storage and UI.

    Remaining time is always derived from ``started_at`` and the banked elapsed
    seconds, so a timer rebuilt from a persisted ``ActiveSession`` continues
    exactly where it left off.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        session: ActiveSession | None = None,
        last_focus_ordinal: int = 0,
        suggested_next: SessionType = SessionType.FOCUS,
    ) -> None:
        self._clock = clock
        self._session = session
        self._last_focus_ordinal = last_focus_ordinal
        self._suggested_next = suggested_next

    @property
    def state(self) -> TimerState:
        if self._session is None:
            return TimerState.IDLE
        return TimerState.RUNNING if self._session.is_running else TimerState.PAUSED

    @property
    def session(self) -> ActiveSession | None:
        return self._session

    @property
    def last_focus_ordinal(self) -> int:
        return self._last_focus_ordinal

    @property
    def suggested_next(self) -> SessionType:
        return self._suggested_next

    def cycle_document(self) -> dict[str, Any]:
        return {
            "last_focus_ordinal": self._last_focus_ordinal,
            "suggested_next": self._suggested_next.value,
        }

    def start(
        self,
        session_type: SessionType,
        settings: TimerSettings,
        task_id: str | None = None,
        started_at: datetime | None = None,
    ) -> ActiveSession:
        if self._session is not None:
            raise InvalidTransition("start", self.state.value)
        session_type = SessionType(session_type)
        if session_type is SessionType.FOCUS:
            ordinal = self._last_focus_ordinal + 1
            self._last_focus_ordinal = ordinal
        else:
            ordinal = self._last_focus_ordinal
        self._session = ActiveSession(
            session_type=session_type,
            scheduled_duration_seconds=settings.duration_for(session_type.value),
            started_at=started_at or self._clock(),
            focus_session_ordinal=ordinal,
            task_id=task_id,
        )
        return self._session

    def pause(self) -> None:
        if self._session is None or not self._session.is_running:
            raise InvalidTransition("pause", self.state.value)
        now = self._clock()
        self._session.accumulated_elapsed_seconds = self._session.precise_elapsed_seconds(now)
        self._session.is_running = False

    def resume(self) -> None:
        if self._session is None or self._session.is_running:
            raise InvalidTransition("resume", self.state.value)
        self._session.started_at = self._clock()
        self._session.is_running = True

    def finish(self, long_break_interval: int) -> CompletedSessionRecord:
        """Ends the active session and returns its ledger record.

        A session that already ran past its schedule is recorded as completed at
        the exact expiry moment with the scheduled duration.
        """
        session = self._session
        if session is None or session.finalized:
            raise InvalidTransition("stop", self.state.value)
        now = self._clock()
        scheduled = session.scheduled_duration_seconds
        elapsed = session.elapsed_seconds(now)
        completed_at = now
        if elapsed >= scheduled:
            elapsed = scheduled
            expiry = session.expires_at()
            if expiry is not None and expiry < now:
                completed_at = expiry
        session.finalized = True
        self._session = None
        self._suggested_next = next_session_type(
            session.session_type, session.focus_session_ordinal, long_break_interval
        )
        return CompletedSessionRecord(
            session_type=session.session_type,
            actual_duration_seconds=elapsed,
            completed_at=completed_at,
            was_skipped_early=elapsed < scheduled,
            scheduled_duration_seconds=scheduled,
            task_id=session.task_id,
        )

    def remaining_seconds(self, now: datetime | None = None) -> int:
        if self._session is None:
            return 0
        return self._session.remaining_seconds(now or self._clock())

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when a running session has counted down to zero."""
        if self._session is None or not self._session.is_running:
            return False
        return self.remaining_seconds(now) == 0

    def snapshot(self, now: datetime | None = None) -> TimerSnapshot:
        if now is None:
            now = self._clock()
        session = self._session
        if session is None:
            return TimerSnapshot(
                state=TimerState.IDLE,
                session_type=None,
                total_seconds=0,
                remaining_seconds=0,
                elapsed_seconds=0,
                progress=0.0,
                focus_session_ordinal=self._last_focus_ordinal,
                suggested_next=self._suggested_next,
            )
        total = session.scheduled_duration_seconds
        elapsed = min(total, session.elapsed_seconds(now))
        progress = (elapsed / total) if total > 0 else 0.0
        return TimerSnapshot(
            state=self.state,
            session_type=session.session_type,
            total_seconds=total,
            remaining_seconds=max(0, total - elapsed),
            elapsed_seconds=elapsed,
            progress=max(0.0, min(1.0, progress)),
            focus_session_ordinal=session.focus_session_ordinal,
            suggested_next=self._suggested_next,
        )

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Callable

from study_timer.core.errors import InvalidTransition, StorageError
from study_timer.core.ledger import SessionLedger
from study_timer.core.settings import SettingsService, TimerSettings
from study_timer.core.stats import StatsAggregator, UsageStatistics
from study_timer.core.timer import (
    ActiveSession,
    Clock,
    CompletedSessionRecord,
    SessionTimer,
    SessionType,
    TimerSnapshot,
    TimerState,
    utc_now,
)

logger = logging.getLogger(__name__)

CYCLE_KEY = "timer_cycle"


@dataclass(frozen=True)
class SessionCompleted:
    """Event emitted every time a session is finished, early or naturally."""

    user_id: str
    session_type: SessionType
    actual_duration_seconds: int
    was_skipped_early: bool
    completed_at: datetime


@dataclass(frozen=True)
class CompletionOutcome:
    record: CompletedSessionRecord
    next_type: SessionType
    started: ActiveSession | None = None
    storage_warning: str | None = None


Listener = Callable[[SessionCompleted], None]


class TimerService:
    """Per-user session engine: serializes commands, persists state and records completions.

    Each user gets one ``SessionTimer`` rebuilt lazily from storage, guarded by
    its own re-entrant lock. Storage failures while finishing a session never
    keep the timer from returning to idle; unsaved ledger records are queued and
    retried on the next call for that user.
    """

    def __init__(self, storage, clock: Clock = utc_now, tz: tzinfo | None = None) -> None:
        self._storage = storage
        self._clock = clock
        self.settings_service = SettingsService(storage)
        self.ledger = SessionLedger(storage, clock=clock, tz=tz)
        self.aggregator = StatsAggregator(self.ledger, clock=clock, tz=tz)
        self._timers: dict[str, SessionTimer] = {}
        self._settings: dict[str, TimerSettings] = {}
        self._pending_records: dict[str, list[CompletedSessionRecord]] = {}
        self._unsynced: set[str] = set()
        self._stats_cache: dict[str, tuple[object, UsageStatistics]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a completion listener and returns a function that removes it."""
        with self._registry_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._registry_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # --- settings -------------------------------------------------------

    def settings(self, user_id: str) -> TimerSettings:
        with self._lock_for(user_id):
            cached = self._settings.get(user_id)
            if cached is None:
                cached = self.settings_service.load(user_id)
                self._settings[user_id] = cached
            return cached

    def update_settings(self, user_id: str, **changes) -> TimerSettings:
        with self._lock_for(user_id):
            updated = self.settings_service.update(user_id, **changes)
            self._settings[user_id] = updated
            self._stats_cache.pop(user_id, None)
            return updated

    # --- queries --------------------------------------------------------

    def state(self, user_id: str) -> TimerState:
        with self._lock_for(user_id):
            return self._timer_for(user_id).state

    def snapshot(self, user_id: str) -> TimerSnapshot:
        with self._lock_for(user_id):
            return self._timer_for(user_id).snapshot()

    def remaining_seconds(self, user_id: str) -> int:
        with self._lock_for(user_id):
            return self._timer_for(user_id).remaining_seconds()

    def statistics(self, user_id: str) -> UsageStatistics:
        """Cached ``StatsAggregator.compute``; dropped on completion or at local midnight."""
        with self._lock_for(user_id):
            today = self.aggregator.local_today()
            cached = self._stats_cache.get(user_id)
            if cached is not None and cached[0] == today:
                return cached[1]
            goal = self.settings(user_id).weekly_goal_sessions
            stats = self.aggregator.compute(user_id, weekly_goal_sessions=goal)
            self._stats_cache[user_id] = (today, stats)
            return stats

    # --- commands -------------------------------------------------------

    def start(
        self,
        user_id: str,
        session_type: SessionType = SessionType.FOCUS,
        task_id: str | None = None,
    ) -> ActiveSession:
        with self._lock_for(user_id):
            timer = self._prepare(user_id, settle=True)
            session = timer.start(session_type, self.settings(user_id), task_id=task_id)
            logger.info(
                f"Started {session.session_type.value} for {user_id} "
                f"({session.scheduled_duration_seconds}s, #{session.focus_session_ordinal})"
            )
            self._persist(user_id, timer)
            return session

    def pause(self, user_id: str) -> TimerSnapshot:
        """Pauses the running session.

        A session that already reached zero is completed the way ``tick`` would
        complete it, auto-start included, and the pause is not applied.
        """
        with self._lock_for(user_id):
            timer = self._prepare(user_id)
            if timer.is_expired():
                self._complete(user_id, timer, auto_start=True, natural=True)
                return timer.snapshot()
            timer.pause()
            self._persist(user_id, timer)
            return timer.snapshot()

    def resume(self, user_id: str) -> TimerSnapshot:
        with self._lock_for(user_id):
            timer = self._prepare(user_id)
            timer.resume()
            self._persist(user_id, timer)
            return timer.snapshot()

    def stop(self, user_id: str) -> CompletionOutcome:
        with self._lock_for(user_id):
            timer = self._prepare(user_id)
            return self._complete(user_id, timer, auto_start=False)

    def skip(self, user_id: str) -> CompletionOutcome:
        """Stops the current session and moves on to the next one in the rotation."""
        with self._lock_for(user_id):
            timer = self._prepare(user_id)
            return self._complete(user_id, timer, auto_start=True)

    def tick(self, user_id: str) -> CompletionOutcome | None:
        """Finishes a running session that has reached zero. Safe to call repeatedly."""
        with self._lock_for(user_id):
            timer = self._prepare(user_id)
            if not timer.is_expired():
                return None
            return self._complete(user_id, timer, auto_start=True, natural=True)

    def release(self, user_id: str) -> None:
        """Drops in-memory state for a signed-out user; persisted state is kept."""
        with self._lock_for(user_id):
            self._timers.pop(user_id, None)
            self._settings.pop(user_id, None)
            self._stats_cache.pop(user_id, None)

    # --- internals ------------------------------------------------------

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def _timer_for(self, user_id: str) -> SessionTimer:
        timer = self._timers.get(user_id)
        if timer is None:
            timer = self._load_timer(user_id)
            self._timers[user_id] = timer
        return timer

    def _load_timer(self, user_id: str) -> SessionTimer:
        doc = self._storage.get_active_session(user_id)
        session = None
        if doc:
            try:
                session = ActiveSession.from_document(doc)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Discarding unreadable active session for {user_id}: {exc!r}")
                self._storage.clear_active_session(user_id)
        if session is not None and session.finalized:
            session = None
        cycle = self._storage.get_setting(user_id, CYCLE_KEY, {}) or {}
        try:
            last_ordinal = int(cycle.get("last_focus_ordinal", 0))
            suggested = SessionType(cycle.get("suggested_next", SessionType.FOCUS.value))
        except (TypeError, ValueError):
            logger.warning(f"Resetting unreadable timer cycle for {user_id}: {cycle!r}")
            last_ordinal, suggested = 0, SessionType.FOCUS
        if session is not None:
            logger.info(f"Recovered {session.session_type.value} session for {user_id}")
        return SessionTimer(
            clock=self._clock,
            session=session,
            last_focus_ordinal=last_ordinal,
            suggested_next=suggested,
        )

    def _prepare(self, user_id: str, settle: bool = False) -> SessionTimer:
        timer = self._timer_for(user_id)
        self._reconcile(user_id, timer)
        if settle and timer.is_expired():
            self._complete(user_id, timer, auto_start=False, natural=True)
        return timer

    def _complete(
        self,
        user_id: str,
        timer: SessionTimer,
        auto_start: bool,
        natural: bool = False,
    ) -> CompletionOutcome:
        if timer.state is TimerState.IDLE:
            raise InvalidTransition("skip" if auto_start and not natural else "stop", timer.state.value)
        settings = self.settings(user_id)
        record = timer.finish(settings.long_break_interval)
        logger.info(
            f"Completed {record.session_type.value} for {user_id}: "
            f"{record.actual_duration_seconds}s{' (ended early)' if record.was_skipped_early else ''}"
        )

        warnings: list[str] = []
        self._pending_records.setdefault(user_id, []).append(record)
        ledger_warning = self._flush_pending(user_id)
        if ledger_warning:
            warnings.append(ledger_warning)

        next_type = timer.suggested_next
        started = None
        if auto_start and self._should_auto_start(settings, next_type):
            started_at = record.completed_at if natural else None
            started = timer.start(next_type, settings, started_at=started_at)
            logger.info(f"Auto-started {next_type.value} for {user_id}")

        try:
            self._sync(user_id, timer)
        except StorageError as exc:
            self._unsynced.add(user_id)
            logger.warning(f"Could not persist timer state for {user_id}: {exc}")
            warnings.append(str(exc))

        self._stats_cache.pop(user_id, None)
        self._emit(
            SessionCompleted(
                user_id=user_id,
                session_type=record.session_type,
                actual_duration_seconds=record.actual_duration_seconds,
                was_skipped_early=record.was_skipped_early,
                completed_at=record.completed_at,
            )
        )
        return CompletionOutcome(
            record=record,
            next_type=next_type,
            started=started,
            storage_warning="; ".join(warnings) or None,
        )

    @staticmethod
    def _should_auto_start(settings: TimerSettings, next_type: SessionType) -> bool:
        if next_type.is_break:
            return settings.auto_start_breaks
        return settings.auto_start_focus

    def _flush_pending(self, user_id: str) -> str | None:
        pending = self._pending_records.get(user_id)
        while pending:
            try:
                self.ledger.append(user_id, pending[0])
            except StorageError as exc:
                logger.warning(
                    f"Ledger append failed for {user_id}, {len(pending)} record(s) queued: {exc}"
                )
                return str(exc)
            pending.pop(0)
            self._stats_cache.pop(user_id, None)
        return None

    def _reconcile(self, user_id: str, timer: SessionTimer) -> None:
        if self._pending_records.get(user_id):
            self._flush_pending(user_id)
        if user_id in self._unsynced:
            try:
                self._sync(user_id, timer)
            except StorageError as exc:
                logger.warning(f"Timer state for {user_id} still unsynced: {exc}")

    def _sync(self, user_id: str, timer: SessionTimer) -> None:
        session = timer.session
        if session is None:
            self._storage.clear_active_session(user_id)
        else:
            self._storage.save_active_session(user_id, session.to_document())
        self._storage.set_setting(user_id, CYCLE_KEY, timer.cycle_document())
        self._unsynced.discard(user_id)

    def _persist(self, user_id: str, timer: SessionTimer) -> None:
        try:
            self._sync(user_id, timer)
        except StorageError:
            self._unsynced.add(user_id)
            logger.warning(f"Timer state for {user_id} kept in memory only; will retry")
            raise

    def _emit(self, event: SessionCompleted) -> None:
        with self._registry_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Session listener failed for {event.user_id}")

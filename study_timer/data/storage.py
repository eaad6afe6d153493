from __future__ import annotations

"""SQLite storage layer: per-user settings, the active session and the session ledger."""

import json
import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from study_timer.core.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_TIMEOUT_SECONDS = 5.0
CONFIGURATION_KEY = "timer_settings"


def _to_timestamp(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _from_timestamp(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class Storage:
    """Wraps the SQLite connection and exposes document-style operations keyed by user.

    Every call opens its own connection with a bounded busy ``timeout`` and turns
    ``sqlite3.Error`` into ``StorageError``.
    """

    def __init__(self, db_path: str | Path, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.DatabaseError as exc:
            logger.debug(f"WAL mode unavailable for {self.db_path}: {exc}")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Creates all tables on first launch."""
        with self._transaction() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if not row:
                conn.execute("INSERT INTO schema_version(version) VALUES (?)", (SCHEMA_VERSION,))
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings(
                    user_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT,
                    PRIMARY KEY (user_id, key)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS active_sessions(
                    user_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS completed_sessions(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    session_type TEXT NOT NULL,
                    actual_duration_seconds INTEGER NOT NULL,
                    scheduled_duration_seconds INTEGER NOT NULL DEFAULT 0,
                    completed_at REAL NOT NULL,
                    was_skipped_early INTEGER NOT NULL CHECK(was_skipped_early IN (0, 1)),
                    task_id TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_completed_user_time
                ON completed_sessions(user_id, completed_at)
                """
            )
        logger.info(f"Timer database initialized at {self.db_path}")

    def get_setting(self, user_id: str, key: str, default: Any = None) -> Any:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE user_id = ? AND key = ?", (user_id, key)
            ).fetchone()
        if not row:
            return default
        raw = row["value"]
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return raw

    def set_setting(self, user_id: str, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO settings(user_id, key, value) VALUES(?, ?, ?) "
                "ON CONFLICT(user_id, key) DO UPDATE SET value=excluded.value",
                (user_id, key, payload),
            )

    def get_configuration(self, user_id: str) -> dict[str, Any] | None:
        value = self.get_setting(user_id, CONFIGURATION_KEY)
        return value if isinstance(value, dict) else None

    def save_configuration(self, user_id: str, config: dict[str, Any]) -> None:
        self.set_setting(user_id, CONFIGURATION_KEY, config)

    def get_active_session(self, user_id: str) -> dict[str, Any] | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT payload FROM active_sessions WHERE user_id = ?", (user_id,)
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["payload"])
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"Discarding unreadable active session for {user_id}")
            return None

    def save_active_session(self, user_id: str, session: dict[str, Any]) -> None:
        payload = json.dumps(session)
        updated_at = datetime.now(timezone.utc).timestamp()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO active_sessions(user_id, payload, updated_at) VALUES(?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET payload=excluded.payload, updated_at=excluded.updated_at",
                (user_id, payload, updated_at),
            )

    def clear_active_session(self, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM active_sessions WHERE user_id = ?", (user_id,))

    def append_completed_session(self, user_id: str, record: dict[str, Any]) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO completed_sessions(
                    user_id, session_type, actual_duration_seconds, scheduled_duration_seconds,
                    completed_at, was_skipped_early, task_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    record["session_type"],
                    int(record["actual_duration_seconds"]),
                    int(record.get("scheduled_duration_seconds", 0)),
                    _to_timestamp(record["completed_at"]),
                    int(bool(record["was_skipped_early"])),
                    record.get("task_id"),
                ),
            )
            return int(cursor.lastrowid)

    def list_completed_sessions(
        self, user_id: str, since: datetime | None = None
    ) -> Iterator[dict[str, Any]]:
        """Yields ledger rows for ``user_id`` in ``completed_at`` ascending order.

        Rows are streamed from an open cursor, so the generator can only be
        consumed once.
        """
        query = (
            "SELECT session_type, actual_duration_seconds, scheduled_duration_seconds, "
            "completed_at, was_skipped_early, task_id FROM completed_sessions WHERE user_id = ?"
        )
        params: tuple[Any, ...] = (user_id,)
        if since is not None:
            query += " AND completed_at >= ?"
            params = (user_id, _to_timestamp(since))
        query += " ORDER BY completed_at ASC, id ASC"
        with closing(self._connect()) as conn:
            try:
                cursor = conn.execute(query, params)
                for row in cursor:
                    yield {
                        "session_type": row["session_type"],
                        "actual_duration_seconds": row["actual_duration_seconds"],
                        "scheduled_duration_seconds": row["scheduled_duration_seconds"],
                        "completed_at": _from_timestamp(row["completed_at"]),
                        "was_skipped_early": bool(row["was_skipped_early"]),
                        "task_id": row["task_id"],
                    }
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

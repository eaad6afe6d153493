from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from study_timer.core.errors import InvalidTransition, StorageError
from study_timer.core.timer import SessionType
from study_timer.core.timer_service import SessionCompleted, TimerService

logger = logging.getLogger(__name__)


class TimerBridge(QObject):
    """Qt-facing adapter over ``TimerService`` for a single signed-in user.

    A ``QTimer`` polls the service: every tick reads a snapshot and lets the
    service settle natural completion. Commands swallow ``InvalidTransition``
    (duplicate clicks) and report storage failures through ``storage_warning``.
    """

    snapshot_changed = pyqtSignal(object)
    session_completed = pyqtSignal(object)
    storage_warning = pyqtSignal(str)

    def __init__(
        self,
        service: TimerService,
        user_id: str,
        interval_ms: int = 250,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.service = service
        self.user_id = user_id
        self._poll = QTimer(self)
        self._poll.setInterval(interval_ms)
        self._poll.timeout.connect(self.refresh)
        self._unsubscribe = service.subscribe(self._on_completed)

    def start_polling(self) -> None:
        self._poll.start()

    def stop_polling(self) -> None:
        self._poll.stop()

    def close(self) -> None:
        self.stop_polling()
        self._unsubscribe()

    def refresh(self) -> None:
        try:
            outcome = self.service.tick(self.user_id)
        except StorageError as exc:
            self.storage_warning.emit(str(exc))
            return
        if outcome is not None and outcome.storage_warning:
            self.storage_warning.emit(outcome.storage_warning)
        self.snapshot_changed.emit(self.service.snapshot(self.user_id))

    def start(self, session_type: SessionType = SessionType.FOCUS, task_id: str | None = None) -> bool:
        return self._run("start", lambda: self.service.start(self.user_id, session_type, task_id=task_id))

    def pause(self) -> bool:
        return self._run("pause", lambda: self.service.pause(self.user_id))

    def resume(self) -> bool:
        return self._run("resume", lambda: self.service.resume(self.user_id))

    def stop(self) -> bool:
        return self._run("stop", lambda: self.service.stop(self.user_id))

    def skip(self) -> bool:
        return self._run("skip", lambda: self.service.skip(self.user_id))

    def _run(self, name: str, command) -> bool:
        try:
            result = command()
        except InvalidTransition as exc:
            logger.debug(f"Ignored {name}: {exc}")
            return False
        except StorageError as exc:
            self.storage_warning.emit(str(exc))
            self.snapshot_changed.emit(self.service.snapshot(self.user_id))
            return True
        warning = getattr(result, "storage_warning", None)
        if warning:
            self.storage_warning.emit(warning)
        self.snapshot_changed.emit(self.service.snapshot(self.user_id))
        return True

    def _on_completed(self, event: SessionCompleted) -> None:
        if event.user_id == self.user_id:
            self.session_completed.emit(event)

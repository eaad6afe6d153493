from __future__ import annotations

"""Study Timer application entry point.

Configures logging, opens the SQLite store, builds the per-user timer
service and shows the main window.
"""

import logging
import sys

from PyQt6.QtWidgets import QApplication

from study_timer.core.config import AppConfig
from study_timer.core.timer_service import TimerService
from study_timer.data.storage import Storage
from study_timer.ui.main_window import MainWindow
from study_timer.ui.timer_bridge import TimerBridge


def build_service(config: AppConfig) -> TimerService:
    """Creates the storage collaborator and the timer service for ``config``."""
    storage = Storage(config.db_path, timeout=config.storage_timeout_seconds)
    storage.init_db()
    return TimerService(storage, tz=config.tzinfo())


def main() -> int:
    config = AppConfig()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)

    service = build_service(config)
    bridge = TimerBridge(service, config.user_id, interval_ms=config.tick_interval_ms)
    window = MainWindow(bridge)

    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QComboBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from study_timer.core.timer import SessionType, TimerSnapshot, TimerState, format_time_remaining
from study_timer.core.timer_service import SessionCompleted
from study_timer.ui.settings_dialog import SettingsDialog
from study_timer.ui.timer_bridge import TimerBridge


def _hours_minutes(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


class MainWindow(QMainWindow):
    def __init__(self, bridge: TimerBridge) -> None:
        super().__init__()
        self.setWindowTitle("Study Timer")
        self.resize(520, 360)
        self.bridge = bridge

        self._build_ui()
        self._connect_signals()
        self.bridge.refresh()
        self.refresh_stats()
        self.bridge.start_polling()

    def _build_ui(self) -> None:
        central = QWidget(self)
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        top_bar = QHBoxLayout()
        self.type_combo = QComboBox()
        for session_type in SessionType:
            self.type_combo.addItem(session_type.label, session_type)
        top_bar.addWidget(QLabel("Session:"))
        top_bar.addWidget(self.type_combo)
        top_bar.addStretch()
        self.settings_btn = QPushButton("Settings")
        top_bar.addWidget(self.settings_btn)
        layout.addLayout(top_bar)

        self.remaining_label = QLabel("00:00")
        self.remaining_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        font = self.remaining_label.font()
        font.setPointSize(36)
        self.remaining_label.setFont(font)
        layout.addWidget(self.remaining_label)

        self.progress = QProgressBar()
        self.progress.setRange(0, 1000)
        self.progress.setTextVisible(False)
        layout.addWidget(self.progress)

        controls = QHBoxLayout()
        self.start_btn = QPushButton("Start")
        self.pause_btn = QPushButton("Pause")
        self.resume_btn = QPushButton("Resume")
        self.stop_btn = QPushButton("Stop")
        self.skip_btn = QPushButton("Skip")
        for button in (self.start_btn, self.pause_btn, self.resume_btn, self.stop_btn, self.skip_btn):
            controls.addWidget(button)
        layout.addLayout(controls)

        stats_box = QWidget()
        stats_form = QFormLayout(stats_box)
        self.today_label = QLabel("0")
        self.week_label = QLabel("0 / 0")
        self.streak_label = QLabel("0")
        self.study_time_label = QLabel("0h 0m")
        self.break_time_label = QLabel("0h 0m")
        self.average_label = QLabel("0 min")
        self.best_hour_label = QLabel("-")
        stats_form.addRow("Today:", self.today_label)
        stats_form.addRow("This week:", self.week_label)
        stats_form.addRow("Current streak:", self.streak_label)
        stats_form.addRow("Total study time:", self.study_time_label)
        stats_form.addRow("Total break time:", self.break_time_label)
        stats_form.addRow("Average session:", self.average_label)
        stats_form.addRow("Most productive hour:", self.best_hour_label)
        layout.addWidget(stats_box)

        space_action = QAction(self)
        space_action.setShortcut(QKeySequence(Qt.Key.Key_Space))
        space_action.triggered.connect(self._space_toggle)
        self.addAction(space_action)

    def _connect_signals(self) -> None:
        self.settings_btn.clicked.connect(self.open_settings)
        self.start_btn.clicked.connect(self.start_session)
        self.pause_btn.clicked.connect(self.bridge.pause)
        self.resume_btn.clicked.connect(self.bridge.resume)
        self.stop_btn.clicked.connect(self.bridge.stop)
        self.skip_btn.clicked.connect(self.bridge.skip)
        self.bridge.snapshot_changed.connect(self._on_snapshot)
        self.bridge.session_completed.connect(self._on_completed)
        self.bridge.storage_warning.connect(self._on_storage_warning)

    def start_session(self) -> None:
        self.bridge.start(self.type_combo.currentData())

    def _space_toggle(self) -> None:
        state = self.bridge.service.state(self.bridge.user_id)
        if state == TimerState.IDLE:
            self.start_session()
        elif state == TimerState.RUNNING:
            self.bridge.pause()
        else:
            self.bridge.resume()

    def _on_snapshot(self, snapshot: TimerSnapshot) -> None:
        self.remaining_label.setText(format_time_remaining(snapshot.remaining_seconds))
        self.progress.setValue(int(snapshot.progress * 1000))
        if snapshot.state == TimerState.IDLE:
            index = self.type_combo.findData(snapshot.suggested_next)
            if index >= 0:
                self.type_combo.setCurrentIndex(index)
        self.type_combo.setEnabled(snapshot.state == TimerState.IDLE)
        self.start_btn.setEnabled(snapshot.state == TimerState.IDLE)
        self.pause_btn.setEnabled(snapshot.state == TimerState.RUNNING)
        self.resume_btn.setEnabled(snapshot.state == TimerState.PAUSED)
        self.stop_btn.setEnabled(snapshot.state != TimerState.IDLE)
        self.skip_btn.setEnabled(snapshot.state != TimerState.IDLE)

    def _on_completed(self, event: SessionCompleted) -> None:
        settings = self.bridge.service.settings(self.bridge.user_id)
        if settings.desktop_notifications_enabled:
            verb = "ended early" if event.was_skipped_early else "completed"
            self.statusBar().showMessage(f"{event.session_type.label} {verb}", 5000)
        if settings.sound_enabled:
            QApplication.beep()
        self.refresh_stats()

    def _on_storage_warning(self, message: str) -> None:
        self.statusBar().showMessage(f"Not saved yet: {message}", 8000)

    def refresh_stats(self) -> None:
        stats = self.bridge.service.statistics(self.bridge.user_id)
        self.today_label.setText(str(stats.completed_today))
        self.week_label.setText(f"{stats.completed_this_week} / {stats.weekly_goal_sessions}")
        self.streak_label.setText(str(stats.current_streak_days))
        self.study_time_label.setText(_hours_minutes(stats.total_study_minutes))
        self.break_time_label.setText(_hours_minutes(stats.total_break_minutes))
        self.average_label.setText(f"{stats.average_session_length_minutes} min")
        hour = stats.most_productive_hour
        self.best_hour_label.setText("-" if hour is None else f"{hour:02d}:00")

    def open_settings(self) -> None:
        dialog = SettingsDialog(self.bridge.service, self.bridge.user_id, self)
        dialog.settings_saved.connect(lambda _settings: self.refresh_stats())
        dialog.exec()

    def closeEvent(self, event) -> None:  # noqa: N802
        # the session is persisted; closing the window must not end it
        self.bridge.close()
        event.accept()

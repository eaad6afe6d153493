from __future__ import annotations

import logging

from PyQt6.QtCore import pyqtSignal
from PyQt6.QtWidgets import (
    QCheckBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from study_timer.core.errors import StorageError, ValidationError
from study_timer.core.settings import INT_LIMITS
from study_timer.core.timer_service import TimerService

logger = logging.getLogger(__name__)

# durations are edited in whole minutes
MINUTE_FIELDS = {
    "focus_duration_seconds": "Focus (minutes)",
    "short_break_duration_seconds": "Short break (minutes)",
    "long_break_duration_seconds": "Long break (minutes)",
}

COUNT_FIELDS = {
    "long_break_interval": "Long break every",
    "weekly_goal_sessions": "Weekly goal (sessions)",
}

TOGGLE_FIELDS = {
    "auto_start_breaks": "Auto-start breaks",
    "auto_start_focus": "Auto-start focus sessions",
    "sound_enabled": "Play sound on completion",
    "desktop_notifications_enabled": "Show completion notice",
}


class SettingsDialog(QDialog):
    """Edits the signed-in user's ``TimerSettings``.

    Only fields the user actually changed are sent to ``update_settings``, so a
    duration stored in seconds that is not a whole minute survives unrelated edits.
    Validation errors are shown next to the offending field.
    """

    settings_saved = pyqtSignal(object)

    def __init__(self, service: TimerService, user_id: str, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Timer Settings")
        self.service = service
        self.user_id = user_id
        self.inputs: dict[str, QSpinBox | QCheckBox] = {}
        self.error_labels: dict[str, QLabel] = {}
        self._build_ui()
        self._initial = self._read_inputs()

    def _build_ui(self) -> None:
        settings = self.service.settings(self.user_id)
        layout = QVBoxLayout(self)
        form = QFormLayout()

        for name, label in MINUTE_FIELDS.items():
            low, high = INT_LIMITS[name]
            spin = QSpinBox()
            spin.setRange(max(1, low // 60), high // 60)
            spin.setValue(max(1, getattr(settings, name) // 60))
            self._add_row(form, name, label, spin)

        for name, label in COUNT_FIELDS.items():
            low, high = INT_LIMITS[name]
            spin = QSpinBox()
            spin.setRange(low, high)
            spin.setValue(getattr(settings, name))
            if name == "long_break_interval":
                spin.setSuffix(" focus sessions")
            self._add_row(form, name, label, spin)

        for name, label in TOGGLE_FIELDS.items():
            box = QCheckBox(label)
            box.setChecked(getattr(settings, name))
            self._add_row(form, name, "", box)

        layout.addLayout(form)

        self.general_error = QLabel()
        self.general_error.setStyleSheet("color: #c0392b;")
        self.general_error.setWordWrap(True)
        self.general_error.hide()
        layout.addWidget(self.general_error)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Save | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _add_row(self, form: QFormLayout, name: str, label: str, widget: QSpinBox | QCheckBox) -> None:
        error = QLabel()
        error.setStyleSheet("color: #c0392b;")
        error.hide()
        column = QVBoxLayout()
        column.addWidget(widget)
        column.addWidget(error)
        form.addRow(label, column)
        self.inputs[name] = widget
        self.error_labels[name] = error

    def _read_inputs(self) -> dict[str, int | bool]:
        values: dict[str, int | bool] = {}
        for name, widget in self.inputs.items():
            if isinstance(widget, QCheckBox):
                values[name] = widget.isChecked()
            elif name in MINUTE_FIELDS:
                values[name] = widget.value() * 60
            else:
                values[name] = widget.value()
        return values

    def changes(self) -> dict[str, int | bool]:
        current = self._read_inputs()
        return {name: value for name, value in current.items() if value != self._initial[name]}

    def show_errors(self, errors: dict[str, str]) -> None:
        for name, label in self.error_labels.items():
            message = errors.get(name)
            label.setText(message or "")
            label.setVisible(bool(message))
        unknown = [f"{name}: {msg}" for name, msg in errors.items() if name not in self.error_labels]
        self.general_error.setText("\n".join(unknown))
        self.general_error.setVisible(bool(unknown))

    def accept(self) -> None:
        changes = self.changes()
        if not changes:
            super().accept()
            return
        try:
            updated = self.service.update_settings(self.user_id, **changes)
        except ValidationError as exc:
            logger.debug(f"Rejected settings for {self.user_id}: {exc.errors}")
            self.show_errors(exc.errors)
            return
        except StorageError as exc:
            logger.warning(f"Could not save settings for {self.user_id}: {exc}")
            self.show_errors({})
            self.general_error.setText(f"Settings were not saved: {exc}")
            self.general_error.show()
            return
        logger.debug(f"Settings dialog saved {sorted(changes)} for {self.user_id}")
        self.settings_saved.emit(updated)
        super().accept()

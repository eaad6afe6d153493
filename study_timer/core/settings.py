from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from study_timer.core.errors import ValidationError

logger = logging.getLogger(__name__)

# field -> (minimum, maximum), inclusive
INT_LIMITS: dict[str, tuple[int, int]] = {
    "focus_duration_seconds": (1, 120 * 60),
    "short_break_duration_seconds": (1, 30 * 60),
    "long_break_duration_seconds": (1, 60 * 60),
    "long_break_interval": (2, 10),
    "weekly_goal_sessions": (1, 100),
}

BOOL_FIELDS = (
    "auto_start_breaks",
    "auto_start_focus",
    "sound_enabled",
    "desktop_notifications_enabled",
)


def validate_settings(values: dict[str, Any]) -> dict[str, str]:
    """Checks each provided field independently and returns ``{field: message}``."""
    errors: dict[str, str] = {}
    for key, value in values.items():
        if key in INT_LIMITS:
            low, high = INT_LIMITS[key]
            if isinstance(value, bool) or not isinstance(value, int):
                errors[key] = "must be an integer"
            elif value < low or value > high:
                errors[key] = f"must be between {low} and {high}"
        elif key in BOOL_FIELDS:
            if not isinstance(value, bool):
                errors[key] = "must be a boolean"
        else:
            errors[key] = "unknown setting"
    return errors


@dataclass(frozen=True)
class TimerSettings:
    focus_duration_seconds: int = 25 * 60
    short_break_duration_seconds: int = 5 * 60
    long_break_duration_seconds: int = 15 * 60
    long_break_interval: int = 4
    auto_start_breaks: bool = False
    auto_start_focus: bool = False
    sound_enabled: bool = True
    desktop_notifications_enabled: bool = True
    weekly_goal_sessions: int = 10

    def __post_init__(self) -> None:
        errors = validate_settings(self.to_document())
        if errors:
            raise ValidationError(errors)

    def to_document(self) -> dict[str, Any]:
        return asdict(self)

    def duration_for(self, session_type: str) -> int:
        """Scheduled length in seconds for a ``SessionType`` value."""
        if session_type == "focus":
            return self.focus_duration_seconds
        if session_type == "short_break":
            return self.short_break_duration_seconds
        if session_type == "long_break":
            return self.long_break_duration_seconds
        raise ValueError(f"Unknown session type: {session_type}")


SETTING_NAMES = tuple(f.name for f in fields(TimerSettings))


class SettingsService:
    """Loads and updates per-user timer settings through the storage collaborator."""

    def __init__(self, storage) -> None:
        self._storage = storage

    def load(self, user_id: str) -> TimerSettings:
        raw = self._storage.get_configuration(user_id)
        if not raw:
            return TimerSettings()
        known = {key: value for key, value in raw.items() if key in SETTING_NAMES}
        try:
            return replace(TimerSettings(), **known)
        except ValidationError as exc:
            logger.warning(f"Ignoring invalid stored settings for {user_id}: {exc.errors}")
            return TimerSettings()

    def update(self, user_id: str, **changes: Any) -> TimerSettings:
        """Validates ``changes``, merges them over the current settings and persists.

        Raises:
            ValidationError: when any field is unknown or out of range. Nothing is
                written in that case.
        """
        errors = validate_settings(changes)
        if errors:
            raise ValidationError(errors)
        merged = replace(self.load(user_id), **changes)
        self._storage.save_configuration(user_id, merged.to_document())
        logger.info(f"Updated timer settings for {user_id}: {sorted(changes)}")
        return merged

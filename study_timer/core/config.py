"""Application configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class AppConfig:
    """Immutable startup configuration for the timer application."""

    db_path: Path = field(default_factory=lambda: Path.cwd() / "study_timer.db")
    user_id: str = "local"
    timezone: str | None = None  # IANA name; None uses the system local zone
    storage_timeout_seconds: float = 5.0
    tick_interval_ms: int = 250
    log_level: str = "INFO"

    def __post_init__(self):
        if isinstance(self.db_path, str):
            object.__setattr__(self, "db_path", Path(self.db_path))
        if self.storage_timeout_seconds <= 0:
            raise ValueError("storage_timeout_seconds must be positive")
        if self.tick_interval_ms <= 0:
            raise ValueError("tick_interval_ms must be positive")

    def tzinfo(self) -> tzinfo | None:
        return ZoneInfo(self.timezone) if self.timezone else None

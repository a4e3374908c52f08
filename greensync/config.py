"""Runtime settings, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import tzinfo

from dateutil import tz


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    timezone_name: str = field(default_factory=lambda: os.getenv("GREENSYNC_TIMEZONE", "UTC"))
    notification_log_limit: int = field(
        default_factory=lambda: int(os.getenv("GREENSYNC_NOTIFICATION_LOG_LIMIT", 100))
    )
    upcoming_window_minutes: int = field(
        default_factory=lambda: int(os.getenv("GREENSYNC_UPCOMING_WINDOW_MINUTES", 60))
    )
    upcoming_suppress_hours: int = field(
        default_factory=lambda: int(os.getenv("GREENSYNC_UPCOMING_SUPPRESS_HOURS", 24))
    )
    notification_file: str | None = field(
        default_factory=lambda: os.getenv("GREENSYNC_NOTIFICATION_FILE") or None
    )
    log_level: str = field(default_factory=lambda: os.getenv("GREENSYNC_LOG_LEVEL", "INFO"))
    seed_facilities: bool = field(default_factory=lambda: _env_bool("GREENSYNC_SEED", True))

    @property
    def timezone(self) -> tzinfo:
        """Zone used to read a booking's date and start time as wall-clock time."""
        zone = tz.gettz(self.timezone_name)
        if zone is None:
            raise ValueError(f"unknown timezone {self.timezone_name!r}")
        return zone


def get_settings() -> Settings:
    return Settings()

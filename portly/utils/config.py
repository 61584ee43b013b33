"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


DEFAULT_MASTER_HOURS: tuple[str, ...] = (
    "08:00", "08:30", "09:00", "09:30", "10:00", "10:30",
    "11:00", "11:30", "12:00", "12:30", "13:00", "13:30",
    "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
    "17:00", "17:30",
)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration.

    Tests derive isolated variants with ``dataclasses.replace`` instead of
    mutating environment variables.
    """

    app_name: str = "Portly Gate Console"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000
    database_path: Path = Path("data/portly.db")

    booking_horizon_days: int = 14
    booking_master_hours: tuple[str, ...] = DEFAULT_MASTER_HOURS
    booking_hour_keep_probability: float = 0.7
    booking_min_fallback_hours: int = 4
    booking_random_seed: Optional[int] = None
    booking_deterministic_hours: bool = False
    booking_id_prefix: str = "BK-"
    booking_id_base: int = 10000

    scan_event_id_prefix: str = "SC-"
    scan_event_id_width: int = 3
    scan_recent_limit: int = 10
    seed_demo_data: bool = True


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_hours(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from ``PORTLY_*`` environment variables once per process."""
    defaults = Settings()
    return Settings(
        app_name=os.getenv("PORTLY_APP_NAME", defaults.app_name),
        app_version=os.getenv("PORTLY_APP_VERSION", defaults.app_version),
        log_level=os.getenv("PORTLY_LOG_LEVEL", defaults.log_level),
        host=os.getenv("PORTLY_HOST", defaults.host),
        port=_env_int("PORTLY_PORT", defaults.port) or defaults.port,
        database_path=Path(os.getenv("PORTLY_DATABASE_PATH", str(defaults.database_path))),
        booking_horizon_days=_env_int(
            "PORTLY_BOOKING_HORIZON_DAYS", defaults.booking_horizon_days
        ) or 0,
        booking_master_hours=_env_hours(
            "PORTLY_BOOKING_MASTER_HOURS", defaults.booking_master_hours
        ),
        booking_hour_keep_probability=float(
            os.getenv(
                "PORTLY_BOOKING_HOUR_KEEP_PROBABILITY",
                defaults.booking_hour_keep_probability,
            )
        ),
        booking_min_fallback_hours=_env_int(
            "PORTLY_BOOKING_MIN_FALLBACK_HOURS", defaults.booking_min_fallback_hours
        ) or 0,
        booking_random_seed=_env_int("PORTLY_BOOKING_RANDOM_SEED", defaults.booking_random_seed),
        booking_deterministic_hours=_env_bool(
            "PORTLY_BOOKING_DETERMINISTIC_HOURS", defaults.booking_deterministic_hours
        ),
        booking_id_prefix=os.getenv("PORTLY_BOOKING_ID_PREFIX", defaults.booking_id_prefix),
        booking_id_base=_env_int("PORTLY_BOOKING_ID_BASE", defaults.booking_id_base) or 0,
        scan_event_id_prefix=os.getenv("PORTLY_SCAN_EVENT_ID_PREFIX", defaults.scan_event_id_prefix),
        scan_event_id_width=_env_int(
            "PORTLY_SCAN_EVENT_ID_WIDTH", defaults.scan_event_id_width
        ) or defaults.scan_event_id_width,
        scan_recent_limit=_env_int(
            "PORTLY_SCAN_RECENT_LIMIT", defaults.scan_recent_limit
        ) or defaults.scan_recent_limit,
        seed_demo_data=_env_bool("PORTLY_SEED_DEMO_DATA", defaults.seed_demo_data),
    )

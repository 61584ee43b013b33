"""Domain-level validation rules for the slot calendar and bookings."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime


HOUR_LABEL_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass(frozen=True)
class CalendarConfig:
    horizon_days: int
    master_hours: tuple[str, ...]
    keep_probability: float
    min_fallback_hours: int


def is_valid_hour_label(value: str) -> bool:
    return HOUR_LABEL_PATTERN.fullmatch(value) is not None


def is_valid_iso_date(value: str) -> bool:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        return False
    return True


def validate_calendar_config(config: CalendarConfig) -> None:
    if config.horizon_days < 0:
        raise ValueError("horizon_days must be >= 0")
    if not config.master_hours:
        raise ValueError("master_hours must contain at least one hour label")
    for hour in config.master_hours:
        if not is_valid_hour_label(hour):
            raise ValueError(f"master_hours contains invalid label {hour!r}")
    if len(set(config.master_hours)) != len(config.master_hours):
        raise ValueError("master_hours must not contain duplicates")
    if not 0.0 < config.keep_probability <= 1.0:
        raise ValueError("keep_probability must be in (0, 1]")
    if config.min_fallback_hours <= 0:
        raise ValueError("min_fallback_hours must be > 0")

"""Slot calendar: which dates and hours are open for pickup appointments.

Everything here is a pure function of its inputs. Hour selection is a
pluggable policy so the randomized demo generator can be replaced by a
capacity-aware source without touching the allocator.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional, Protocol, Sequence

import numpy as np
import pandas as pd

from portly.domain.constraints import CalendarConfig, validate_calendar_config
from portly.domain.models import SlotAvailability
from portly.utils.config import Settings, get_settings


class HourSelectionPolicy(Protocol):
    def select_hours(self, day: date, master_hours: Sequence[str]) -> tuple[str, ...]:
        ...


class RandomHourPolicy:
    """Keeps each master hour with a fixed probability; demo data path."""

    def __init__(
        self,
        keep_probability: float = 0.7,
        min_fallback_hours: int = 4,
        seed: Optional[int] = None,
    ) -> None:
        self._keep_probability = keep_probability
        self._min_fallback_hours = min_fallback_hours
        self._rng = np.random.default_rng(seed)

    def select_hours(self, day: date, master_hours: Sequence[str]) -> tuple[str, ...]:
        del day
        draws = self._rng.random(len(master_hours))
        kept = [hour for hour, draw in zip(master_hours, draws) if draw < self._keep_probability]
        if not kept:
            kept = list(master_hours[: self._min_fallback_hours])
        return tuple(sorted(set(kept)))


class FullCapacityHourPolicy:
    """Every master hour is open on every eligible date."""

    def select_hours(self, day: date, master_hours: Sequence[str]) -> tuple[str, ...]:
        del day
        return tuple(sorted(set(master_hours)))


def eligible_dates(today: date, horizon_days: int) -> list[date]:
    """Return the weekdays among the ``horizon_days`` days after ``today``."""
    if horizon_days <= 0:
        return []
    business_days = pd.bdate_range(
        start=today + timedelta(days=1),
        end=today + timedelta(days=horizon_days),
    )
    return [timestamp.date() for timestamp in business_days]


def generate_calendar(
    today: date,
    config: CalendarConfig,
    policy: HourSelectionPolicy,
) -> list[SlotAvailability]:
    validate_calendar_config(config)
    calendar: list[SlotAvailability] = []
    for day in eligible_dates(today, config.horizon_days):
        hours = policy.select_hours(day, config.master_hours)
        calendar.append(SlotAvailability(date=day.isoformat(), hours=hours))
    return calendar


def calendar_config_from_settings(settings: Optional[Settings] = None) -> CalendarConfig:
    resolved = settings or get_settings()
    return CalendarConfig(
        horizon_days=resolved.booking_horizon_days,
        master_hours=tuple(resolved.booking_master_hours),
        keep_probability=resolved.booking_hour_keep_probability,
        min_fallback_hours=resolved.booking_min_fallback_hours,
    )


def policy_from_settings(settings: Optional[Settings] = None) -> HourSelectionPolicy:
    resolved = settings or get_settings()
    if resolved.booking_deterministic_hours:
        return FullCapacityHourPolicy()
    return RandomHourPolicy(
        keep_probability=resolved.booking_hour_keep_probability,
        min_fallback_hours=resolved.booking_min_fallback_hours,
        seed=resolved.booking_random_seed,
    )

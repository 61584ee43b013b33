from __future__ import annotations

from datetime import date, timedelta

import pytest

from portly.domain.constraints import CalendarConfig
from portly.services.calendar_service import (
    FullCapacityHourPolicy,
    RandomHourPolicy,
    eligible_dates,
    generate_calendar,
)
from portly.utils.config import DEFAULT_MASTER_HOURS


def _config(**overrides) -> CalendarConfig:
    defaults = {
        "horizon_days": 14,
        "master_hours": DEFAULT_MASTER_HOURS,
        "keep_probability": 0.7,
        "min_fallback_hours": 4,
    }
    defaults.update(overrides)
    return CalendarConfig(**defaults)


def test_eligible_dates_skip_weekends_and_today():
    monday = date(2026, 10, 19)
    dates = eligible_dates(monday, 14)

    assert monday not in dates
    assert dates[0] == date(2026, 10, 20)
    assert dates[-1] == date(2026, 11, 2)
    assert len(dates) == 10
    assert all(day.weekday() < 5 for day in dates)


@pytest.mark.parametrize("offset", range(7))
def test_generated_calendar_never_contains_weekend(offset):
    today = date(2026, 3, 2) + timedelta(days=offset)
    calendar = generate_calendar(today, _config(), RandomHourPolicy(seed=offset))

    assert calendar
    for slot in calendar:
        assert date.fromisoformat(slot.date).weekday() < 5


def test_horizon_inside_weekend_yields_empty_calendar():
    friday = date(2026, 10, 23)
    assert generate_calendar(friday, _config(horizon_days=2), FullCapacityHourPolicy()) == []


def test_zero_horizon_yields_no_dates():
    assert eligible_dates(date(2026, 10, 19), 0) == []


def test_random_policy_hours_are_unique_sorted_subset():
    policy = RandomHourPolicy(keep_probability=0.5, seed=11)
    for _ in range(20):
        hours = policy.select_hours(date(2026, 10, 20), DEFAULT_MASTER_HOURS)
        assert hours
        assert list(hours) == sorted(set(hours))
        assert set(hours) <= set(DEFAULT_MASTER_HOURS)


def test_random_policy_is_reproducible_with_seed():
    first = RandomHourPolicy(seed=3).select_hours(date(2026, 10, 20), DEFAULT_MASTER_HOURS)
    second = RandomHourPolicy(seed=3).select_hours(date(2026, 10, 20), DEFAULT_MASTER_HOURS)
    assert first == second


def test_random_policy_falls_back_to_first_master_hours():
    policy = RandomHourPolicy(keep_probability=1e-12, min_fallback_hours=4, seed=1)
    hours = policy.select_hours(date(2026, 10, 20), DEFAULT_MASTER_HOURS)
    assert hours == ("08:00", "08:30", "09:00", "09:30")


def test_full_capacity_policy_opens_every_master_hour():
    calendar = generate_calendar(date(2026, 10, 19), _config(), FullCapacityHourPolicy())
    assert all(slot.hours == DEFAULT_MASTER_HOURS for slot in calendar)


def test_invalid_calendar_config_is_rejected():
    with pytest.raises(ValueError):
        generate_calendar(date(2026, 10, 19), _config(horizon_days=-1), FullCapacityHourPolicy())
    with pytest.raises(ValueError):
        generate_calendar(date(2026, 10, 19), _config(master_hours=("8am",)), FullCapacityHourPolicy())

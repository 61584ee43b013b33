"""Tests for calendar configuration and label validation rules.

Covers every branch of validate_calendar_config() plus the date/hour helpers.
"""

from __future__ import annotations

import pytest

from portly.domain.constraints import (
    CalendarConfig,
    is_valid_hour_label,
    is_valid_iso_date,
    validate_calendar_config,
)


def valid_config(**overrides) -> CalendarConfig:
    """Return a valid baseline CalendarConfig, optionally overriding fields."""
    defaults = {
        "horizon_days": 14,
        "master_hours": ("08:00", "08:30", "09:00"),
        "keep_probability": 0.7,
        "min_fallback_hours": 4,
    }
    defaults.update(overrides)
    return CalendarConfig(**defaults)


def test_valid_config_passes() -> None:
    validate_calendar_config(valid_config())


def test_negative_horizon_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(horizon_days=-1))


def test_zero_horizon_passes() -> None:
    validate_calendar_config(valid_config(horizon_days=0))


def test_empty_master_hours_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(master_hours=()))


def test_malformed_master_hour_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(master_hours=("08:00", "25:00")))


def test_duplicate_master_hour_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(master_hours=("08:00", "08:00")))


def test_keep_probability_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(keep_probability=0.0))


def test_keep_probability_one_passes() -> None:
    """Exact upper boundary must pass."""
    validate_calendar_config(valid_config(keep_probability=1.0))


def test_keep_probability_above_one_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(keep_probability=1.01))


def test_min_fallback_hours_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_calendar_config(valid_config(min_fallback_hours=0))


@pytest.mark.parametrize("label", ["00:00", "08:30", "17:30", "23:59"])
def test_hour_label_accepts_24h_clock(label: str) -> None:
    assert is_valid_hour_label(label)


@pytest.mark.parametrize("label", ["8:30", "24:00", "12:60", "0830", "10:30:00", ""])
def test_hour_label_rejects_malformed(label: str) -> None:
    assert not is_valid_hour_label(label)


def test_iso_date_validation() -> None:
    assert is_valid_iso_date("2026-02-11")
    assert not is_valid_iso_date("2026-02-30")
    assert not is_valid_iso_date("11/02/2026")

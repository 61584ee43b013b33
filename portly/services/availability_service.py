"""In-memory availability store: the ground truth of open pickup slots."""

from __future__ import annotations

from datetime import date, datetime, timezone
from threading import Lock
from typing import Optional

from portly.domain.constraints import CalendarConfig
from portly.domain.models import SlotAvailability
from portly.services.calendar_service import (
    HourSelectionPolicy,
    calendar_config_from_settings,
    generate_calendar,
    policy_from_settings,
)
from portly.utils.config import Settings, get_settings
from portly.utils.logger import get_logger


logger = get_logger(__name__)


class SlotAlreadyTakenError(Exception):
    """Raised when a slot is not open: already booked or never offered."""

    def __init__(self, date_value: str, hour: str) -> None:
        super().__init__(
            f"Slot {date_value} {hour} is no longer available; refresh availability and choose another slot"
        )
        self.date = date_value
        self.hour = hour


class AvailabilityStore:
    """Owns the date -> open hours mapping.

    The calendar is generated once and only replaced by an explicit
    ``reseed``; a client that lists hours and then books is always checked
    against the same mapping.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        config: Optional[CalendarConfig] = None,
        policy: Optional[HourSelectionPolicy] = None,
        today: Optional[date] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = config or calendar_config_from_settings(self._settings)
        self._policy = policy or policy_from_settings(self._settings)
        self._lock = Lock()
        self._open_hours: dict[str, set[str]] = {}
        self.reseed(today=today)

    def reseed(self, today: Optional[date] = None) -> None:
        """Replace the whole store with a freshly generated calendar."""
        anchor = today or datetime.now(timezone.utc).date()
        calendar = generate_calendar(anchor, self._config, self._policy)
        with self._lock:
            self._open_hours = {slot.date: set(slot.hours) for slot in calendar}
        logger.info(
            "Availability reseeded | anchor=%s | dates=%s | slots=%s",
            anchor.isoformat(),
            len(calendar),
            sum(len(slot.hours) for slot in calendar),
        )

    def list_dates(self) -> list[str]:
        with self._lock:
            return sorted(self._open_hours)

    def list_hours(self, date_value: str) -> list[str]:
        with self._lock:
            return sorted(self._open_hours.get(date_value, ()))

    def is_open(self, date_value: str, hour: str) -> bool:
        with self._lock:
            return hour in self._open_hours.get(date_value, ())

    def snapshot(self) -> list[SlotAvailability]:
        with self._lock:
            return [
                SlotAvailability(date=date_value, hours=tuple(sorted(hours)))
                for date_value, hours in sorted(self._open_hours.items())
            ]

    def consume(self, date_value: str, hour: str) -> None:
        """Remove one open hour; first caller wins, later callers get SlotAlreadyTakenError."""
        with self._lock:
            hours = self._open_hours.get(date_value)
            if hours is None or hour not in hours:
                raise SlotAlreadyTakenError(date_value, hour)
            hours.remove(hour)
            remaining = len(hours)
        logger.info(
            "Slot consumed | date=%s | hour=%s | remaining_hours=%s",
            date_value,
            hour,
            remaining,
        )

    def release(self, date_value: str, hour: str) -> None:
        """Reopen an hour whose booking was never persisted; unknown dates are ignored."""
        with self._lock:
            hours = self._open_hours.get(date_value)
            if hours is None:
                return
            hours.add(hour)
        logger.info("Slot released | date=%s | hour=%s", date_value, hour)

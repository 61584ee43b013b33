"""Booking allocation: binds an open slot to a container."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Optional

from portly.domain.constraints import is_valid_hour_label, is_valid_iso_date
from portly.domain.credential import encode_credential_payload
from portly.domain.models import (
    BOOKING_STATUS_SCHEDULED,
    Booking,
    BookingConfirmation,
    BookingRequest,
    ContainerRecord,
)
from portly.repository.data_repository import DataRepository
from portly.services.availability_service import AvailabilityStore
from portly.utils.config import Settings, get_settings
from portly.utils.logger import get_logger


logger = get_logger(__name__)


class BookingError(Exception):
    """Base exception for booking workflow failures."""


class BookingValidationError(BookingError):
    """Raised when a booking request is malformed."""


class ContainerNotFoundError(BookingError):
    """Raised when a container id does not exist in persisted state."""


class ContainerAlreadyScheduledError(BookingError):
    """Raised when a container already holds an appointment."""


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist in persisted state."""


class BookingNotScheduledError(BookingError):
    """Raised when a booking is Completed or Cancelled and cannot be fulfilled."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class BookingIdGenerator:
    """Process-wide monotonic ``BK-<n>`` counter."""

    def __init__(
        self,
        prefix: str,
        base: int,
        issued_count: int = 0,
        highest_issued: Optional[int] = None,
    ) -> None:
        self._prefix = prefix
        self._lock = Lock()
        self._last = base + issued_count
        if highest_issued is not None and highest_issued > self._last:
            self._last = highest_issued

    @classmethod
    def from_repository(cls, repository: DataRepository, settings: Settings) -> "BookingIdGenerator":
        pattern = re.compile(rf"^{re.escape(settings.booking_id_prefix)}(\d+)$")
        existing = repository.list_booking_ids()
        numbers = [
            int(match.group(1))
            for match in (pattern.match(booking_id) for booking_id in existing)
            if match is not None
        ]
        return cls(
            prefix=settings.booking_id_prefix,
            base=settings.booking_id_base,
            issued_count=len(existing),
            highest_issued=max(numbers) if numbers else None,
        )

    def next_id(self) -> str:
        with self._lock:
            self._last += 1
            value = self._last
        return f"{self._prefix}{value}"


class BookingAllocationService:
    """Validates booking requests, consumes slots and issues booking ids."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        availability_store: Optional[AvailabilityStore] = None,
        settings: Optional[Settings] = None,
        id_generator: Optional[BookingIdGenerator] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._availability = availability_store or AvailabilityStore(self._settings)
        self._id_generator = id_generator
        self._id_generator_lock = Lock()
        self._allocation_lock = RLock()

    @property
    def availability(self) -> AvailabilityStore:
        return self._availability

    def _ids(self) -> BookingIdGenerator:
        # Deferred until first use so startup seeding is counted.
        with self._id_generator_lock:
            if self._id_generator is None:
                self._id_generator = BookingIdGenerator.from_repository(
                    self._repository,
                    self._settings,
                )
            return self._id_generator

    def _validate_request(self, request: BookingRequest) -> None:
        if not request.container_id or not request.container_id.strip():
            raise BookingValidationError("container_id must be non-empty")
        if not is_valid_iso_date(request.date):
            raise BookingValidationError("date must follow YYYY-MM-DD format")
        if not is_valid_hour_label(request.hour):
            raise BookingValidationError("hour must follow HH:MM format")

    def create_booking(self, request: BookingRequest) -> BookingConfirmation:
        """Consume one slot and bind it to the container.

        ``SlotAlreadyTakenError`` is propagated unchanged; the caller must
        re-query availability before choosing another slot.
        """
        self._validate_request(request)

        # Serializes the scheduled-check and the container update so one
        # container can never be bound to two slots.
        with self._allocation_lock:
            container = self._repository.get_container(request.container_id)
            if container is None:
                raise ContainerNotFoundError(f"container_id {request.container_id} not found")
            if container.scheduled:
                raise ContainerAlreadyScheduledError(
                    f"container_id {request.container_id} already has an appointment on "
                    f"{container.appointment_date} at {container.appointment_hour}"
                )

            self._availability.consume(request.date, request.hour)

            booking_id = self._ids().next_id()
            try:
                booking = self._repository.record_booking(
                    booking_id=booking_id,
                    container_id=request.container_id,
                    date=request.date,
                    time=request.hour,
                    created_at=utc_now_iso(),
                )
            except RuntimeError:
                # Nothing was persisted; the hour goes back on offer.
                self._availability.release(request.date, request.hour)
                logger.warning(
                    "Booking write failed; slot released | booking_id=%s | date=%s | hour=%s",
                    booking_id,
                    request.date,
                    request.hour,
                )
                raise
            if booking is None:
                # Slot stays consumed: orphaned slot.
                logger.warning(
                    "Container vanished after slot consumption | container_id=%s | date=%s | hour=%s",
                    request.container_id,
                    request.date,
                    request.hour,
                )
                raise ContainerNotFoundError(f"container_id {request.container_id} not found")
        logger.info(
            "Booking created | booking_id=%s | container_id=%s | date=%s | hour=%s",
            booking_id,
            request.container_id,
            request.date,
            request.hour,
        )
        return BookingConfirmation(
            booking_id=booking_id,
            container_id=request.container_id,
            date=request.date,
            hour=request.hour,
            message=f"Appointment scheduled for {request.date} at {request.hour}",
            qr_payload=encode_credential_payload(
                booking_id=booking_id,
                container_id=request.container_id,
                date=request.date,
                time=request.hour,
            ),
        )

    @staticmethod
    def build_credential_payload(confirmation: BookingConfirmation) -> str:
        return encode_credential_payload(
            booking_id=confirmation.booking_id,
            container_id=confirmation.container_id,
            date=confirmation.date,
            time=confirmation.hour,
        )

    def list_containers(self) -> list[ContainerRecord]:
        return self._repository.list_containers()

    def get_container(self, container_id: str) -> ContainerRecord:
        container = self._repository.get_container(container_id)
        if container is None:
            raise ContainerNotFoundError(f"container_id {container_id} not found")
        return container

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"booking_id {booking_id} not found")
        return booking

    def list_bookings(self) -> list[Booking]:
        return sorted(
            self._repository.list_bookings(),
            key=lambda booking: booking.created_at,
            reverse=True,
        )

    def list_upcoming_bookings(self) -> list[Booking]:
        return sorted(
            (
                booking
                for booking in self._repository.list_bookings()
                if booking.status == BOOKING_STATUS_SCHEDULED
            ),
            key=lambda booking: (booking.date, booking.time),
        )

    def list_booking_history(self) -> list[Booking]:
        return sorted(
            (
                booking
                for booking in self._repository.list_bookings()
                if booking.status != BOOKING_STATUS_SCHEDULED
            ),
            key=lambda booking: booking.created_at,
            reverse=True,
        )

    def mark_booking_fulfilled(self, booking_id: str, scanned_at: str) -> Booking:
        """Complete a Scheduled booking and free its container for a new appointment."""
        booking = self._repository.complete_booking(booking_id=booking_id, scanned_at=scanned_at)
        if booking is None:
            current = self.get_booking(booking_id)
            raise BookingNotScheduledError(
                f"booking_id {booking_id} is {current.status}; only Scheduled bookings can be fulfilled"
            )
        logger.info("Booking fulfilled | booking_id=%s | scanned_at=%s", booking_id, scanned_at)
        return booking

"""Domain models for slot allocation and gate check-in."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


BOOKING_STATUS_SCHEDULED = "Scheduled"
BOOKING_STATUS_COMPLETED = "Completed"
BOOKING_STATUS_CANCELLED = "Cancelled"


@dataclass(frozen=True)
class ContainerRecord:
    container_id: str
    arrival_date: str
    arrival_time: str
    arrived: bool
    scheduled: bool = False
    appointment_date: Optional[str] = None
    appointment_hour: Optional[str] = None
    enterprise: Optional[str] = None
    port: Optional[str] = None
    terminal: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


@dataclass(frozen=True)
class SlotAvailability:
    date: str
    hours: tuple[str, ...]


@dataclass(frozen=True)
class BookingRequest:
    container_id: str
    date: str
    hour: str


@dataclass(frozen=True)
class BookingConfirmation:
    booking_id: str
    container_id: str
    date: str
    hour: str
    message: str
    qr_payload: str


@dataclass(frozen=True)
class Booking:
    booking_id: str
    container_id: str
    date: str
    time: str
    status: str
    enterprise: str
    created_at: str
    scanned_at: Optional[str] = None


@dataclass(frozen=True)
class ScanPayload:
    """Decoded credential content; all four fields are required."""

    booking_id: str
    container_id: str
    date: str
    time: str


@dataclass(frozen=True)
class ScanEvent:
    event_id: str
    booking_id: str
    container_id: str
    timestamp: str
    decoded_payload: str
    confirmed: bool


class ScanState(str, Enum):
    IDLE = "IDLE"
    REQUESTING = "REQUESTING"
    ACTIVE = "ACTIVE"
    DETECTED = "DETECTED"
    CONFIRMED = "CONFIRMED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ScanSessionSnapshot:
    state: ScanState
    raw_text: Optional[str]
    payload: Optional[ScanPayload]
    error: Optional[str]
    last_event: Optional[ScanEvent]
    device_held: bool

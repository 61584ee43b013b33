"""HTTP controller layer for containers, availability and bookings."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date as date_type

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from portly.controllers.dependencies import get_availability_store, get_booking_service
from portly.domain.constraints import HOUR_LABEL_PATTERN
from portly.domain.models import Booking, BookingRequest, ContainerRecord
from portly.services.availability_service import AvailabilityStore, SlotAlreadyTakenError
from portly.services.booking_service import (
    BookingAllocationService,
    BookingValidationError,
    ContainerAlreadyScheduledError,
    ContainerNotFoundError,
)
from portly.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["booking"])


class ContainerResponse(BaseModel):
    container_id: str
    arrival_date: str
    arrival_time: str
    arrived: bool
    scheduled: bool
    appointment_date: str | None = None
    appointment_hour: str | None = None
    enterprise: str | None = None
    port: str | None = None
    terminal: str | None = None
    lat: float | None = None
    lng: float | None = None

    @classmethod
    def from_record(cls, record: ContainerRecord) -> "ContainerResponse":
        return cls(**asdict(record))


class AvailabilityResponse(BaseModel):
    available_dates: list[str]
    times_by_date: dict[str, list[str]]


class HoursResponse(BaseModel):
    date: str
    hours: list[str]


class CreateBookingRequest(BaseModel):
    """Input DTO validated before entering service layer."""

    container_id: str = Field(min_length=1)
    date: date_type
    hour: str = Field(pattern=HOUR_LABEL_PATTERN.pattern)


class BookingConfirmationResponse(BaseModel):
    success: bool = True
    booking_id: str
    container_id: str
    date: str
    hour: str
    message: str
    qr_payload: str


class BookingResponse(BaseModel):
    booking_id: str
    container_id: str
    date: str
    time: str
    status: str
    enterprise: str
    created_at: str
    scanned_at: str | None = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(**asdict(booking))


@router.get("/health", include_in_schema=False)
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/containers", response_model=list[ContainerResponse])
async def list_containers(
    service: BookingAllocationService = Depends(get_booking_service),
) -> list[ContainerResponse]:
    return [ContainerResponse.from_record(item) for item in service.list_containers()]


@router.get("/containers/{container_id}", response_model=ContainerResponse)
async def get_container(
    container_id: str,
    service: BookingAllocationService = Depends(get_booking_service),
) -> ContainerResponse:
    try:
        return ContainerResponse.from_record(service.get_container(container_id))
    except ContainerNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    store: AvailabilityStore = Depends(get_availability_store),
) -> AvailabilityResponse:
    snapshot = store.snapshot()
    return AvailabilityResponse(
        available_dates=[slot.date for slot in snapshot],
        times_by_date={slot.date: list(slot.hours) for slot in snapshot},
    )


@router.get("/availability/dates", response_model=list[str])
async def list_available_dates(
    store: AvailabilityStore = Depends(get_availability_store),
) -> list[str]:
    return store.list_dates()


@router.get("/availability/{date}/hours", response_model=HoursResponse)
async def list_available_hours(
    date: str,
    store: AvailabilityStore = Depends(get_availability_store),
) -> HoursResponse:
    return HoursResponse(date=date, hours=store.list_hours(date))


@router.post("/availability/reseed", response_model=AvailabilityResponse)
async def reseed_availability(
    store: AvailabilityStore = Depends(get_availability_store),
) -> AvailabilityResponse:
    store.reseed()
    return await get_availability(store)


@router.post(
    "/bookings",
    response_model=BookingConfirmationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    service: BookingAllocationService = Depends(get_booking_service),
) -> BookingConfirmationResponse:
    """Consume the requested slot; a lost race returns 409 and is never retried here."""
    try:
        confirmation = service.create_booking(
            BookingRequest(
                container_id=payload.container_id,
                date=payload.date.isoformat(),
                hour=payload.hour,
            )
        )
        return BookingConfirmationResponse(
            booking_id=confirmation.booking_id,
            container_id=confirmation.container_id,
            date=confirmation.date,
            hour=confirmation.hour,
            message=confirmation.message,
            qr_payload=confirmation.qr_payload,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ContainerNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (SlotAlreadyTakenError, ContainerAlreadyScheduledError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    service: BookingAllocationService = Depends(get_booking_service),
) -> list[BookingResponse]:
    return [BookingResponse.from_booking(item) for item in service.list_bookings()]


@router.get("/bookings/upcoming", response_model=list[BookingResponse])
async def list_upcoming_bookings(
    service: BookingAllocationService = Depends(get_booking_service),
) -> list[BookingResponse]:
    return [BookingResponse.from_booking(item) for item in service.list_upcoming_bookings()]


@router.get("/bookings/history", response_model=list[BookingResponse])
async def list_booking_history(
    service: BookingAllocationService = Depends(get_booking_service),
) -> list[BookingResponse]:
    return [BookingResponse.from_booking(item) for item in service.list_booking_history()]

"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from portly.services.availability_service import AvailabilityStore
from portly.services.booking_service import BookingAllocationService
from portly.services.capture_device import HandheldCaptureDevice
from portly.services.scan_log_service import ScanEventLog
from portly.services.scan_session_service import ScanSessionController


def _require_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_booking_service(request: Request) -> BookingAllocationService:
    return _require_state(request, "booking_service", "Booking service")


def get_availability_store(request: Request) -> AvailabilityStore:
    return _require_state(request, "availability_store", "Availability store")


def get_scan_log(request: Request) -> ScanEventLog:
    return _require_state(request, "scan_log", "Scan event log")


def get_scan_session(request: Request) -> ScanSessionController:
    return _require_state(request, "scan_session", "Scan session controller")


def get_capture_device(request: Request) -> HandheldCaptureDevice:
    return _require_state(request, "capture_device", "Capture device")

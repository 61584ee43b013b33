"""HTTP controller layer for the gate scan session and scan history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from portly.controllers.dependencies import get_capture_device, get_scan_log, get_scan_session
from portly.domain.models import ScanEvent, ScanSessionSnapshot, ScanState
from portly.services.booking_service import BookingNotFoundError, BookingNotScheduledError
from portly.services.capture_device import HandheldCaptureDevice
from portly.services.scan_log_service import ScanEventLog
from portly.services.scan_session_service import (
    ScanSessionController,
    ScanStateError,
    ScanValidationError,
)
from portly.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["scan"])


class ScanPayloadResponse(BaseModel):
    booking_id: str
    container_id: str
    date: str
    time: str


class ScanEventResponse(BaseModel):
    event_id: str
    booking_id: str
    container_id: str
    timestamp: str
    decoded_payload: str
    confirmed: bool

    @classmethod
    def from_event(cls, event: ScanEvent) -> "ScanEventResponse":
        return cls(
            event_id=event.event_id,
            booking_id=event.booking_id,
            container_id=event.container_id,
            timestamp=event.timestamp,
            decoded_payload=event.decoded_payload,
            confirmed=event.confirmed,
        )


class ScanSessionResponse(BaseModel):
    state: ScanState
    raw_text: str | None = None
    payload: ScanPayloadResponse | None = None
    payload_valid: bool = False
    error: str | None = None
    last_event: ScanEventResponse | None = None
    device_held: bool = False

    @classmethod
    def from_snapshot(cls, snapshot: ScanSessionSnapshot) -> "ScanSessionResponse":
        payload = None
        if snapshot.payload is not None:
            payload = ScanPayloadResponse(
                booking_id=snapshot.payload.booking_id,
                container_id=snapshot.payload.container_id,
                date=snapshot.payload.date,
                time=snapshot.payload.time,
            )
        return cls(
            state=snapshot.state,
            raw_text=snapshot.raw_text,
            payload=payload,
            payload_valid=payload is not None,
            error=snapshot.error,
            last_event=(
                ScanEventResponse.from_event(snapshot.last_event)
                if snapshot.last_event is not None
                else None
            ),
            device_held=snapshot.device_held,
        )


class DecodeRequest(BaseModel):
    raw_text: str = Field(min_length=1)


@router.get("/scan/session", response_model=ScanSessionResponse)
async def get_scan_session_state(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanSessionResponse:
    return ScanSessionResponse.from_snapshot(session.snapshot())


@router.post("/scan/session/start", response_model=ScanSessionResponse)
async def start_scan_session(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanSessionResponse:
    """Acquire the capture device; device faults come back as state ERROR."""
    return ScanSessionResponse.from_snapshot(session.start())


@router.post("/scan/session/decode", response_model=ScanSessionResponse)
async def submit_decoded_text(
    payload: DecodeRequest,
    session: ScanSessionController = Depends(get_scan_session),
    device: HandheldCaptureDevice = Depends(get_capture_device),
) -> ScanSessionResponse:
    if not device.submit_decoded(payload.raw_text):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No active capture; start the scan session first",
        )
    return ScanSessionResponse.from_snapshot(session.snapshot())


@router.post(
    "/scan/session/confirm",
    response_model=ScanEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_scan(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanEventResponse:
    try:
        return ScanEventResponse.from_event(session.confirm())
    except ScanValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (ScanStateError, BookingNotScheduledError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scan confirmation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm scan",
        ) from exc


@router.post("/scan/session/rescan", response_model=ScanSessionResponse)
async def rescan(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanSessionResponse:
    """Scan again after a detection, or scan another after a confirmation."""
    try:
        if session.state is ScanState.CONFIRMED:
            snapshot = session.scan_another()
        else:
            snapshot = session.scan_again()
        return ScanSessionResponse.from_snapshot(snapshot)
    except ScanStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.post("/scan/session/stop", response_model=ScanSessionResponse)
async def stop_scan_session(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanSessionResponse:
    return ScanSessionResponse.from_snapshot(session.stop())


@router.delete("/scan/session", response_model=ScanSessionResponse)
async def teardown_scan_session(
    session: ScanSessionController = Depends(get_scan_session),
) -> ScanSessionResponse:
    return ScanSessionResponse.from_snapshot(session.teardown())


@router.get("/scans", response_model=list[ScanEventResponse])
async def list_scan_events(
    limit: int | None = Query(default=None, ge=1, le=500),
    scan_log: ScanEventLog = Depends(get_scan_log),
) -> list[ScanEventResponse]:
    events = scan_log.list_events() if limit is None else scan_log.list_recent(limit)
    return [ScanEventResponse.from_event(event) for event in events]

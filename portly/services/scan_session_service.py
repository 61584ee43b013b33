"""Gate check-in scan session: capture device lifecycle as a finite-state machine.

States and the calls that move between them::

    IDLE/ERROR/CONFIRMED/DETECTED --start()--> REQUESTING
    REQUESTING --device acquired--> ACTIVE
    REQUESTING --device fault--> ERROR
    ACTIVE --decoded text--> DETECTED          (device released first)
    DETECTED --confirm()--> CONFIRMED          (valid payload only)
    DETECTED --scan_again()--> REQUESTING
    CONFIRMED --scan_another()--> REQUESTING
    ACTIVE --stop()--> IDLE
    any --teardown()--> IDLE                   (device released if held)

The device claim is registered on an ``ExitStack``; every release path
closes that stack, so the device is stopped exactly once per acquisition.
"""

from __future__ import annotations

from contextlib import ExitStack
from datetime import datetime, timezone
from functools import partial
from threading import Lock, RLock
from typing import Callable, Optional

from portly.domain.credential import parse_scan_payload
from portly.domain.models import (
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_SCHEDULED,
    ScanEvent,
    ScanPayload,
    ScanSessionSnapshot,
    ScanState,
)
from portly.services.booking_service import BookingAllocationService
from portly.services.capture_device import (
    CaptureConstraints,
    CaptureDeviceProvider,
    DeviceBusyError,
    DeviceNotFoundError,
    DevicePermissionDeniedError,
)
from portly.services.scan_log_service import ScanEventLog
from portly.utils.logger import get_logger, log_transition


logger = get_logger(__name__)

PERMISSION_DENIED_MESSAGE = "Camera permission denied. Please allow camera access."
DEVICE_UNAVAILABLE_MESSAGE = "No camera found or camera is in use."


class ScanSessionError(Exception):
    """Base exception for scan session failures."""


class ScanValidationError(ScanSessionError):
    """Raised when the detected payload cannot be confirmed."""


class ScanStateError(ScanSessionError):
    """Raised when an operation is not allowed in the current state."""


def describe_device_fault(error: Exception) -> str:
    """Map a device-layer fault to the operator-facing reason."""
    if isinstance(error, (DevicePermissionDeniedError, PermissionError)):
        return PERMISSION_DENIED_MESSAGE
    if isinstance(error, (DeviceNotFoundError, DeviceBusyError)):
        return DEVICE_UNAVAILABLE_MESSAGE
    detail = str(error)
    if "Permission" in detail or "NotAllowedError" in detail:
        return PERMISSION_DENIED_MESSAGE
    if "NotFoundError" in detail or "NotReadableError" in detail:
        return DEVICE_UNAVAILABLE_MESSAGE
    if detail:
        return f"Failed to start camera: {detail}"
    return "Failed to start camera. Please try again."


class ScanSessionController:
    """Owns one capture device claim and the authoritative session state."""

    _STARTABLE = frozenset(
        {ScanState.IDLE, ScanState.ERROR, ScanState.DETECTED, ScanState.CONFIRMED}
    )

    def __init__(
        self,
        device: CaptureDeviceProvider,
        scan_log: ScanEventLog,
        booking_service: Optional[BookingAllocationService] = None,
        constraints: Optional[CaptureConstraints] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._device = device
        self._scan_log = scan_log
        self._booking_service = booking_service
        self._constraints = constraints or CaptureConstraints()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._state_lock = RLock()
        self._start_guard = Lock()
        self._state = ScanState.IDLE
        self._generation = 0
        self._claim: Optional[ExitStack] = None
        self._pending: Optional[tuple[str, object]] = None
        self._raw_text: Optional[str] = None
        self._payload: Optional[ScanPayload] = None
        self._error: Optional[str] = None
        self._last_event: Optional[ScanEvent] = None

    def __enter__(self) -> "ScanSessionController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    @property
    def state(self) -> ScanState:
        with self._state_lock:
            return self._state

    def snapshot(self) -> ScanSessionSnapshot:
        with self._state_lock:
            return ScanSessionSnapshot(
                state=self._state,
                raw_text=self._raw_text,
                payload=self._payload,
                error=self._error,
                last_event=self._last_event,
                device_held=self._claim is not None,
            )

    def _set_state(self, state: ScanState, **context: object) -> None:
        previous = self._state
        self._state = state
        log_transition(logger, previous.value, state.value, **context)

    def _stop_device(self, handle: int) -> None:
        try:
            self._device.stop(handle)
        except Exception:
            logger.exception("Capture device stop failed | handle=%s", handle)

    def _release_device(self) -> None:
        claim, self._claim = self._claim, None
        if claim is not None:
            claim.close()

    def _clear_scan(self) -> None:
        self._raw_text = None
        self._payload = None
        self._error = None
        self._pending = None

    def start(self) -> ScanSessionSnapshot:
        """Acquire the capture device; a call while another start is in flight is dropped."""
        if not self._start_guard.acquire(blocking=False):
            logger.info("Start ignored | reason=acquisition_in_flight")
            return self.snapshot()
        try:
            with self._state_lock:
                if self._state not in self._STARTABLE:
                    logger.info("Start ignored | state=%s", self._state.value)
                    return self.snapshot()
                self._release_device()
                self._clear_scan()
                self._generation += 1
                generation = self._generation
                self._set_state(ScanState.REQUESTING, generation=generation)

            try:
                handle = self._device.start(
                    self._constraints,
                    partial(self._handle_detect, generation),
                    partial(self._handle_device_error, generation),
                )
            except Exception as exc:
                reason = describe_device_fault(exc)
                with self._state_lock:
                    if generation == self._generation:
                        self._error = reason
                        self._set_state(ScanState.ERROR, reason=reason)
                logger.warning("Capture device acquisition failed | reason=%s", reason)
                return self.snapshot()

            claim = ExitStack()
            claim.callback(self._stop_device, handle)
            with self._state_lock:
                if generation != self._generation:
                    # Torn down while the device was being acquired.
                    claim.close()
                    return self.snapshot()
                self._claim = claim
                self._set_state(ScanState.ACTIVE, handle=handle)
                pending, self._pending = self._pending, None
            if pending is not None:
                kind, value = pending
                if kind == "detect":
                    self._handle_detect(generation, str(value))
                else:
                    self._handle_device_error(generation, value)  # type: ignore[arg-type]
            return self.snapshot()
        finally:
            self._start_guard.release()

    def _handle_detect(self, generation: int, raw_text: str) -> None:
        with self._state_lock:
            if generation != self._generation:
                return
            if self._state is ScanState.REQUESTING:
                if self._pending is None:
                    self._pending = ("detect", raw_text)
                return
            if self._state is not ScanState.ACTIVE:
                return
            self._release_device()
            self._raw_text = raw_text
            self._payload = parse_scan_payload(raw_text)
            self._set_state(ScanState.DETECTED, valid_payload=self._payload is not None)

    def _handle_device_error(self, generation: int, error: Exception) -> None:
        with self._state_lock:
            if generation != self._generation:
                return
            if self._state is ScanState.REQUESTING:
                if self._pending is None:
                    self._pending = ("error", error)
                return
            if self._state is not ScanState.ACTIVE:
                return
            self._release_device()
            self._error = describe_device_fault(error)
            self._set_state(ScanState.ERROR, reason=self._error)

    def confirm(self, timestamp: Optional[datetime] = None) -> ScanEvent:
        """Record the detected credential as a confirmed gate check-in."""
        with self._state_lock:
            if self._state is not ScanState.DETECTED:
                raise ScanStateError(f"Cannot confirm a scan in state {self._state.value}")
            payload = self._payload
            raw_text = self._raw_text
            if payload is None or raw_text is None:
                raise ScanValidationError(
                    "Scanned code is not a valid booking credential and cannot be confirmed"
                )
            if self._booking_service is not None:
                booking = self._booking_service.get_booking(payload.booking_id)
                if booking.container_id != payload.container_id:
                    raise ScanValidationError(
                        f"Credential container {payload.container_id} does not match "
                        f"booking {booking.booking_id}"
                    )
                if booking.status == BOOKING_STATUS_CANCELLED:
                    raise ScanValidationError(
                        f"Booking {booking.booking_id} was cancelled and cannot be checked in"
                    )
                if booking.status != BOOKING_STATUS_SCHEDULED:
                    raise ScanValidationError(
                        f"Booking {booking.booking_id} is already {booking.status}"
                        f" (scanned at {booking.scanned_at})"
                    )

            event = self._scan_log.append(
                booking_id=payload.booking_id,
                container_id=payload.container_id,
                decoded_payload=raw_text,
                confirmed=True,
                timestamp=timestamp or self._clock(),
            )
            if self._booking_service is not None:
                self._booking_service.mark_booking_fulfilled(
                    payload.booking_id,
                    scanned_at=event.timestamp,
                )
            self._last_event = event
            self._set_state(ScanState.CONFIRMED, event_id=event.event_id)
            return event

    def scan_again(self) -> ScanSessionSnapshot:
        """Discard the detected payload and reacquire the device."""
        with self._state_lock:
            if self._state is not ScanState.DETECTED:
                raise ScanStateError(f"Cannot scan again from state {self._state.value}")
        return self.start()

    def scan_another(self) -> ScanSessionSnapshot:
        with self._state_lock:
            if self._state is not ScanState.CONFIRMED:
                raise ScanStateError(f"Cannot scan another from state {self._state.value}")
        return self.start()

    def stop(self) -> ScanSessionSnapshot:
        """Stop an active capture without tearing the session down."""
        with self._state_lock:
            if self._state is ScanState.ACTIVE:
                self._generation += 1
                self._release_device()
                self._set_state(ScanState.IDLE, reason="stopped")
            return self.snapshot()

    def teardown(self) -> ScanSessionSnapshot:
        """Release the device from any state and return to IDLE.

        Bumping the generation cancels an acquisition still in flight: the
        handle it eventually returns is stopped immediately.
        """
        with self._state_lock:
            self._generation += 1
            self._release_device()
            self._clear_scan()
            self._set_state(ScanState.IDLE, reason="teardown")
            return self.snapshot()

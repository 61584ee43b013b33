"""Capture device contract and the in-process handheld device.

A provider exposes three calls: ``start(constraints, on_detect, on_error)``
returning a handle, ``stop(handle)`` and ``get_state(handle)``. Optical
decoding happens on the provider's side; callers only ever receive decoded
text through ``on_detect``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Optional, Protocol

from portly.utils.logger import get_logger


logger = get_logger(__name__)


DetectCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]


class CaptureDeviceError(Exception):
    """Base exception for capture device faults."""


class DevicePermissionDeniedError(CaptureDeviceError):
    """Raised when the operator or platform refuses camera access."""


class DeviceNotFoundError(CaptureDeviceError):
    """Raised when no capture device is attached."""


class DeviceBusyError(CaptureDeviceError):
    """Raised when the device is already claimed."""


class CaptureDeviceState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    SCANNING = "SCANNING"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class CaptureConstraints:
    facing_mode: str = "environment"
    fps: int = 10
    box_size: int = 200
    aspect_ratio: float = 1.333333


class CaptureDeviceProvider(Protocol):
    def start(
        self,
        constraints: CaptureConstraints,
        on_detect: DetectCallback,
        on_error: ErrorCallback,
    ) -> int:
        ...

    def stop(self, handle: int) -> None:
        ...

    def get_state(self, handle: int) -> CaptureDeviceState:
        ...


@dataclass
class _Claim:
    handle: int
    constraints: CaptureConstraints
    on_detect: DetectCallback
    on_error: ErrorCallback


class HandheldCaptureDevice:
    """Gate handheld that decodes credentials itself and forwards the text.

    The device allows one claim per process. A second ``start`` while a claim
    is held raises ``DeviceBusyError``.
    """

    def __init__(self, available: bool = True, permission_granted: bool = True) -> None:
        self.available = available
        self.permission_granted = permission_granted
        self._lock = Lock()
        self._claim: Optional[_Claim] = None
        self._next_handle = 0
        self._stopped_handles: set[int] = set()
        self.acquisitions = 0
        self.releases = 0

    @property
    def claimed(self) -> bool:
        with self._lock:
            return self._claim is not None

    def start(
        self,
        constraints: CaptureConstraints,
        on_detect: DetectCallback,
        on_error: ErrorCallback,
    ) -> int:
        with self._lock:
            if not self.permission_granted:
                raise DevicePermissionDeniedError("NotAllowedError: Permission denied")
            if not self.available:
                raise DeviceNotFoundError("NotFoundError: Requested device not found")
            if self._claim is not None:
                raise DeviceBusyError("NotReadableError: Device is already in use")
            self._next_handle += 1
            self._claim = _Claim(
                handle=self._next_handle,
                constraints=constraints,
                on_detect=on_detect,
                on_error=on_error,
            )
            self.acquisitions += 1
            handle = self._next_handle
        logger.info("Capture device claimed | handle=%s | fps=%s", handle, constraints.fps)
        return handle

    def stop(self, handle: int) -> None:
        with self._lock:
            if self._claim is None or self._claim.handle != handle:
                return
            self._claim = None
            self._stopped_handles.add(handle)
            self.releases += 1
        logger.info("Capture device released | handle=%s", handle)

    def get_state(self, handle: int) -> CaptureDeviceState:
        with self._lock:
            if self._claim is not None and self._claim.handle == handle:
                return CaptureDeviceState.SCANNING
            if handle in self._stopped_handles:
                return CaptureDeviceState.STOPPED
            return CaptureDeviceState.NOT_STARTED

    def submit_decoded(self, raw_text: str) -> bool:
        """Deliver decoded text to the active claim; False when nothing is scanning."""
        with self._lock:
            claim = self._claim
        if claim is None:
            logger.info("Decoded text dropped | reason=no_active_claim")
            return False
        claim.on_detect(raw_text)
        return True

    def report_fault(self, error: Exception) -> bool:
        with self._lock:
            claim = self._claim
        if claim is None:
            return False
        claim.on_error(error)
        return True

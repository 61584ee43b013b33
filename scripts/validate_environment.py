#!/usr/bin/env python3
"""Validate local Portly environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from portly.domain.models import BookingRequest, ScanState
from portly.repository.data_repository import (
    DEMO_BOOKINGS,
    DEMO_CONTAINERS,
    DEMO_SCAN_EVENTS,
    DataRepository,
)
from portly.services.availability_service import AvailabilityStore
from portly.services.booking_service import BookingAllocationService
from portly.services.calendar_service import FullCapacityHourPolicy
from portly.services.capture_device import HandheldCaptureDevice
from portly.services.scan_log_service import ScanEventLog
from portly.services.scan_session_service import ScanSessionController
from portly.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="portly-env-")

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_names = ["fastapi", "uvicorn", "pydantic", "numpy", "pandas", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_names:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        settings = replace(get_settings(), database_path=Path(temp_dir) / "portly_validation.db")
        repository = DataRepository(settings)

        # CHECK 3: Database initialization and demo seed
        try:
            repository.initialize_database()
            repository.seed_demo_data()
            containers = len(repository.list_containers())
            bookings = repository.count_bookings()
            scans = repository.count_scan_events()
            if (
                containers != len(DEMO_CONTAINERS)
                or bookings != len(DEMO_BOOKINGS)
                or scans != len(DEMO_SCAN_EVENTS)
            ):
                raise RuntimeError(
                    f"unexpected seed counts containers={containers} bookings={bookings} scans={scans}"
                )
            ok, line = _print_result(
                "Database seed",
                True,
                f": {containers} containers, {bookings} bookings, {scans} scans",
            )
        except Exception as exc:
            ok, line = _print_result("Database seed", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Allocation round trip
        store = AvailabilityStore(settings=settings, policy=FullCapacityHourPolicy(), today=date.today())
        booking_service = BookingAllocationService(
            repository=repository,
            availability_store=store,
            settings=settings,
        )
        confirmation = None
        try:
            target_date = store.list_dates()[0]
            target_hour = store.list_hours(target_date)[0]
            confirmation = booking_service.create_booking(
                BookingRequest(container_id="CNTR-002", date=target_date, hour=target_hour)
            )
            ok, line = _print_result("Booking allocation", True, f": {confirmation.booking_id}")
        except Exception as exc:
            ok, line = _print_result("Booking allocation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Gate scan lifecycle
        device = HandheldCaptureDevice()
        try:
            if confirmation is None:
                raise RuntimeError("no booking to scan")
            with ScanSessionController(
                device=device,
                scan_log=ScanEventLog(repository=repository, settings=settings),
                booking_service=booking_service,
            ) as session:
                session.start()
                device.submit_decoded(confirmation.qr_payload)
                event = session.confirm()
                if session.state is not ScanState.CONFIRMED:
                    raise RuntimeError(f"unexpected state {session.state.value}")
            if device.acquisitions != device.releases:
                raise RuntimeError("capture device was not released")
            ok, line = _print_result("Gate scan lifecycle", True, f": {event.event_id}")
        except Exception as exc:
            ok, line = _print_result("Gate scan lifecycle", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Portly Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

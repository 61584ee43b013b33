"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from portly.controllers.booking_controller import router as booking_router
from portly.controllers.scan_controller import router as scan_router
from portly.repository.data_repository import DataRepository
from portly.services.availability_service import AvailabilityStore
from portly.services.booking_service import BookingAllocationService
from portly.services.capture_device import HandheldCaptureDevice
from portly.services.scan_log_service import ScanEventLog
from portly.services.scan_session_service import ScanSessionController
from portly.utils.config import Settings, get_settings
from portly.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    No global singletons; every dependency is traceable from this function.
    """
    settings = settings or get_settings()

    # --- Repository (single SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Allocation subsystem (owns availability and the booking counter) ---
    availability_store = AvailabilityStore(settings=settings)
    booking_service = BookingAllocationService(
        repository=repository,
        availability_store=availability_store,
        settings=settings,
    )

    # --- Gate check-in subsystem (owns the capture device claim) ---
    capture_device = HandheldCaptureDevice()
    scan_log = ScanEventLog(repository=repository, settings=settings)
    scan_session = ScanSessionController(
        device=capture_device,
        scan_log=scan_log,
        booking_service=booking_service,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        try:
            yield
        finally:
            _shutdown(app)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(booking_router)
    app.include_router(scan_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.availability_store = availability_store
    app.state.booking_service = booking_service
    app.state.capture_device = capture_device
    app.state.scan_log = scan_log
    app.state.scan_session = scan_session

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before seeding.
      2. Demo bookings must be seeded before the first booking id is issued,
         so the counter continues after them.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo containers, bookings and scans")
        repository.seed_demo_data()

    logger.info("Startup complete; system ready")


def _shutdown(app: FastAPI) -> None:
    """Release the capture device no matter what state the gate session is in."""
    scan_session: ScanSessionController = app.state.scan_session
    scan_session.teardown()
    logger.info("Shutdown complete; capture device released")


# Module-level app object for uvicorn
app = create_app()

"""Append-only log of gate scan events."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from portly.domain.models import ScanEvent
from portly.repository.data_repository import DataRepository
from portly.utils.config import Settings, get_settings
from portly.utils.logger import get_logger


logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class ScanEventLog:
    """Owns scan history; events are never updated or deleted."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._lock = Lock()

    def append(
        self,
        booking_id: str,
        container_id: str,
        decoded_payload: str,
        confirmed: bool,
        timestamp: Optional[datetime] = None,
    ) -> ScanEvent:
        """Append one event; its timestamp never precedes the latest logged one."""
        if not booking_id or not container_id:
            raise ValueError("booking_id and container_id are required for a scan event")
        with self._lock:
            moment = (timestamp or datetime.now(timezone.utc)).replace(microsecond=0)
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=timezone.utc)
            latest = self._repository.get_latest_scan_timestamp()
            if latest is not None:
                latest_moment = parse_timestamp(latest)
                if moment < latest_moment:
                    logger.warning(
                        "Scan clock behind log | requested=%s | latest=%s",
                        format_timestamp(moment),
                        latest,
                    )
                    moment = latest_moment
            event = self._repository.append_scan_event(
                booking_id=booking_id,
                container_id=container_id,
                timestamp=format_timestamp(moment),
                decoded_payload=decoded_payload,
                confirmed=confirmed,
            )
        logger.info(
            "Scan event appended | event_id=%s | booking_id=%s | confirmed=%s",
            event.event_id,
            event.booking_id,
            event.confirmed,
        )
        return event

    def list_events(self) -> list[ScanEvent]:
        """Return every event, most recent first."""
        return self._repository.list_scan_events()

    def list_recent(self, limit: Optional[int] = None) -> list[ScanEvent]:
        resolved = limit if limit is not None else self._settings.scan_recent_limit
        return self._repository.list_scan_events(limit=resolved)

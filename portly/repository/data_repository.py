"""Repository layer responsible for all database access.

This is the system's remote data source: containers, bookings and the scan
event history live here behind plain get/list/create/update methods so the
allocation and gate services stay storage-agnostic.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional

from portly.domain.models import (
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_SCHEDULED,
    Booking,
    ContainerRecord,
    ScanEvent,
)
from portly.utils.config import Settings, get_settings
from portly.utils.logger import get_logger


logger = get_logger(__name__)


DEMO_CONTAINERS: tuple[tuple[Any, ...], ...] = (
    ("CNTR-001", "2026-02-05", "08:30", 1, 0, None, None, "Global Logistics Inc", "Port of Rotterdam", "Terminal A", 51.9496, 4.1453),
    ("CNTR-002", "2026-02-05", "09:15", 0, 0, None, None, "Pacific Shipping Co", "Port of Shanghai", "Terminal C", 31.3655, 121.6128),
    ("CNTR-003", "2026-02-06", "10:00", 1, 0, None, None, "Continental Freight", "Port of Singapore", "Terminal B", 1.2644, 103.8198),
    ("CNTR-004", "2026-02-06", "11:45", 0, 0, None, None, "Maritime Solutions", "Port of Los Angeles", "Terminal D", 33.7361, -118.2626),
    ("CNTR-005", "2026-02-07", "07:00", 1, 0, None, None, "Express Cargo Ltd", "Port of Hamburg", "Terminal A", 53.5327, 9.9332),
    ("CNTR-006", "2026-02-07", "14:30", 0, 0, None, None, "Global Logistics Inc", "Port of Busan", "Terminal E", 35.0796, 129.0558),
    ("CNTR-007", "2026-02-08", "16:00", 1, 0, None, None, "Pacific Shipping Co", "Port of Antwerp", "Terminal B", 51.2944, 4.3045),
    ("CNTR-008", "2026-02-09", "13:15", 1, 0, None, None, "Continental Freight", "Port of Dubai", "Terminal C", 25.2697, 55.3095),
    ("CNTR-009", "2026-02-09", "06:45", 1, 1, "2026-02-12", "09:00", "Express Cargo Ltd", "Port of Tokyo", "Terminal A", 35.6520, 139.7963),
    ("CNTR-010", "2026-02-10", "11:00", 0, 0, None, None, "Maritime Solutions", "Port of Santos", "Terminal D", -23.9590, -46.3340),
    ("CNTR-011", "2026-02-10", "15:30", 1, 0, None, None, "Global Logistics Inc", "Port of Algeciras", "Terminal B", 36.1277, -5.4427),
    ("CNTR-012", "2026-02-11", "08:00", 0, 0, None, None, "Pacific Shipping Co", "Port of Colombo", "Terminal C", 6.9435, 79.8482),
)

DEMO_BOOKINGS: tuple[tuple[Any, ...], ...] = (
    ("BK-10001", "CNTR-009", "2026-02-12", "09:00", "Scheduled", "Express Cargo Ltd", "2026-02-07T10:30:00Z", None),
    ("BK-10002", "CNTR-001", "2026-02-11", "10:30", "Completed", "Global Logistics Inc", "2026-02-05T14:00:00Z", "2026-02-11T10:25:00Z"),
    ("BK-10003", "CNTR-003", "2026-02-10", "14:00", "Completed", "Continental Freight", "2026-02-06T09:15:00Z", "2026-02-10T13:55:00Z"),
    ("BK-10004", "CNTR-007", "2026-02-13", "11:00", "Scheduled", "Pacific Shipping Co", "2026-02-08T16:45:00Z", None),
    ("BK-10005", "CNTR-005", "2026-02-09", "08:00", "Cancelled", "Express Cargo Ltd", "2026-02-07T08:00:00Z", None),
)

DEMO_SCAN_EVENTS: tuple[tuple[Any, ...], ...] = (
    ("SC-001", "BK-10002", "CNTR-001", "2026-02-11T10:25:00Z", '{"bookingId":"BK-10002","containerId":"CNTR-001","date":"2026-02-11","time":"10:30"}', 1),
    ("SC-002", "BK-10003", "CNTR-003", "2026-02-10T13:55:00Z", '{"bookingId":"BK-10003","containerId":"CNTR-003","date":"2026-02-10","time":"14:00"}', 1),
)

_CONTAINER_COLUMNS = """
    id, arrival_date, arrival_time, arrived, scheduled,
    appointment_date, appointment_hour, enterprise, port, terminal, lat, lng
"""

_BOOKING_COLUMNS = """
    booking_id, container_id, date, time, status, enterprise, created_at, scanned_at
"""


def _row_to_container(row: sqlite3.Row) -> ContainerRecord:
    return ContainerRecord(
        container_id=str(row["id"]),
        arrival_date=str(row["arrival_date"]),
        arrival_time=str(row["arrival_time"]),
        arrived=bool(row["arrived"]),
        scheduled=bool(row["scheduled"]),
        appointment_date=row["appointment_date"],
        appointment_hour=row["appointment_hour"],
        enterprise=row["enterprise"],
        port=row["port"],
        terminal=row["terminal"],
        lat=row["lat"],
        lng=row["lng"],
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=str(row["booking_id"]),
        container_id=str(row["container_id"]),
        date=str(row["date"]),
        time=str(row["time"]),
        status=str(row["status"]),
        enterprise=str(row["enterprise"]),
        created_at=str(row["created_at"]),
        scanned_at=row["scanned_at"],
    )


def _row_to_scan_event(row: sqlite3.Row) -> ScanEvent:
    return ScanEvent(
        event_id=str(row["event_id"]),
        booking_id=str(row["booking_id"]),
        container_id=str(row["container_id"]),
        timestamp=str(row["timestamp"]),
        decoded_payload=str(row["decoded_payload"]),
        confirmed=bool(row["confirmed"]),
    )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Containers (
                        id TEXT PRIMARY KEY,
                        arrival_date TEXT NOT NULL,
                        arrival_time TEXT NOT NULL,
                        arrived INTEGER NOT NULL DEFAULT 0 CHECK (arrived IN (0,1)),
                        scheduled INTEGER NOT NULL DEFAULT 0 CHECK (scheduled IN (0,1)),
                        appointment_date TEXT,
                        appointment_hour TEXT,
                        enterprise TEXT,
                        port TEXT,
                        terminal TEXT,
                        lat REAL,
                        lng REAL,
                        CHECK (
                            scheduled = 0
                            OR (appointment_date IS NOT NULL AND appointment_hour IS NOT NULL)
                        )
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        booking_id TEXT PRIMARY KEY,
                        container_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        time TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'Scheduled'
                            CHECK (status IN ('Scheduled', 'Completed', 'Cancelled')),
                        enterprise TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL,
                        scanned_at TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ScanEvents (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id TEXT UNIQUE,
                        booking_id TEXT NOT NULL,
                        container_id TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        decoded_payload TEXT NOT NULL,
                        confirmed INTEGER NOT NULL CHECK (confirmed IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_status_date
                    ON Bookings(status, date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_scan_events_timestamp
                    ON ScanEvents(timestamp);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed the demo containers, bookings and scans only when tables are empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Containers;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                cursor.executemany(
                    f"INSERT INTO Containers ({_CONTAINER_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                    DEMO_CONTAINERS,
                )
                cursor.executemany(
                    f"INSERT INTO Bookings ({_BOOKING_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
                    DEMO_BOOKINGS,
                )
                cursor.executemany(
                    """
                    INSERT INTO ScanEvents (
                        event_id, booking_id, container_id, timestamp, decoded_payload, confirmed
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    DEMO_SCAN_EVENTS,
                )
                conn.commit()
            logger.info(
                "Demo seed completed | containers=%s | bookings=%s | scan_events=%s",
                len(DEMO_CONTAINERS),
                len(DEMO_BOOKINGS),
                len(DEMO_SCAN_EVENTS),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # --- Containers ---

    def list_containers(self) -> list[ContainerRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_CONTAINER_COLUMNS} FROM Containers "
                "ORDER BY arrival_date ASC, arrival_time ASC, id ASC;"
            )
            return [_row_to_container(row) for row in cursor.fetchall()]

    def get_container(self, container_id: str) -> Optional[ContainerRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_CONTAINER_COLUMNS} FROM Containers WHERE id = ?;",
                (container_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_container(row)

    def create_container(self, container: ContainerRecord) -> ContainerRecord:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO Containers ({_CONTAINER_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    container.container_id,
                    container.arrival_date,
                    container.arrival_time,
                    int(container.arrived),
                    int(container.scheduled),
                    container.appointment_date,
                    container.appointment_hour,
                    container.enterprise,
                    container.port,
                    container.terminal,
                    container.lat,
                    container.lng,
                ),
            )
            conn.commit()
        return container

    def delete_container(self, container_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM Containers WHERE id = ?;", (container_id,))
            conn.commit()
            return cursor.rowcount > 0

    # --- Bookings ---

    def count_bookings(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            return int(cursor.fetchone()["count"])

    def list_booking_ids(self) -> list[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT booking_id FROM Bookings;")
            return [str(row["booking_id"]) for row in cursor.fetchall()]

    def record_booking(
        self,
        booking_id: str,
        container_id: str,
        date: str,
        time: str,
        created_at: str,
    ) -> Optional[Booking]:
        """Bind the appointment to the container and insert the booking row atomically.

        Returns None when the container no longer exists. Both writes share
        one transaction; any ``sqlite3.Error`` rolls them back together.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Containers
                    SET scheduled = 1, appointment_date = ?, appointment_hour = ?
                    WHERE id = ?;
                    """,
                    (date, time, container_id),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    return None

                cursor.execute("SELECT enterprise FROM Containers WHERE id = ?;", (container_id,))
                enterprise = cursor.fetchone()["enterprise"] or ""
                cursor.execute(
                    f"INSERT INTO Bookings ({_BOOKING_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, NULL);",
                    (
                        booking_id,
                        container_id,
                        date,
                        time,
                        BOOKING_STATUS_SCHEDULED,
                        enterprise,
                        created_at,
                    ),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Booking write failed | booking_id={booking_id}: {exc}") from exc
        return Booking(
            booking_id=booking_id,
            container_id=container_id,
            date=date,
            time=time,
            status=BOOKING_STATUS_SCHEDULED,
            enterprise=enterprise,
            created_at=created_at,
        )

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE booking_id = ?;",
                (booking_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_booking(row)

    def list_bookings(self) -> list[Booking]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_BOOKING_COLUMNS} FROM Bookings;")
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def complete_booking(self, booking_id: str, scanned_at: str) -> Optional[Booking]:
        """Move a Scheduled booking to Completed and free its container's appointment.

        Returns None when no Scheduled booking has this id; Completed and
        Cancelled rows are never rewritten.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Bookings
                    SET status = ?, scanned_at = ?
                    WHERE booking_id = ? AND status = ?;
                    """,
                    (BOOKING_STATUS_COMPLETED, scanned_at, booking_id, BOOKING_STATUS_SCHEDULED),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    return None
                cursor.execute(
                    """
                    UPDATE Containers
                    SET scheduled = 0, appointment_date = NULL, appointment_hour = NULL
                    WHERE id = (SELECT container_id FROM Bookings WHERE booking_id = ?)
                      AND appointment_date = (SELECT date FROM Bookings WHERE booking_id = ?)
                      AND appointment_hour = (SELECT time FROM Bookings WHERE booking_id = ?);
                    """,
                    (booking_id, booking_id, booking_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Booking completion failed | booking_id={booking_id}: {exc}") from exc
        return self.get_booking(booking_id)

    # --- Scan events (append-only) ---

    def append_scan_event(
        self,
        booking_id: str,
        container_id: str,
        timestamp: str,
        decoded_payload: str,
        confirmed: bool,
    ) -> ScanEvent:
        """Insert one scan event and derive its public id from the row sequence."""
        prefix = self._settings.scan_event_id_prefix
        width = self._settings.scan_event_id_width
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO ScanEvents (
                    booking_id, container_id, timestamp, decoded_payload, confirmed
                )
                VALUES (?, ?, ?, ?, ?);
                """,
                (booking_id, container_id, timestamp, decoded_payload, int(confirmed)),
            )
            sequence = int(cursor.lastrowid)
            event_id = f"{prefix}{sequence:0{width}d}"
            cursor.execute(
                "UPDATE ScanEvents SET event_id = ? WHERE seq = ?;",
                (event_id, sequence),
            )
            conn.commit()
        return ScanEvent(
            event_id=event_id,
            booking_id=booking_id,
            container_id=container_id,
            timestamp=timestamp,
            decoded_payload=decoded_payload,
            confirmed=confirmed,
        )

    def list_scan_events(self, limit: Optional[int] = None) -> list[ScanEvent]:
        """Return scan events newest first by timestamp, newest row first on ties."""
        query = """
            SELECT event_id, booking_id, container_id, timestamp, decoded_payload, confirmed
            FROM ScanEvents
            ORDER BY timestamp DESC, seq DESC
        """
        params: tuple[int, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query + ";", params)
            return [_row_to_scan_event(row) for row in cursor.fetchall()]

    def get_latest_scan_timestamp(self) -> Optional[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT MAX(timestamp) AS latest FROM ScanEvents;")
            row = cursor.fetchone()
            if row is None or row["latest"] is None:
                return None
            return str(row["latest"])

    def count_scan_events(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM ScanEvents;")
            return int(cursor.fetchone()["count"])

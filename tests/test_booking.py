from __future__ import annotations

import json
from dataclasses import replace
from datetime import date
from threading import Barrier, Thread

import pytest

from portly.domain.models import (
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_SCHEDULED,
    BookingRequest,
    ContainerRecord,
)
from portly.repository.data_repository import DataRepository
from portly.services.availability_service import AvailabilityStore, SlotAlreadyTakenError
from portly.services.booking_service import (
    BookingAllocationService,
    BookingIdGenerator,
    BookingNotFoundError,
    BookingNotScheduledError,
    BookingValidationError,
    ContainerAlreadyScheduledError,
    ContainerNotFoundError,
)
from portly.services.calendar_service import FullCapacityHourPolicy
from portly.utils.config import get_settings


MONDAY = date(2026, 10, 19)
SLOT_DATE = "2026-10-20"


def _build_test_settings(tmp_path, filename: str):
    return replace(get_settings(), database_path=tmp_path / filename)


def _build_service(tmp_path, filename: str = "booking.db"):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()
    store = AvailabilityStore(settings=settings, policy=FullCapacityHourPolicy(), today=MONDAY)
    service = BookingAllocationService(
        repository=repository,
        availability_store=store,
        settings=settings,
    )
    return service, repository, store


def test_booking_binds_slot_and_container(tmp_path):
    service, repository, store = _build_service(tmp_path)

    confirmation = service.create_booking(
        BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30")
    )

    assert confirmation.booking_id == "BK-10006"
    assert confirmation.message == f"Appointment scheduled for {SLOT_DATE} at 10:30"
    assert not store.is_open(SLOT_DATE, "10:30")

    container = repository.get_container("CNTR-002")
    assert container.scheduled is True
    assert container.appointment_date == SLOT_DATE
    assert container.appointment_hour == "10:30"

    booking = repository.get_booking("BK-10006")
    assert booking.status == BOOKING_STATUS_SCHEDULED
    assert booking.enterprise == "Pacific Shipping Co"


def test_confirmation_carries_compact_credential_payload(tmp_path):
    service, _, _ = _build_service(tmp_path)

    confirmation = service.create_booking(
        BookingRequest(container_id="CNTR-004", date=SLOT_DATE, hour="08:00")
    )

    assert confirmation.qr_payload == (
        '{"bookingId":"BK-10006","containerId":"CNTR-004","date":"2026-10-20","time":"08:00"}'
    )
    assert json.loads(confirmation.qr_payload)["bookingId"] == confirmation.booking_id
    assert BookingAllocationService.build_credential_payload(confirmation) == confirmation.qr_payload


def test_booking_ids_strictly_increase(tmp_path):
    service, _, _ = _build_service(tmp_path)
    containers = ["CNTR-002", "CNTR-004", "CNTR-006", "CNTR-010"]

    issued = [
        service.create_booking(
            BookingRequest(container_id=container_id, date=SLOT_DATE, hour=hour)
        ).booking_id
        for container_id, hour in zip(containers, ["08:00", "08:30", "09:00", "09:30"])
    ]

    assert issued == ["BK-10006", "BK-10007", "BK-10008", "BK-10009"]
    assert len(set(issued)) == len(issued)


def test_id_generator_skips_past_highest_existing_id():
    generator = BookingIdGenerator(prefix="BK-", base=10000, issued_count=2, highest_issued=10040)
    assert generator.next_id() == "BK-10041"
    assert generator.next_id() == "BK-10042"


def test_unknown_container_consumes_nothing(tmp_path):
    service, _, store = _build_service(tmp_path)

    with pytest.raises(ContainerNotFoundError):
        service.create_booking(BookingRequest(container_id="CNTR-999", date=SLOT_DATE, hour="10:30"))

    assert store.is_open(SLOT_DATE, "10:30")


def test_already_scheduled_container_is_rejected(tmp_path):
    service, _, store = _build_service(tmp_path)

    with pytest.raises(ContainerAlreadyScheduledError):
        service.create_booking(BookingRequest(container_id="CNTR-009", date=SLOT_DATE, hour="10:30"))

    assert store.is_open(SLOT_DATE, "10:30")


def test_second_container_cannot_take_consumed_slot(tmp_path):
    service, repository, _ = _build_service(tmp_path)
    service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30"))

    with pytest.raises(SlotAlreadyTakenError):
        service.create_booking(BookingRequest(container_id="CNTR-004", date=SLOT_DATE, hour="10:30"))

    assert repository.get_container("CNTR-004").scheduled is False
    assert repository.count_bookings() == 6


def test_container_is_booked_at_most_once(tmp_path):
    service, _, store = _build_service(tmp_path)
    service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30"))

    with pytest.raises(ContainerAlreadyScheduledError):
        service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="11:00"))

    assert store.is_open(SLOT_DATE, "11:00")


def test_container_vanishing_after_consume_leaves_slot_consumed(tmp_path, monkeypatch):
    service, repository, store = _build_service(tmp_path)
    original_consume = store.consume

    def _consume_then_remove_container(date_value, hour):
        original_consume(date_value, hour)
        assert repository.delete_container("CNTR-002") is True

    monkeypatch.setattr(store, "consume", _consume_then_remove_container)

    with pytest.raises(ContainerNotFoundError):
        service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30"))

    assert not store.is_open(SLOT_DATE, "10:30")
    assert repository.count_bookings() == 5


@pytest.mark.parametrize(
    "request_",
    [
        BookingRequest(container_id="", date=SLOT_DATE, hour="10:30"),
        BookingRequest(container_id="CNTR-002", date="20-10-2026", hour="10:30"),
        BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="1030"),
    ],
)
def test_malformed_request_is_rejected(tmp_path, request_):
    service, _, _ = _build_service(tmp_path)
    with pytest.raises(BookingValidationError):
        service.create_booking(request_)


def test_booking_listings_split_upcoming_and_history(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30"))

    upcoming = [booking.booking_id for booking in service.list_upcoming_bookings()]
    history = [booking.booking_id for booking in service.list_booking_history()]

    assert upcoming == ["BK-10001", "BK-10004", "BK-10006"]
    assert history == ["BK-10005", "BK-10003", "BK-10002"]
    assert service.list_bookings()[0].booking_id == "BK-10006"


def test_mark_booking_fulfilled(tmp_path):
    service, repository, _ = _build_service(tmp_path)

    booking = service.mark_booking_fulfilled("BK-10001", "2026-02-12T09:05:00Z")

    assert booking.status == BOOKING_STATUS_COMPLETED
    assert booking.scanned_at == "2026-02-12T09:05:00Z"
    with pytest.raises(BookingNotFoundError):
        service.mark_booking_fulfilled("BK-99999", "2026-02-12T09:05:00Z")

    container = repository.get_container("CNTR-009")
    assert container.scheduled is False
    assert container.appointment_date is None
    assert container.appointment_hour is None


def test_fulfilled_container_can_book_a_new_appointment(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.mark_booking_fulfilled("BK-10001", "2026-02-12T09:05:00Z")

    confirmation = service.create_booking(
        BookingRequest(container_id="CNTR-009", date=SLOT_DATE, hour="14:00")
    )

    assert confirmation.booking_id == "BK-10006"
    assert service.get_container("CNTR-009").appointment_hour == "14:00"


@pytest.mark.parametrize("booking_id", ["BK-10002", "BK-10005"])
def test_only_scheduled_bookings_can_be_fulfilled(tmp_path, booking_id):
    service, repository, _ = _build_service(tmp_path)
    before = repository.get_booking(booking_id)

    with pytest.raises(BookingNotScheduledError):
        service.mark_booking_fulfilled(booking_id, "2026-10-19T12:00:00Z")

    assert repository.get_booking(booking_id) == before


def test_failed_booking_write_leaves_container_and_slot_untouched(tmp_path):
    settings = _build_test_settings(tmp_path, "write_failure.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()
    store = AvailabilityStore(settings=settings, policy=FullCapacityHourPolicy(), today=MONDAY)
    # Starts below the seeded ids, so the first insert collides with BK-10001.
    service = BookingAllocationService(
        repository=repository,
        availability_store=store,
        settings=settings,
        id_generator=BookingIdGenerator(prefix="BK-", base=10000),
    )

    with pytest.raises(RuntimeError):
        service.create_booking(BookingRequest(container_id="CNTR-002", date=SLOT_DATE, hour="10:30"))

    container = repository.get_container("CNTR-002")
    assert container.scheduled is False
    assert container.appointment_date is None
    assert store.is_open(SLOT_DATE, "10:30")
    assert repository.count_bookings() == 5


def test_registered_container_can_be_booked(tmp_path):
    service, repository, _ = _build_service(tmp_path)
    repository.create_container(
        ContainerRecord(
            container_id="CNTR-013",
            arrival_date="2026-10-19",
            arrival_time="07:15",
            arrived=True,
            enterprise="Harbour Line",
        )
    )

    confirmation = service.create_booking(
        BookingRequest(container_id="CNTR-013", date=SLOT_DATE, hour="12:00")
    )

    assert repository.get_booking(confirmation.booking_id).enterprise == "Harbour Line"
    assert len(service.list_containers()) == 13


def test_concurrent_bookings_receive_distinct_ids(tmp_path):
    service, repository, store = _build_service(tmp_path)
    requests = [
        BookingRequest(container_id=container_id, date=SLOT_DATE, hour=hour)
        for container_id, hour in zip(
            ["CNTR-002", "CNTR-004", "CNTR-006", "CNTR-010", "CNTR-012"],
            ["08:00", "08:30", "09:00", "09:30", "10:00"],
        )
    ]
    barrier = Barrier(len(requests))
    issued: list[str] = []

    def _book(request: BookingRequest) -> None:
        barrier.wait()
        issued.append(service.create_booking(request).booking_id)

    threads = [Thread(target=_book, args=(request,)) for request in requests]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(issued) == len(requests)
    assert len(set(issued)) == len(requests)
    assert set(issued) == {f"BK-{number}" for number in range(10006, 10011)}
    assert repository.count_bookings() == 10
    assert all(not store.is_open(request.date, request.hour) for request in requests)


def test_get_container_and_booking_raise_when_missing(tmp_path):
    service, _, _ = _build_service(tmp_path)

    assert service.get_container("CNTR-001").enterprise == "Global Logistics Inc"
    with pytest.raises(ContainerNotFoundError):
        service.get_container("CNTR-404")
    with pytest.raises(BookingNotFoundError):
        service.get_booking("BK-404")

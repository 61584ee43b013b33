from __future__ import annotations

import pytest

from portly.domain.credential import encode_credential_payload, parse_scan_payload
from portly.domain.models import ScanPayload


SAMPLE_PAYLOAD = '{"bookingId":"BK-10002","containerId":"CNTR-001","date":"2026-02-11","time":"10:30"}'


def test_sample_credential_parses():
    assert parse_scan_payload(SAMPLE_PAYLOAD) == ScanPayload(
        booking_id="BK-10002",
        container_id="CNTR-001",
        date="2026-02-11",
        time="10:30",
    )


def test_extra_fields_are_ignored():
    payload = parse_scan_payload(
        '{"bookingId":"BK-1","containerId":"C-1","date":"2026-02-11","time":"10:30","gate":"4"}'
    )
    assert payload is not None
    assert payload.booking_id == "BK-1"


@pytest.mark.parametrize(
    "raw_text",
    [
        "not-json",
        "",
        '{"bookingId":"X"}',
        '["BK-10002","CNTR-001"]',
        '{"bookingId":"","containerId":"CNTR-001","date":"2026-02-11","time":"10:30"}',
        '{"bookingId":10002,"containerId":"CNTR-001","date":"2026-02-11","time":"10:30"}',
        '{"bookingId":"BK-10002","containerId":null,"date":"2026-02-11","time":"10:30"}',
    ],
)
def test_incomplete_or_malformed_text_has_no_payload(raw_text):
    assert parse_scan_payload(raw_text) is None


def test_encoded_credential_is_compact_and_parseable():
    encoded = encode_credential_payload("BK-10002", "CNTR-001", "2026-02-11", "10:30")

    assert encoded == SAMPLE_PAYLOAD
    assert parse_scan_payload(encoded).container_id == "CNTR-001"

"""Wire contract for the gate credential payload.

The optical code itself is produced and decoded elsewhere; this module only
knows the JSON text carried inside it::

    {"bookingId": "BK-10002", "containerId": "CNTR-001",
     "date": "2026-02-11", "time": "10:30"}
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from portly.domain.models import ScanPayload


class CredentialPayloadModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    booking_id: StrictStr = Field(alias="bookingId", min_length=1)
    container_id: StrictStr = Field(alias="containerId", min_length=1)
    date: StrictStr = Field(min_length=1)
    time: StrictStr = Field(min_length=1)


def parse_scan_payload(raw_text: str) -> Optional[ScanPayload]:
    """Return the structured payload, or None when any required field is missing."""
    try:
        model = CredentialPayloadModel.model_validate_json(raw_text)
    except ValidationError:
        return None
    return ScanPayload(
        booking_id=model.booking_id,
        container_id=model.container_id,
        date=model.date,
        time=model.time,
    )


def encode_credential_payload(
    booking_id: str,
    container_id: str,
    date: str,
    time: str,
) -> str:
    model = CredentialPayloadModel(
        booking_id=booking_id,
        container_id=container_id,
        date=date,
        time=time,
    )
    return model.model_dump_json(by_alias=True)

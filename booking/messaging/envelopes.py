"""
Message envelope handling.

Appointment events reach the workers in several wrappings: a Redis Stream
entry whose ``payload`` field holds the JSON event, an SNS-style notification
with the event JSON under ``Message``, an EventBridge-style record with the
event under ``detail``, or the bare event itself. ``unwrap_message`` peels
those layers off until the flat event remains.
"""

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from booking.core.exceptions import MessageFormatError
from booking.schemas.appointments import (
    CountryISO,
    normalize_insured_id,
    parse_country,
    parse_schedule_id,
)

REQUIRED_FIELDS = ("appointmentId", "insuredId", "countryISO", "scheduleId")

# Envelopes nest at most a few levels deep (stream -> SNS -> event)
_MAX_ENVELOPE_DEPTH = 5


def _load_json(raw: str | bytes) -> Any:
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except UnicodeDecodeError as e:
        raise MessageFormatError(f"Message body is not valid UTF-8: {e}") from e
    except ValueError as e:
        raise MessageFormatError(f"Message body is not valid JSON: {e}") from e


def unwrap_message(body: Mapping[str, Any] | str | bytes) -> dict[str, Any]:
    """
    Strip transport envelopes from a message body.

    Raises:
        MessageFormatError: If a layer is not JSON or not an object
    """
    data: Any = body
    for _ in range(_MAX_ENVELOPE_DEPTH):
        if isinstance(data, str | bytes):
            data = _load_json(data)
        if not isinstance(data, Mapping):
            raise MessageFormatError("Message body must be a JSON object")

        if "detail" in data and "detail-type" in data:
            data = data["detail"]
        elif isinstance(data.get("Message"), str):
            data = data["Message"]
        elif "payload" in data and "event_name" in data:
            data = data["payload"]
        else:
            return dict(data)

    raise MessageFormatError("Message envelope nested too deeply")


class AppointmentMessage(BaseModel):
    """Validated appointment fields carried by a pipeline message."""

    appointment_id: str
    insured_id: str
    country_iso: CountryISO
    schedule_id: int
    status: str | None = None
    event_type: str | None = None


def parse_appointment_message(body: Mapping[str, Any] | str | bytes) -> AppointmentMessage:
    """
    Unwrap a message and validate its appointment fields.

    Raises:
        MessageFormatError: If the envelope is broken or a required field is missing
        ValidationException: If a field has the wrong format
    """
    data = unwrap_message(body)
    missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, "")]
    if missing:
        raise MessageFormatError(f"Missing required fields in message: {', '.join(missing)}")

    appointment_id = str(data["appointmentId"]).strip()
    if not appointment_id:
        raise MessageFormatError("Missing required fields in message: appointmentId")

    status = data.get("status")
    event_type = data.get("eventType")
    return AppointmentMessage(
        appointment_id=appointment_id,
        insured_id=normalize_insured_id(data["insuredId"]),
        country_iso=parse_country(data["countryISO"]),
        schedule_id=parse_schedule_id(data["scheduleId"]),
        status=str(status) if status is not None else None,
        event_type=str(event_type) if event_type is not None else None,
    )

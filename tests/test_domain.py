"""Tests for the appointment state machine and value parsing."""

from datetime import datetime, timedelta, timezone

import pytest

from booking.core.exceptions import (
    InvalidInsuredIdError,
    InvalidStatusTransitionError,
    UnsupportedCountryError,
    ValidationException,
)
from booking.core.pii import mask_insured_id
from booking.schemas.appointments import (
    Appointment,
    AppointmentStatus,
    CountryISO,
    normalize_insured_id,
    parse_country,
    parse_schedule_id,
)
from booking.schemas.events import (
    AppointmentCompletedEvent,
    AppointmentCreatedEvent,
    AppointmentProcessedEvent,
)
from tests.fakes import make_schedule

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def new_appointment() -> Appointment:
    return Appointment.create(
        insured_id="12345",
        country_iso=CountryISO.PE,
        schedule_id=100,
        schedule=make_schedule().snapshot(),
        now=NOW,
    )


def test_new_appointment_is_pending():
    """Test a created appointment starts pending with a fresh id."""
    appointment = new_appointment()

    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.processed_at is None
    assert appointment.created_at == appointment.updated_at == NOW
    assert appointment.appointment_id != new_appointment().appointment_id


def test_status_moves_forward_only():
    """Test pending -> processed -> completed and nothing else."""
    appointment = new_appointment()

    with pytest.raises(InvalidStatusTransitionError):
        appointment.mark_completed(NOW)

    appointment.mark_processed(NOW + timedelta(seconds=1))
    assert appointment.is_processed
    assert appointment.processed_at == NOW + timedelta(seconds=1)

    with pytest.raises(InvalidStatusTransitionError):
        appointment.mark_processed(NOW + timedelta(seconds=2))

    appointment.mark_completed(NOW + timedelta(seconds=3))
    assert appointment.is_completed
    assert appointment.updated_at == NOW + timedelta(seconds=3)

    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        appointment.mark_completed(NOW + timedelta(seconds=4))
    assert exc_info.value.current == "completed"


def test_tracking_record_shape():
    """Test the tracking record uses the camelCase wire names."""
    appointment = new_appointment()
    record = appointment.to_record()

    assert set(record) == {
        "appointmentId",
        "insuredId",
        "countryISO",
        "scheduleId",
        "status",
        "createdAt",
        "updatedAt",
        "processedAt",
        "schedule",
    }
    assert record["status"] == "pending"
    assert record["processedAt"] is None
    assert record["schedule"]["centerId"] == 1

    restored = Appointment.from_record(record)
    assert restored == appointment


def test_from_record_treats_naive_timestamps_as_utc():
    """Test naive timestamps read from storage come back as UTC."""
    record = new_appointment().to_record()
    record["createdAt"] = "2026-03-01T12:00:00"

    restored = Appointment.from_record(record)

    assert restored.created_at.tzinfo is not None
    assert restored.created_at == NOW


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("12345", "12345"), ("123", "00123"), (7, "00007"), (" 00042 ", "00042")],
)
def test_normalize_insured_id(raw, expected):
    """Test insured ids are zero-padded to five digits."""
    assert normalize_insured_id(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "12a45", "123456", "-1234", True])
def test_normalize_insured_id_rejects_bad_values(raw):
    """Test malformed insured ids are validation errors."""
    with pytest.raises(InvalidInsuredIdError):
        normalize_insured_id(raw)


def test_parse_country():
    """Test country codes are case-insensitive and limited to PE and CL."""
    assert parse_country("pe") == CountryISO.PE
    assert parse_country("CL") == CountryISO.CL

    with pytest.raises(UnsupportedCountryError):
        parse_country("XX")
    with pytest.raises(ValidationException):
        parse_country("")


def test_parse_schedule_id():
    """Test schedule ids must be positive integers."""
    assert parse_schedule_id("42") == 42

    for bad in (0, -3, "abc", None, True):
        with pytest.raises(ValidationException):
            parse_schedule_id(bad)


def test_mask_insured_id():
    """Test insured ids are masked before logging."""
    assert mask_insured_id("12345") == "12***"
    assert mask_insured_id("123") == "***"
    assert mask_insured_id("") == "***"


def test_event_payloads():
    """Test each event publishes its documented flat payload."""
    created = AppointmentCreatedEvent(
        aggregate_id="a-1", country_iso="PE", insured_id="12345", schedule_id=100, occurred_at=NOW
    )
    processed = AppointmentProcessedEvent(
        aggregate_id="a-1", country_iso="PE", insured_id="12345", schedule_id=100, occurred_at=NOW
    )
    completed = AppointmentCompletedEvent(
        aggregate_id="a-1",
        country_iso="PE",
        insured_id="12345",
        schedule_id=100,
        completed_at=NOW,
    )

    assert created.to_primitives() == {
        "appointmentId": "a-1",
        "countryISO": "PE",
        "insuredId": "12345",
        "scheduleId": 100,
        "eventType": "AppointmentCreated",
        "timestamp": NOW.isoformat(),
    }
    assert processed.to_primitives()["status"] == "processed"
    assert "eventType" not in processed.to_primitives()
    assert completed.to_primitives() == {
        "appointmentId": "a-1",
        "completedAt": NOW.isoformat(),
        "countryISO": "PE",
        "insuredId": "12345",
        "scheduleId": 100,
    }
    assert created.appointment_id == "a-1"
    assert created.event_id != processed.event_id

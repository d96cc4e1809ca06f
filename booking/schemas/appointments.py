"""Appointment domain model and request/response schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from booking.core.clock import ensure_utc
from booking.core.exceptions import (
    InvalidInsuredIdError,
    InvalidStatusTransitionError,
    UnsupportedCountryError,
    ValidationException,
)
from booking.core.pii import INSURED_ID_LENGTH, mask_insured_id


class AppointmentStatus(str, Enum):
    """Appointment status enumeration.

    Transitions only ever move forward: pending -> processed -> completed.
    """

    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"


class CountryISO(str, Enum):
    """Supported countries."""

    PE = "PE"
    CL = "CL"


SUPPORTED_COUNTRIES = tuple(country.value for country in CountryISO)


def parse_country(value: Any) -> CountryISO:
    """
    Parse a country code, case-insensitively.

    Raises:
        UnsupportedCountryError: If the code is not one of the supported countries
    """
    if isinstance(value, CountryISO):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationException("Country ISO cannot be empty", field="countryISO")
    try:
        return CountryISO(value.strip().upper())
    except ValueError:
        raise UnsupportedCountryError(value) from None


def normalize_insured_id(value: Any) -> str:
    """
    Normalize an insured id to its fixed-length form.

    Shorter ids are left-padded with zeros (``"123"`` -> ``"00123"``).

    Raises:
        InvalidInsuredIdError: If the value is empty, not numeric or too long
    """
    if value is None or isinstance(value, bool):
        raise InvalidInsuredIdError(str(value), "Insured ID cannot be empty")
    raw = str(value).strip()
    if not raw:
        raise InvalidInsuredIdError(raw, "Insured ID cannot be empty")
    if not raw.isdigit():
        raise InvalidInsuredIdError(raw, "Insured ID must contain only digits")
    if len(raw) > INSURED_ID_LENGTH:
        raise InvalidInsuredIdError(
            raw, f"Insured ID cannot be longer than {INSURED_ID_LENGTH} digits"
        )
    return raw.zfill(INSURED_ID_LENGTH)


def parse_schedule_id(value: Any) -> int:
    """Parse a positive integer schedule id."""
    if isinstance(value, bool):
        raise ValidationException("Schedule ID must be a positive integer", field="scheduleId")
    try:
        schedule_id = int(value)
    except (TypeError, ValueError):
        raise ValidationException(
            "Schedule ID must be a positive integer", field="scheduleId"
        ) from None
    if schedule_id < 1:
        raise ValidationException("Schedule ID must be a positive integer", field="scheduleId")
    return schedule_id


class ScheduleSnapshot(BaseModel):
    """Copy of the schedule details taken when the appointment is created."""

    model_config = ConfigDict(populate_by_name=True)

    center_id: int = Field(alias="centerId")
    specialty_id: int = Field(alias="specialtyId")
    medic_id: int = Field(alias="medicId")
    date: datetime


class Appointment(BaseModel):
    """Appointment entity and its status state machine."""

    model_config = ConfigDict(populate_by_name=True)

    appointment_id: str = Field(alias="appointmentId")
    insured_id: str = Field(alias="insuredId")
    country_iso: CountryISO = Field(alias="countryISO")
    schedule_id: int = Field(alias="scheduleId")
    status: AppointmentStatus
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    processed_at: datetime | None = Field(default=None, alias="processedAt")
    schedule: ScheduleSnapshot | None = None

    @classmethod
    def create(
        cls,
        insured_id: str,
        country_iso: CountryISO,
        schedule_id: int,
        schedule: ScheduleSnapshot,
        now: datetime,
    ) -> "Appointment":
        """Build a new pending appointment with a fresh id."""
        return cls(
            appointment_id=str(uuid4()),
            insured_id=insured_id,
            country_iso=country_iso,
            schedule_id=schedule_id,
            status=AppointmentStatus.PENDING,
            created_at=now,
            updated_at=now,
            processed_at=None,
            schedule=schedule,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == AppointmentStatus.PENDING

    @property
    def is_processed(self) -> bool:
        return self.status == AppointmentStatus.PROCESSED

    @property
    def is_completed(self) -> bool:
        return self.status == AppointmentStatus.COMPLETED

    def _require(self, required: AppointmentStatus) -> None:
        if self.status != required:
            raise InvalidStatusTransitionError(
                self.appointment_id, self.status.value, required.value
            )

    def mark_processed(self, now: datetime) -> None:
        """Move pending -> processed."""
        self._require(AppointmentStatus.PENDING)
        self.status = AppointmentStatus.PROCESSED
        self.processed_at = now
        self.updated_at = now

    def mark_completed(self, now: datetime) -> None:
        """Move processed -> completed."""
        self._require(AppointmentStatus.PROCESSED)
        self.status = AppointmentStatus.COMPLETED
        self.updated_at = now

    def to_record(self) -> dict[str, Any]:
        """Serialize to the tracking store record shape."""
        return {
            "appointmentId": self.appointment_id,
            "insuredId": self.insured_id,
            "countryISO": self.country_iso.value,
            "scheduleId": self.schedule_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "schedule": (
                {
                    "centerId": self.schedule.center_id,
                    "specialtyId": self.schedule.specialty_id,
                    "medicId": self.schedule.medic_id,
                    "date": self.schedule.date.isoformat(),
                }
                if self.schedule
                else None
            ),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Appointment":
        """Rebuild an appointment from a tracking store record."""
        appointment = cls.model_validate(record)
        appointment.created_at = ensure_utc(appointment.created_at)
        appointment.updated_at = ensure_utc(appointment.updated_at)
        if appointment.processed_at is not None:
            appointment.processed_at = ensure_utc(appointment.processed_at)
        return appointment

    def log_context(self) -> dict[str, Any]:
        """Fields safe to attach to log events."""
        return {
            "appointment_id": self.appointment_id,
            "country_iso": self.country_iso.value,
            "insured_id": mask_insured_id(self.insured_id),
            "schedule_id": self.schedule_id,
            "status": self.status.value,
        }


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment.

    Only shapes are checked here; format rules are enforced by the intake
    service so that every caller gets the same validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    insured_id: str | int = Field(..., alias="insuredId")
    country_iso: str = Field(..., alias="countryISO", min_length=1, max_length=10)
    schedule_id: int = Field(..., alias="scheduleId")


class AppointmentCreatedResponse(BaseModel):
    """Schema returned once an appointment has been accepted."""

    model_config = ConfigDict(populate_by_name=True)

    appointment_id: str = Field(alias="appointmentId")
    message: str
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    """Schema for a single appointment in query results."""

    model_config = ConfigDict(populate_by_name=True)

    appointment_id: str = Field(alias="appointmentId")
    insured_id: str = Field(alias="insuredId")
    country_iso: CountryISO = Field(alias="countryISO")
    schedule_id: int = Field(alias="scheduleId")
    status: AppointmentStatus
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    processed_at: datetime | None = Field(default=None, alias="processedAt")
    schedule: ScheduleSnapshot | None = None
    source: str = Field(default="tracking", description="Store the entry was read from")

    @classmethod
    def from_appointment(cls, appointment: Appointment, source: str) -> "AppointmentResponse":
        return cls(
            appointment_id=appointment.appointment_id,
            insured_id=appointment.insured_id,
            country_iso=appointment.country_iso,
            schedule_id=appointment.schedule_id,
            status=appointment.status,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
            processed_at=appointment.processed_at,
            schedule=appointment.schedule,
            source=source,
        )


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Pagination for appointment queries."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

"""Store interfaces the pipeline stages depend on."""

from datetime import datetime
from enum import Enum
from typing import Protocol

from booking.schemas.appointments import Appointment, AppointmentStatus, CountryISO
from booking.schemas.schedules import Schedule


class ReservationOutcome(str, Enum):
    """Result of a conditional schedule reservation."""

    RESERVED = "reserved"
    ALREADY_HELD = "already_held"


class TrackingStore(Protocol):
    """Primary tracking store: authoritative lifecycle record per appointment."""

    async def create(self, appointment: Appointment) -> None:
        """Store a new record; refuses to overwrite a record that is no longer pending."""
        ...

    async def get(self, appointment_id: str) -> Appointment | None: ...

    async def list_by_insured(self, insured_id: str) -> list[Appointment]:
        """Records for an insured person, newest first."""
        ...

    async def compare_and_set(
        self, appointment: Appointment, expected_status: AppointmentStatus
    ) -> None:
        """Replace the record only while its stored status equals ``expected_status``."""
        ...


class CountryStore(Protocol):
    """Per-country copy of processed appointments."""

    async def upsert(self, appointment: Appointment) -> None: ...

    async def find_by_appointment_id(
        self, appointment_id: str, country: CountryISO | None = None
    ) -> Appointment | None: ...

    async def list_by_insured(self, insured_id: str) -> list[Appointment]: ...


class ScheduleStore(Protocol):
    """Bookable slots and their one-shot reservation."""

    async def get(self, schedule_id: int, country: CountryISO) -> Schedule | None: ...

    async def reserve(
        self,
        schedule_id: int,
        country: CountryISO,
        appointment_id: str,
        now: datetime,
    ) -> ReservationOutcome: ...

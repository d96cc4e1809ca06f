"""Domain events exchanged between pipeline stages.

Events are frozen once built and only carry flat primitive payloads so that
they survive the trip through the event channel unchanged.
"""

from datetime import datetime
from typing import ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from booking.core.clock import utc_now

Primitive = str | int | float | bool | None


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_name: ClassVar[str] = "DomainEvent"

    aggregate_id: str
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = Field(default_factory=utc_now)

    def to_primitives(self) -> dict[str, Primitive]:
        """Flat payload published on the channel."""
        raise NotImplementedError


class AppointmentEvent(DomainEvent):
    """Event about one appointment; the appointment id is the aggregate id."""

    country_iso: str
    insured_id: str
    schedule_id: int

    @property
    def appointment_id(self) -> str:
        return self.aggregate_id


class AppointmentCreatedEvent(AppointmentEvent):
    """Emitted by intake once the pending record is stored."""

    event_name: ClassVar[str] = "AppointmentCreated"

    def to_primitives(self) -> dict[str, Primitive]:
        return {
            "appointmentId": self.aggregate_id,
            "countryISO": self.country_iso,
            "insuredId": self.insured_id,
            "scheduleId": self.schedule_id,
            "eventType": self.event_name,
            "timestamp": self.occurred_at.isoformat(),
        }


class AppointmentProcessedEvent(AppointmentEvent):
    """Emitted by a country processor after country-specific processing."""

    event_name: ClassVar[str] = "AppointmentProcessed"

    def to_primitives(self) -> dict[str, Primitive]:
        return {
            "appointmentId": self.aggregate_id,
            "countryISO": self.country_iso,
            "insuredId": self.insured_id,
            "scheduleId": self.schedule_id,
            "status": "processed",
            "timestamp": self.occurred_at.isoformat(),
        }


class AppointmentCompletedEvent(AppointmentEvent):
    """Emitted by the completion handler."""

    event_name: ClassVar[str] = "AppointmentCompleted"

    completed_at: datetime

    def to_primitives(self) -> dict[str, Primitive]:
        return {
            "appointmentId": self.aggregate_id,
            "completedAt": self.completed_at.isoformat(),
            "countryISO": self.country_iso,
            "insuredId": self.insured_id,
            "scheduleId": self.schedule_id,
        }

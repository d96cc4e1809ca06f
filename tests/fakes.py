"""In-memory stand-ins for the stores and the event channel."""

from datetime import datetime, timedelta, timezone

from booking.core.exceptions import (
    AppointmentConflictError,
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
    PublishError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from booking.messaging.batch import StreamMessage
from booking.messaging.event_channel import to_stream_fields
from booking.schemas.appointments import Appointment, AppointmentStatus, CountryISO
from booking.schemas.events import DomainEvent
from booking.schemas.schedules import Schedule
from booking.stores.base import ReservationOutcome


class FakeClock:
    """Clock that moves forward one second on every reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class InMemoryTrackingStore:
    def __init__(self):
        self.records: dict[str, Appointment] = {}
        self.fail = False

    def _check(self, operation: str) -> None:
        if self.fail:
            raise StoreUnavailableError(operation)

    async def create(self, appointment: Appointment) -> None:
        self._check("tracking.create")
        current = self.records.get(appointment.appointment_id)
        if current is not None and not current.is_pending:
            raise AppointmentConflictError(appointment.appointment_id)
        self.records[appointment.appointment_id] = appointment.model_copy(deep=True)

    async def get(self, appointment_id: str) -> Appointment | None:
        self._check("tracking.get")
        record = self.records.get(appointment_id)
        return record.model_copy(deep=True) if record else None

    async def list_by_insured(self, insured_id: str) -> list[Appointment]:
        self._check("tracking.list_by_insured")
        return sorted(
            (r.model_copy(deep=True) for r in self.records.values() if r.insured_id == insured_id),
            key=lambda r: r.created_at,
            reverse=True,
        )

    async def compare_and_set(
        self, appointment: Appointment, expected_status: AppointmentStatus
    ) -> None:
        self._check("tracking.compare_and_set")
        current = self.records.get(appointment.appointment_id)
        if current is None:
            raise AppointmentNotFoundError(appointment.appointment_id)
        if current.status != expected_status:
            raise InvalidStatusTransitionError(
                appointment.appointment_id, current.status.value, expected_status.value
            )
        self.records[appointment.appointment_id] = appointment.model_copy(deep=True)


class InMemoryCountryStore:
    def __init__(self):
        self.tables: dict[CountryISO, dict[str, Appointment]] = {
            country: {} for country in CountryISO
        }
        self.upserts = 0
        self.fail = False

    def _check(self, operation: str) -> None:
        if self.fail:
            raise StoreUnavailableError(operation)

    def rows(self, country: CountryISO) -> list[Appointment]:
        return list(self.tables[country].values())

    async def upsert(self, appointment: Appointment) -> None:
        self._check("country.upsert")
        self.upserts += 1
        self.tables[appointment.country_iso][appointment.appointment_id] = (
            appointment.model_copy(deep=True)
        )

    async def find_by_appointment_id(
        self, appointment_id: str, country: CountryISO | None = None
    ) -> Appointment | None:
        self._check("country.find_by_appointment_id")
        countries = [country] if country else list(self.tables)
        for code in countries:
            row = self.tables[code].get(appointment_id)
            if row is not None:
                return row.model_copy(deep=True)
        return None

    async def list_by_insured(self, insured_id: str) -> list[Appointment]:
        self._check("country.list_by_insured")
        return [
            row.model_copy(deep=True)
            for table in self.tables.values()
            for row in table.values()
            if row.insured_id == insured_id
        ]


class InMemoryScheduleStore:
    def __init__(self, schedules: list[Schedule] | None = None):
        self.schedules: dict[tuple[int, CountryISO], Schedule] = {}
        self.reservations: list[tuple[int, CountryISO, str]] = []
        for schedule in schedules or []:
            self.add(schedule)

    def add(self, schedule: Schedule) -> None:
        self.schedules[(schedule.schedule_id, schedule.country_iso)] = schedule

    async def get(self, schedule_id: int, country: CountryISO) -> Schedule | None:
        return self.schedules.get((schedule_id, country))

    async def reserve(
        self, schedule_id: int, country: CountryISO, appointment_id: str, now: datetime
    ) -> ReservationOutcome:
        schedule = self.schedules.get((schedule_id, country))
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id, country.value)
        if schedule.is_available:
            self.schedules[(schedule_id, country)] = schedule.model_copy(
                update={"is_available": False, "reserved_by": appointment_id}
            )
            self.reservations.append((schedule_id, country, appointment_id))
            return ReservationOutcome.RESERVED
        if schedule.reserved_by == appointment_id:
            return ReservationOutcome.ALREADY_HELD
        raise ScheduleConflictError(schedule_id, country.value, schedule.reserved_by)


class RecordingChannel:
    """Event channel keeping everything published, in order."""

    def __init__(self):
        self.events: list[DomainEvent] = []
        self.fail = False

    async def publish(self, event: DomainEvent) -> str:
        if self.fail:
            raise PublishError(f"publish {event.event_name}")
        self.events.append(event)
        return f"{len(self.events)}-0"

    def named(self, event_name: str) -> list[DomainEvent]:
        return [event for event in self.events if event.event_name == event_name]


SCHEDULE_DATE = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_schedule(schedule_id: int = 100, country: CountryISO = CountryISO.PE) -> Schedule:
    return Schedule(
        schedule_id=schedule_id,
        country_iso=country,
        center_id=1,
        specialty_id=2,
        medic_id=3,
        date=SCHEDULE_DATE,
    )


def as_message(event: DomainEvent, message_id: str = "1-0") -> StreamMessage:
    """Wrap an event the way the stream consumer delivers it."""
    return StreamMessage(message_id=message_id, fields=to_stream_fields(event))

"""Intake: accepts new appointment requests."""

from typing import Any

import structlog

from booking.core.clock import Clock, utc_now
from booking.core.exceptions import ScheduleNotFoundError
from booking.messaging.event_channel import EventChannel
from booking.schemas.appointments import (
    Appointment,
    AppointmentCreatedResponse,
    AppointmentStatus,
    normalize_insured_id,
    parse_country,
    parse_schedule_id,
)
from booking.schemas.events import AppointmentCreatedEvent
from booking.stores.base import ScheduleStore, TrackingStore

logger = structlog.get_logger(__name__)

ACCEPTED_MESSAGE = "Appointment scheduling is in process"


class IntakeService:
    """Service for accepting appointment requests."""

    def __init__(
        self,
        tracking_store: TrackingStore,
        schedule_store: ScheduleStore,
        publisher: EventChannel,
        clock: Clock = utc_now,
    ):
        """
        Initialize the service.

        Args:
            tracking_store: Primary tracking store
            schedule_store: Schedule lookup
            publisher: Country-addressed channel for created events
            clock: Source of the current time
        """
        self.tracking_store = tracking_store
        self.schedule_store = schedule_store
        self.publisher = publisher
        self.clock = clock

    async def create_appointment(
        self, insured_id: Any, country_iso: Any, schedule_id: Any
    ) -> AppointmentCreatedResponse:
        """
        Accept a new appointment request.

        The pending record is stored before the created event is published,
        so a consumer never sees an event for a record that does not exist.

        Args:
            insured_id: Insured person's id (up to 5 digits)
            country_iso: Country code
            schedule_id: Requested schedule slot

        Returns:
            The new appointment id with its pending status

        Raises:
            ValidationException: If any field is malformed or the country unsupported
            ScheduleNotFoundError: If the country has no such schedule
            InfrastructureException: If a store or the channel fails
        """
        insured = normalize_insured_id(insured_id)
        country = parse_country(country_iso)
        slot_id = parse_schedule_id(schedule_id)

        schedule = await self.schedule_store.get(slot_id, country)
        if schedule is None:
            raise ScheduleNotFoundError(slot_id, country.value)

        now = self.clock()
        appointment = Appointment.create(
            insured_id=insured,
            country_iso=country,
            schedule_id=slot_id,
            schedule=schedule.snapshot(),
            now=now,
        )
        await self.tracking_store.create(appointment)

        await self.publisher.publish(
            AppointmentCreatedEvent(
                aggregate_id=appointment.appointment_id,
                country_iso=country.value,
                insured_id=insured,
                schedule_id=slot_id,
                occurred_at=now,
            )
        )

        logger.info("appointment_created", **appointment.log_context())
        return AppointmentCreatedResponse(
            appointment_id=appointment.appointment_id,
            message=ACCEPTED_MESSAGE,
            status=AppointmentStatus.PENDING,
        )

"""Completion handler: closes processed appointments."""

from collections.abc import Sequence

import structlog

from booking.core.clock import Clock, utc_now
from booking.core.exceptions import AppointmentNotFoundError, CountryMismatchError
from booking.messaging.batch import BatchResult, MessageOutcome, StreamMessage, run_batch
from booking.messaging.envelopes import parse_appointment_message
from booking.messaging.event_channel import EventChannel
from booking.schemas.appointments import (
    Appointment,
    AppointmentStatus,
    CountryISO,
    parse_country,
)
from booking.schemas.events import AppointmentCompletedEvent
from booking.stores.base import TrackingStore

logger = structlog.get_logger(__name__)

STAGE = "completion_handler"


class CompletionHandler:
    """Moves appointments from processed to completed."""

    def __init__(
        self,
        tracking_store: TrackingStore,
        event_bus: EventChannel,
        clock: Clock = utc_now,
    ):
        self.tracking_store = tracking_store
        self.event_bus = event_bus
        self.clock = clock

    async def handle_batch(self, messages: Sequence[StreamMessage]) -> BatchResult:
        """Complete every processed event in a batch."""
        return await run_batch(messages, self._handle_message, STAGE)

    async def _handle_message(self, message: StreamMessage) -> MessageOutcome:
        request = parse_appointment_message(message.fields)
        if (request.status or "").lower() != AppointmentStatus.PROCESSED.value:
            logger.info(
                "message_skipped",
                stage=STAGE,
                reason="not_a_processed_event",
                appointment_id=request.appointment_id,
                declared_status=request.status,
            )
            return MessageOutcome.SKIPPED

        await self.complete(request.appointment_id, request.country_iso)
        return MessageOutcome.PROCESSED

    async def complete(self, appointment_id: str, country_iso: CountryISO | str) -> Appointment:
        """
        Mark a processed appointment as completed.

        Args:
            appointment_id: Appointment to complete
            country_iso: Country the caller believes the appointment belongs to

        Returns:
            The completed appointment

        Raises:
            AppointmentNotFoundError: If there is no tracking record
            CountryMismatchError: If the record belongs to another country
            InvalidStatusTransitionError: If the appointment is not processed
            InfrastructureException: If the store or the channel fails
        """
        country = parse_country(country_iso)
        appointment = await self.tracking_store.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        if appointment.country_iso != country:
            raise CountryMismatchError(
                appointment_id, appointment.country_iso.value, country.value
            )

        now = self.clock()
        appointment.mark_completed(now)

        # The record stays processed until the completed event is out
        await self.event_bus.publish(
            AppointmentCompletedEvent(
                aggregate_id=appointment.appointment_id,
                country_iso=appointment.country_iso.value,
                insured_id=appointment.insured_id,
                schedule_id=appointment.schedule_id,
                completed_at=now,
                occurred_at=now,
            )
        )
        await self.tracking_store.compare_and_set(appointment, AppointmentStatus.PROCESSED)
        logger.info("appointment_completed", stage=STAGE, **appointment.log_context())
        return appointment

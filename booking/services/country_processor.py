"""Country processor: turns created appointments into processed ones."""

from collections.abc import Mapping, Sequence
from datetime import datetime

import structlog

from booking.core.clock import Clock, utc_now
from booking.core.exceptions import (
    AppointmentNotFoundError,
    CountryMismatchError,
    InvalidStatusTransitionError,
    ScheduleConflictError,
    ScheduleNotFoundError,
)
from booking.messaging.batch import BatchResult, MessageOutcome, StreamMessage, run_batch
from booking.messaging.envelopes import AppointmentMessage, parse_appointment_message
from booking.messaging.event_channel import EventChannel
from booking.schemas.appointments import Appointment, AppointmentStatus, CountryISO
from booking.schemas.events import AppointmentProcessedEvent
from booking.services.country_rules import COUNTRY_RULES, CountryRules, rules_for
from booking.stores.base import CountryStore, ScheduleStore, TrackingStore

logger = structlog.get_logger(__name__)


class CountryProcessor:
    """Processes created events for one country."""

    def __init__(
        self,
        country: CountryISO,
        tracking_store: TrackingStore,
        country_store: CountryStore,
        schedule_store: ScheduleStore,
        event_bus: EventChannel,
        rules: Mapping[CountryISO, CountryRules] = COUNTRY_RULES,
        clock: Clock = utc_now,
    ):
        self.country = country
        self.tracking_store = tracking_store
        self.country_store = country_store
        self.schedule_store = schedule_store
        self.event_bus = event_bus
        self.rules = rules_for(country, rules)
        self.clock = clock

    @property
    def stage(self) -> str:
        return f"country_processor_{self.country.value.lower()}"

    async def handle_batch(self, messages: Sequence[StreamMessage]) -> BatchResult:
        """Process a batch; every message gets its own outcome."""
        return await run_batch(messages, self._handle_message, self.stage)

    async def _handle_message(self, message: StreamMessage) -> MessageOutcome:
        request = parse_appointment_message(message.fields)
        if request.country_iso != self.country:
            logger.info(
                "message_skipped",
                stage=self.stage,
                reason="wrong_country",
                appointment_id=request.appointment_id,
                country_iso=request.country_iso.value,
            )
            return MessageOutcome.SKIPPED
        return await self.process(request)

    async def process(self, request: AppointmentMessage) -> MessageOutcome:
        """
        Process one created appointment.

        Steps run in order: country store write, schedule reservation,
        tracking update, event publish. Each step tolerates being repeated,
        so a message redelivered after a crash picks up where it stopped.

        Returns:
            PROCESSED, or SKIPPED for a duplicate delivery. A duplicate of an
            appointment that is still processed publishes the processed event
            again, so a publish that failed earlier is recovered.

        Raises:
            AppointmentNotFoundError: If there is no tracking record
            CountryMismatchError: If the record belongs to another country
            ScheduleNotFoundError: If the schedule disappeared
            ScheduleConflictError: If another appointment holds the schedule
            CountryRuleViolationError: If the country rules reject the appointment
            InfrastructureException: If a store or the channel fails
        """
        appointment = await self.tracking_store.get(request.appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(request.appointment_id)
        if appointment.country_iso != request.country_iso:
            raise CountryMismatchError(
                appointment.appointment_id,
                appointment.country_iso.value,
                request.country_iso.value,
            )
        if appointment.is_processed:
            # A redelivery can follow a failed publish; the event goes out again
            await self._publish_processed(appointment, appointment.processed_at or self.clock())
            logger.info(
                "duplicate_delivery_republished", stage=self.stage, **appointment.log_context()
            )
            return MessageOutcome.SKIPPED
        if not appointment.is_pending:
            logger.info(
                "duplicate_delivery_skipped", stage=self.stage, **appointment.log_context()
            )
            return MessageOutcome.SKIPPED

        schedule = await self.schedule_store.get(appointment.schedule_id, self.country)
        if schedule is None:
            raise ScheduleNotFoundError(appointment.schedule_id, self.country.value)
        # Fail before the country store write; reserve() still guards races
        if not schedule.is_available and schedule.reserved_by != appointment.appointment_id:
            raise ScheduleConflictError(
                schedule.schedule_id, self.country.value, schedule.reserved_by
            )

        await self.rules.apply(appointment, schedule)

        now = self.clock()
        if appointment.schedule is None:
            appointment.schedule = schedule.snapshot()
        appointment.mark_processed(now)

        await self.country_store.upsert(appointment)
        await self.schedule_store.reserve(
            appointment.schedule_id, self.country, appointment.appointment_id, now
        )

        try:
            await self.tracking_store.compare_and_set(appointment, AppointmentStatus.PENDING)
        except InvalidStatusTransitionError:
            logger.info(
                "duplicate_delivery_skipped",
                stage=self.stage,
                reason="advanced_concurrently",
                **appointment.log_context(),
            )
            return MessageOutcome.SKIPPED

        await self._publish_processed(appointment, now)
        logger.info("appointment_processed", stage=self.stage, **appointment.log_context())
        return MessageOutcome.PROCESSED

    async def _publish_processed(self, appointment: Appointment, occurred_at: datetime) -> None:
        await self.event_bus.publish(
            AppointmentProcessedEvent(
                aggregate_id=appointment.appointment_id,
                country_iso=appointment.country_iso.value,
                insured_id=appointment.insured_id,
                schedule_id=appointment.schedule_id,
                occurred_at=occurred_at,
            )
        )

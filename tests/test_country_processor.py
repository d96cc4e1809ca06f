"""Tests for the country processor."""

import pytest

from booking.core.exceptions import AppointmentNotFoundError, CountryMismatchError
from booking.messaging.batch import MessageOutcome, StreamMessage
from booking.messaging.envelopes import parse_appointment_message
from booking.schemas.appointments import AppointmentStatus, CountryISO
from tests.fakes import as_message


async def create_pending(container, country_publisher, country="PE", schedule_id=100):
    """Run intake and return the appointment id with its created-event message."""
    response = await container.intake.create_appointment("12345", country, schedule_id)
    event = country_publisher.events[-1]
    return response.appointment_id, as_message(event, f"{len(country_publisher.events)}-0")


@pytest.mark.asyncio
async def test_process_created_appointment(
    container, country_publisher, tracking_store, country_store, schedule_store, event_bus
):
    """Test processing moves the appointment to processed in both stores."""
    appointment_id, message = await create_pending(container, country_publisher)

    result = await container.processor_for(CountryISO.PE).handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.PROCESSED
    assert result.acknowledged_ids == [message.message_id]

    record = tracking_store.records[appointment_id]
    assert record.status == AppointmentStatus.PROCESSED
    assert record.processed_at is not None

    rows = country_store.rows(CountryISO.PE)
    assert [row.appointment_id for row in rows] == [appointment_id]
    assert rows[0].status == AppointmentStatus.PROCESSED
    assert country_store.rows(CountryISO.CL) == []

    assert schedule_store.reservations == [(100, CountryISO.PE, appointment_id)]

    processed = event_bus.named("AppointmentProcessed")
    assert len(processed) == 1
    assert processed[0].to_primitives()["status"] == "processed"


@pytest.mark.asyncio
async def test_redelivered_created_event_is_noop(
    container, country_publisher, tracking_store, country_store, schedule_store, event_bus
):
    """Test a second delivery after processing changes no state and re-announces it."""
    appointment_id, message = await create_pending(container, country_publisher)
    processor = container.processor_for(CountryISO.PE)

    await processor.handle_batch([message])
    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.SKIPPED
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PROCESSED
    assert len(country_store.rows(CountryISO.PE)) == 1
    assert country_store.upserts == 1
    assert len(schedule_store.reservations) == 1
    processed = event_bus.named("AppointmentProcessed")
    assert [event.appointment_id for event in processed] == [appointment_id, appointment_id]


@pytest.mark.asyncio
async def test_failed_publish_is_recovered_on_redelivery(
    container, country_publisher, tracking_store, country_store, event_bus
):
    """Test a processed event lost to a bus outage goes out when the message returns."""
    appointment_id, message = await create_pending(container, country_publisher)
    processor = container.processor_for(CountryISO.PE)

    event_bus.fail = True
    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.FAILED
    assert result.acknowledged_ids == []
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PROCESSED
    assert event_bus.named("AppointmentProcessed") == []

    event_bus.fail = False
    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.SKIPPED
    assert result.acknowledged_ids == [message.message_id]
    processed = event_bus.named("AppointmentProcessed")
    assert len(processed) == 1
    assert processed[0].appointment_id == appointment_id
    assert processed[0].occurred_at == tracking_store.records[appointment_id].processed_at
    assert country_store.upserts == 1


@pytest.mark.asyncio
async def test_redelivery_after_completion_publishes_nothing(
    container, country_publisher, tracking_store, event_bus
):
    """Test a created event arriving after completion is skipped silently."""
    appointment_id, message = await create_pending(container, country_publisher)
    processor = container.processor_for(CountryISO.PE)
    await processor.handle_batch([message])
    await container.completion.complete(appointment_id, "PE")

    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.SKIPPED
    assert tracking_store.records[appointment_id].status == AppointmentStatus.COMPLETED
    assert len(event_bus.named("AppointmentProcessed")) == 1


@pytest.mark.asyncio
async def test_message_for_other_country_is_skipped(
    container, country_publisher, tracking_store, country_store
):
    """Test a processor ignores messages addressed to another country."""
    appointment_id, message = await create_pending(container, country_publisher)

    result = await container.processor_for(CountryISO.CL).handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.SKIPPED
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PENDING
    assert country_store.upserts == 0


@pytest.mark.asyncio
async def test_country_mismatch_leaves_status_unchanged(
    container, country_publisher, tracking_store, country_store, event_bus
):
    """Test a record whose country differs from the message is rejected."""
    appointment_id, message = await create_pending(container, country_publisher)
    tracking_store.records[appointment_id].country_iso = CountryISO.CL

    processor = container.processor_for(CountryISO.PE)
    with pytest.raises(CountryMismatchError):
        await processor.process(parse_appointment_message(message.fields))

    result = await processor.handle_batch([message])
    assert result.outcome_of(message.message_id) == MessageOutcome.REJECTED
    assert message.message_id in result.acknowledged_ids
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PENDING
    assert country_store.upserts == 0
    assert event_bus.events == []


@pytest.mark.asyncio
async def test_missing_tracking_record_is_rejected(
    container, country_publisher, tracking_store
):
    """Test a created event without a tracking record is a business error."""
    appointment_id, message = await create_pending(container, country_publisher)
    del tracking_store.records[appointment_id]

    processor = container.processor_for(CountryISO.PE)
    with pytest.raises(AppointmentNotFoundError):
        await processor.process(parse_appointment_message(message.fields))

    result = await processor.handle_batch([message])
    assert result.outcome_of(message.message_id) == MessageOutcome.REJECTED


@pytest.mark.asyncio
async def test_missing_schedule_fails_only_that_message(
    container, country_publisher, tracking_store, schedule_store
):
    """Test a vanished schedule rejects its message while siblings proceed."""
    first_id, first = await create_pending(container, country_publisher, schedule_id=100)
    second_id, second = await create_pending(container, country_publisher, schedule_id=101)
    del schedule_store.schedules[(100, CountryISO.PE)]

    result = await container.processor_for(CountryISO.PE).handle_batch([first, second])

    assert result.outcome_of(first.message_id) == MessageOutcome.REJECTED
    assert result.outcome_of(second.message_id) == MessageOutcome.PROCESSED
    assert tracking_store.records[first_id].status == AppointmentStatus.PENDING
    assert tracking_store.records[second_id].status == AppointmentStatus.PROCESSED


@pytest.mark.asyncio
async def test_schedule_held_by_other_appointment_is_rejected(
    container, country_publisher, tracking_store, country_store, event_bus
):
    """Test two appointments for one slot: the second is rejected."""
    first_id, first = await create_pending(container, country_publisher, schedule_id=100)
    second_id, second = await create_pending(container, country_publisher, schedule_id=100)

    result = await container.processor_for(CountryISO.PE).handle_batch([first, second])

    assert result.outcome_of(first.message_id) == MessageOutcome.PROCESSED
    assert result.outcome_of(second.message_id) == MessageOutcome.REJECTED
    assert tracking_store.records[second_id].status == AppointmentStatus.PENDING
    assert len(country_store.rows(CountryISO.PE)) == 1
    assert len(event_bus.named("AppointmentProcessed")) == 1


@pytest.mark.asyncio
async def test_redelivery_after_partial_progress_completes(
    container, country_publisher, tracking_store, country_store, schedule_store, clock
):
    """Test a message redelivered after the reservation step still finishes."""
    appointment_id, message = await create_pending(container, country_publisher)
    await schedule_store.reserve(100, CountryISO.PE, appointment_id, clock())

    result = await container.processor_for(CountryISO.PE).handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.PROCESSED
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PROCESSED
    assert len(country_store.rows(CountryISO.PE)) == 1


@pytest.mark.asyncio
async def test_malformed_messages_are_discarded(container, country_publisher):
    """Test malformed messages are acked without retry."""
    _, valid = await create_pending(container, country_publisher)
    missing_field = StreamMessage(
        message_id="10-0",
        fields={"event_name": "AppointmentCreated", "payload": '{"appointmentId": "x"}'},
    )
    bad_json = StreamMessage(
        message_id="11-0", fields={"event_name": "AppointmentCreated", "payload": "{not json"}
    )
    not_utf8 = StreamMessage(
        message_id="12-0", fields={"event_name": "AppointmentCreated", "payload": b"\xff\xfe"}
    )

    result = await container.processor_for(CountryISO.PE).handle_batch(
        [missing_field, valid, bad_json, not_utf8]
    )

    assert result.outcome_of("10-0") == MessageOutcome.DISCARDED
    assert result.outcome_of(valid.message_id) == MessageOutcome.PROCESSED
    assert result.outcome_of("11-0") == MessageOutcome.DISCARDED
    assert result.outcome_of("12-0") == MessageOutcome.DISCARDED
    assert result.failed_ids == []


@pytest.mark.asyncio
async def test_infrastructure_failure_is_left_for_redelivery(
    container, country_publisher, tracking_store, country_store
):
    """Test a store outage fails the message without acking it, and a retry succeeds."""
    appointment_id, message = await create_pending(container, country_publisher)
    processor = container.processor_for(CountryISO.PE)

    country_store.fail = True
    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.FAILED
    assert result.failed_ids == [message.message_id]
    assert result.acknowledged_ids == []
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PENDING

    country_store.fail = False
    result = await processor.handle_batch([message])

    assert result.outcome_of(message.message_id) == MessageOutcome.PROCESSED
    assert tracking_store.records[appointment_id].status == AppointmentStatus.PROCESSED


@pytest.mark.asyncio
async def test_processes_raw_and_sns_wrapped_messages(container, country_publisher):
    """Test messages arrive in any supported envelope."""
    _, created = await create_pending(container, country_publisher)
    payload = created.fields["payload"]
    sns = StreamMessage(message_id="20-0", fields={"Type": "Notification", "Message": payload})

    result = await container.processor_for(CountryISO.PE).handle_batch([sns])

    assert result.outcome_of("20-0") == MessageOutcome.PROCESSED

"""Pipeline workers.

Each command runs one asynchronous stage as a Redis Streams consumer:

    python -m booking.worker country PE
    python -m booking.worker completion
"""

import asyncio
import signal

import click
import structlog

from booking.config import Settings, get_settings
from booking.container import ServiceContainer, build_container
from booking.messaging.consumer import BatchHandler, StreamConsumer
from booking.middleware.logging import configure_logging
from booking.schemas.appointments import SUPPORTED_COUNTRIES, CountryISO

logger = structlog.get_logger(__name__)


def build_consumer(
    container: ServiceContainer, stream: str, handler: BatchHandler, consumer_name: str
) -> StreamConsumer:
    settings = container.settings
    if container.redis_client is None:
        raise click.ClickException("Worker needs a Redis connection")
    return StreamConsumer(
        redis_client=container.redis_client,
        stream=stream,
        group=settings.consumer_group,
        consumer_name=consumer_name,
        handler=handler,
        batch_size=settings.consumer_batch_size,
        block_ms=settings.consumer_block_ms,
        claim_idle_ms=settings.consumer_claim_idle_ms,
    )


async def _run(settings: Settings, stage: str, country: CountryISO | None) -> None:
    container = build_container(settings)
    if country is not None:
        stream = settings.country_streams()[country.value]
        handler: BatchHandler = container.processor_for(country)
        consumer_name = f"{settings.consumer_name}-{country.value.lower()}"
    else:
        stream = settings.completion_source_stream
        handler = container.completion
        consumer_name = f"{settings.consumer_name}-completion"

    consumer = build_consumer(container, stream, handler, consumer_name)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("worker_starting", stage=stage, stream=stream, consumer=consumer_name)
    try:
        await consumer.run_forever(stop_event)
    finally:
        await container.aclose()


@click.group()
def cli():
    """Appointment pipeline workers."""
    pass


@cli.command()
@click.argument(
    "country_iso", type=click.Choice(SUPPORTED_COUNTRIES, case_sensitive=False)
)
def country(country_iso: str):
    """Process created appointments for one country."""
    settings = get_settings()
    configure_logging(settings)
    asyncio.run(_run(settings, "country", CountryISO(country_iso.upper())))


@cli.command()
def completion():
    """Complete processed appointments."""
    settings = get_settings()
    configure_logging(settings)
    asyncio.run(_run(settings, "completion", None))


if __name__ == "__main__":
    cli()

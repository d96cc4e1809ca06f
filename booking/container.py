"""Explicit wiring of stores, channels and services.

``build_container`` is called once per process (API lifespan or worker
entry point) and the resulting container is passed down from there.
"""

from dataclasses import dataclass, field

import redis.asyncio as redis
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from booking.config import Settings
from booking.core.clock import Clock, utc_now
from booking.core.redis_client import (
    check_redis_connection,
    close_redis_connection,
    create_redis_client,
)
from booking.database import check_database_connection, create_engine, create_session_factory
from booking.messaging.event_channel import (
    CountryEventPublisher,
    EventChannel,
    StreamEventBus,
)
from booking.schemas.appointments import CountryISO
from booking.services.completion_handler import CompletionHandler
from booking.services.country_processor import CountryProcessor
from booking.services.intake_service import IntakeService
from booking.services.query_service import QueryService
from booking.stores.base import CountryStore, ScheduleStore, TrackingStore
from booking.stores.country_store import SqlCountryStore
from booking.stores.schedule_store import SqlScheduleStore
from booking.stores.tracking_store import RedisTrackingStore

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything a process needs, built once."""

    settings: Settings
    tracking_store: TrackingStore
    country_store: CountryStore
    schedule_store: ScheduleStore
    event_bus: EventChannel
    country_publisher: EventChannel
    intake: IntakeService
    query: QueryService
    completion: CompletionHandler
    processors: dict[CountryISO, CountryProcessor] = field(default_factory=dict)
    engine: AsyncEngine | None = None
    redis_client: redis.Redis | None = None

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        tracking_store: TrackingStore,
        country_store: CountryStore,
        schedule_store: ScheduleStore,
        event_bus: EventChannel,
        country_publisher: EventChannel,
        clock: Clock = utc_now,
        engine: AsyncEngine | None = None,
        redis_client: redis.Redis | None = None,
    ) -> "ServiceContainer":
        """Build the services on top of already constructed stores and channels."""
        processors = {
            country: CountryProcessor(
                country=country,
                tracking_store=tracking_store,
                country_store=country_store,
                schedule_store=schedule_store,
                event_bus=event_bus,
                clock=clock,
            )
            for country in CountryISO
        }
        return cls(
            settings=settings,
            tracking_store=tracking_store,
            country_store=country_store,
            schedule_store=schedule_store,
            event_bus=event_bus,
            country_publisher=country_publisher,
            intake=IntakeService(tracking_store, schedule_store, country_publisher, clock),
            query=QueryService(tracking_store, country_store),
            completion=CompletionHandler(tracking_store, event_bus, clock),
            processors=processors,
            engine=engine,
            redis_client=redis_client,
        )

    def processor_for(self, country: CountryISO) -> CountryProcessor:
        return self.processors[country]

    async def check_health(self) -> dict[str, bool]:
        """Connectivity of the backing services."""
        database = await check_database_connection(self.engine) if self.engine else False
        redis_ok = (
            await check_redis_connection(self.redis_client) if self.redis_client else False
        )
        return {"database": database, "redis": redis_ok}

    async def aclose(self) -> None:
        """Release connections."""
        if self.redis_client is not None:
            await close_redis_connection(self.redis_client)
            logger.info("redis_connection_closed")
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("database_connections_closed")


def build_container(settings: Settings) -> ServiceContainer:
    """Create clients, stores and services from settings."""
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    redis_client = create_redis_client(settings)

    return ServiceContainer.assemble(
        settings=settings,
        tracking_store=RedisTrackingStore(redis_client, settings.tracking_key_prefix),
        country_store=SqlCountryStore(session_factory, settings.country_tables()),
        schedule_store=SqlScheduleStore(session_factory),
        event_bus=StreamEventBus(
            redis_client, settings.event_bus_stream, settings.stream_max_len
        ),
        country_publisher=CountryEventPublisher(
            redis_client, settings.country_streams(), settings.stream_max_len
        ),
        engine=engine,
        redis_client=redis_client,
    )

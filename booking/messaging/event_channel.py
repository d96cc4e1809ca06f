"""
Event channel publishers.

Two shapes exist: a generic bus that appends every event to one stream, and
a country-addressed publisher that picks the stream from a fixed
country -> stream routing table.
"""

import json
from collections.abc import Mapping
from typing import Protocol

import redis.asyncio as redis
import structlog

from booking.core.exceptions import PublishError, UnsupportedCountryError
from booking.schemas.events import AppointmentEvent, DomainEvent

logger = structlog.get_logger(__name__)


class EventChannel(Protocol):
    """Anything events can be published to."""

    async def publish(self, event: DomainEvent) -> str:
        """Publish an event and return the transport's message id."""
        ...


def to_stream_fields(event: DomainEvent) -> dict[str, str]:
    """
    Convert an event to a Redis-compatible stream entry.

    Stream entry values must be strings, so the flat payload travels as JSON.
    """
    return {
        "event_id": event.event_id,
        "event_name": event.event_name,
        "aggregate_id": event.aggregate_id,
        "occurred_at": event.occurred_at.isoformat(),
        "payload": json.dumps(event.to_primitives()),
    }


class _StreamPublisher:
    def __init__(self, redis_client: redis.Redis, max_len: int = 10000):
        self.redis = redis_client
        self.max_len = max_len

    async def _append(self, stream_key: str, event: DomainEvent) -> str:
        try:
            message_id = await self.redis.xadd(
                stream_key, to_stream_fields(event), maxlen=self.max_len, approximate=True
            )
        except redis.RedisError as e:
            logger.error(
                "event_publish_failed",
                stream=stream_key,
                event_name=event.event_name,
                event_id=event.event_id,
                aggregate_id=event.aggregate_id,
                error=str(e),
            )
            raise PublishError(f"publish {event.event_name} to {stream_key}", e) from e

        logger.info(
            "event_published",
            stream=stream_key,
            event_name=event.event_name,
            event_id=event.event_id,
            aggregate_id=event.aggregate_id,
            message_id=message_id,
        )
        return message_id


class StreamEventBus(_StreamPublisher):
    """Generic bus: every event goes to the same stream."""

    def __init__(self, redis_client: redis.Redis, stream_key: str, max_len: int = 10000):
        super().__init__(redis_client, max_len)
        self.stream_key = stream_key

    async def publish(self, event: DomainEvent) -> str:
        return await self._append(self.stream_key, event)


class CountryEventPublisher(_StreamPublisher):
    """Routes appointment events to the stream of the appointment's country."""

    def __init__(
        self,
        redis_client: redis.Redis,
        routes: Mapping[str, str],
        max_len: int = 10000,
    ):
        super().__init__(redis_client, max_len)
        self.routes = {str(country).upper(): stream for country, stream in routes.items()}

    def stream_for(self, country_iso: str) -> str:
        try:
            return self.routes[country_iso.upper()]
        except KeyError:
            raise UnsupportedCountryError(country_iso) from None

    async def publish(self, event: DomainEvent) -> str:
        if not isinstance(event, AppointmentEvent):
            raise TypeError(f"{event.event_name} carries no country to route on")
        return await self._append(self.stream_for(event.country_iso), event)

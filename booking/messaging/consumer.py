"""Consumer-group reader feeding batches from a Redis Stream to a handler."""

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol

import redis.asyncio as redis
import structlog

from booking.messaging.batch import BatchResult, StreamMessage

logger = structlog.get_logger(__name__)


class BatchHandler(Protocol):
    async def handle_batch(self, messages: Sequence[StreamMessage]) -> BatchResult: ...


class StreamConsumer:
    """
    Reads one stream as a member of a consumer group.

    Messages whose outcome is acknowledged are XACKed; failed ones stay in the
    group's pending list and come back through XAUTOCLAIM once they have been
    idle for ``claim_idle_ms``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream: str,
        group: str,
        consumer_name: str,
        handler: BatchHandler,
        batch_size: int = 10,
        block_ms: int = 1000,
        claim_idle_ms: int = 60000,
    ):
        self.redis = redis_client
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self.handler = handler
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.claim_idle_ms = claim_idle_ms

    async def ensure_group(self) -> bool:
        """
        Create the consumer group (and the stream) if missing.

        Returns:
            True if created, False if it already existed
        """
        try:
            await self.redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise
        logger.info("consumer_group_created", stream=self.stream, group=self.group)
        return True

    async def claim_stuck(self) -> list[StreamMessage]:
        """Take over pending messages idle for longer than the threshold."""
        response = await self.redis.xautoclaim(
            self.stream,
            self.group,
            self.consumer_name,
            self.claim_idle_ms,
            count=self.batch_size,
        )
        # [next_start_id, messages] or, on Redis 7, [next_start_id, messages, deleted_ids]
        claimed = self._to_messages(response[1])
        if claimed:
            logger.info("messages_reclaimed", stream=self.stream, count=len(claimed))
        return claimed

    async def read_batch(self) -> list[StreamMessage]:
        """Read new messages delivered to this consumer."""
        response = await self.redis.xreadgroup(
            groupname=self.group,
            consumername=self.consumer_name,
            streams={self.stream: ">"},
            count=self.batch_size,
            block=self.block_ms,
        )
        messages: list[StreamMessage] = []
        for _stream, entries in response or []:
            messages.extend(self._to_messages(entries))
        return messages

    async def ack(self, message_ids: Sequence[str]) -> None:
        if message_ids:
            await self.redis.xack(self.stream, self.group, *message_ids)

    async def run_once(self) -> BatchResult | None:
        """
        Handle one batch: reclaimed messages first, then new ones.

        Returns:
            The batch outcome, or None when nothing was delivered
        """
        messages = await self.claim_stuck()
        if len(messages) < self.batch_size:
            messages.extend(await self.read_batch())
        if not messages:
            return None

        result = await self.handler.handle_batch(messages)
        await self.ack(result.acknowledged_ids)
        if result.failed_ids:
            logger.warning(
                "messages_left_pending",
                stream=self.stream,
                message_ids=result.failed_ids,
            )
        return result

    async def run_forever(self, stop_event: asyncio.Event, error_backoff: float = 1.0) -> None:
        """Poll until ``stop_event`` is set."""
        await self.ensure_group()
        logger.info(
            "consumer_started",
            stream=self.stream,
            group=self.group,
            consumer=self.consumer_name,
        )
        while not stop_event.is_set():
            try:
                await self.run_once()
            except redis.RedisError as e:
                logger.error("consumer_poll_failed", stream=self.stream, error=str(e))
                await self._backoff(stop_event, error_backoff)
            except Exception:
                logger.exception("consumer_poll_crashed", stream=self.stream)
                await self._backoff(stop_event, error_backoff)
        logger.info("consumer_stopped", stream=self.stream, consumer=self.consumer_name)

    @staticmethod
    async def _backoff(stop_event: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _to_messages(self, entries: Any) -> list[StreamMessage]:
        return [
            StreamMessage(message_id=message_id, fields=dict(fields), stream=self.stream)
            for message_id, fields in entries or []
            if fields is not None
        ]

"""Primary tracking store backed by Redis.

Each appointment is one JSON document under ``{prefix}:{appointment_id}``.
A sorted set per insured person (``{prefix}:insured:{insured_id}``), scored
by the creation timestamp, gives the secondary access path. Conditional
writes run as Lua scripts so the check and the write are atomic on the
server.
"""

import json
from typing import Any

import redis.asyncio as redis
import structlog
from pydantic import ValidationError

from booking.core.exceptions import (
    AppointmentConflictError,
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
    StoreUnavailableError,
)
from booking.core.pii import mask_insured_id
from booking.schemas.appointments import Appointment, AppointmentStatus

logger = structlog.get_logger(__name__)

# KEYS: record key, insured index key
# ARGV: record json, created-at score, appointment id
CREATE_IF_PENDING_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current then
    local status = cjson.decode(current)['status']
    if status ~= 'pending' then
        return 0
    end
end
redis.call('SET', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[3])
return 1
"""

# KEYS: record key
# ARGV: expected status, new record json
COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    return {0, ''}
end
local status = cjson.decode(current)['status']
if status ~= ARGV[1] then
    return {0, status}
end
redis.call('SET', KEYS[1], ARGV[2])
return {1, status}
"""


class RedisTrackingStore:
    """Tracking store on Redis."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "appointment"):
        """Initialize store with Redis client."""
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._create_script = redis_client.register_script(CREATE_IF_PENDING_SCRIPT)
        self._cas_script = redis_client.register_script(COMPARE_AND_SET_SCRIPT)

    def record_key(self, appointment_id: str) -> str:
        return f"{self.key_prefix}:{appointment_id}"

    def insured_index_key(self, insured_id: str) -> str:
        return f"{self.key_prefix}:insured:{insured_id}"

    async def create(self, appointment: Appointment) -> None:
        """
        Store a new pending appointment.

        Re-running the same create over a still-pending record is accepted;
        a record that has already advanced is never overwritten.

        Raises:
            AppointmentConflictError: If the stored record is no longer pending
            StoreUnavailableError: If Redis fails
        """
        try:
            created = await self._create_script(
                keys=[
                    self.record_key(appointment.appointment_id),
                    self.insured_index_key(appointment.insured_id),
                ],
                args=[
                    json.dumps(appointment.to_record()),
                    appointment.created_at.timestamp(),
                    appointment.appointment_id,
                ],
            )
        except redis.RedisError as e:
            logger.error(
                "tracking_store_create_failed", error=str(e), **appointment.log_context()
            )
            raise StoreUnavailableError("tracking_store.create", e) from e

        if not int(created):
            raise AppointmentConflictError(appointment.appointment_id)

        logger.info("tracking_record_created", **appointment.log_context())

    async def get(self, appointment_id: str) -> Appointment | None:
        """Load one appointment, or None when no record exists."""
        try:
            raw = await self.redis.get(self.record_key(appointment_id))
        except redis.RedisError as e:
            logger.error("tracking_store_get_failed", appointment_id=appointment_id, error=str(e))
            raise StoreUnavailableError("tracking_store.get", e) from e

        if raw is None:
            return None
        return self._decode(raw, "tracking_store.get")

    async def list_by_insured(self, insured_id: str) -> list[Appointment]:
        """Appointments of one insured person, newest first."""
        try:
            appointment_ids = await self.redis.zrevrange(self.insured_index_key(insured_id), 0, -1)
            if not appointment_ids:
                return []
            raw_records = await self.redis.mget(
                [self.record_key(appointment_id) for appointment_id in appointment_ids]
            )
        except redis.RedisError as e:
            logger.error(
                "tracking_store_list_failed",
                insured_id=mask_insured_id(insured_id),
                error=str(e),
            )
            raise StoreUnavailableError("tracking_store.list_by_insured", e) from e

        return [
            self._decode(raw, "tracking_store.list_by_insured")
            for raw in raw_records
            if raw is not None
        ]

    async def compare_and_set(
        self, appointment: Appointment, expected_status: AppointmentStatus
    ) -> None:
        """
        Replace the stored record while its status is still ``expected_status``.

        Raises:
            AppointmentNotFoundError: If there is no record to update
            InvalidStatusTransitionError: If the stored status differs
            StoreUnavailableError: If Redis fails
        """
        try:
            applied, current = await self._cas_script(
                keys=[self.record_key(appointment.appointment_id)],
                args=[expected_status.value, json.dumps(appointment.to_record())],
            )
        except redis.RedisError as e:
            logger.error(
                "tracking_store_update_failed", error=str(e), **appointment.log_context()
            )
            raise StoreUnavailableError("tracking_store.compare_and_set", e) from e

        if int(applied):
            logger.info(
                "tracking_record_updated",
                previous_status=expected_status.value,
                **appointment.log_context(),
            )
            return
        if not current:
            raise AppointmentNotFoundError(appointment.appointment_id)
        raise InvalidStatusTransitionError(
            appointment.appointment_id, str(current), expected_status.value
        )

    def _decode(self, raw: str | bytes, operation: str) -> Appointment:
        try:
            record: Any = json.loads(raw)
            return Appointment.from_record(record)
        except (ValueError, ValidationError) as e:
            logger.error("tracking_record_malformed", operation=operation, error=str(e))
            raise StoreUnavailableError(operation, e) from e

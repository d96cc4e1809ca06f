"""Schedule store backed by the ``schedules`` table."""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.core.clock import ensure_utc
from booking.core.exceptions import (
    ScheduleConflictError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from booking.models.schedules import schedules
from booking.schemas.appointments import CountryISO
from booking.schemas.schedules import Schedule
from booking.stores.base import ReservationOutcome

logger = structlog.get_logger(__name__)


class SqlScheduleStore:
    """Schedules accessed through SQLAlchemy Core."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    async def get(self, schedule_id: int, country: CountryISO) -> Schedule | None:
        """
        Get a schedule by id within one country.

        Returns:
            The schedule, or None if the country has no such schedule
        """
        stmt = select(schedules).where(
            and_(
                schedules.c.schedule_id == schedule_id,
                schedules.c.country_iso == country.value,
            )
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                row = result.fetchone()
        except SQLAlchemyError as e:
            logger.error(
                "schedule_lookup_failed",
                schedule_id=schedule_id,
                country_iso=country.value,
                error=str(e),
            )
            raise StoreUnavailableError("schedule_store.get", e) from e

        if row is None:
            return None
        return self._to_schedule(dict(row._mapping))

    async def reserve(
        self,
        schedule_id: int,
        country: CountryISO,
        appointment_id: str,
        now: datetime,
    ) -> ReservationOutcome:
        """
        Reserve a schedule for an appointment (available -> reserved).

        A schedule already reserved by the same appointment is accepted so that
        a redelivered message can run through this step again.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
            ScheduleConflictError: If another appointment holds the schedule
            StoreUnavailableError: If the database fails
        """
        key = and_(
            schedules.c.schedule_id == schedule_id,
            schedules.c.country_iso == country.value,
        )
        reserve_stmt = (
            update(schedules)
            .where(and_(key, schedules.c.is_available.is_(True)))
            .values(
                is_available=False,
                reserved_by=appointment_id,
                reserved_at=now,
                updated_at=now,
            )
        )

        try:
            async with self.session_factory() as session:
                result = await session.execute(reserve_stmt)
                await session.commit()
                if result.rowcount == 1:
                    logger.info(
                        "schedule_reserved",
                        schedule_id=schedule_id,
                        country_iso=country.value,
                        appointment_id=appointment_id,
                    )
                    return ReservationOutcome.RESERVED

                current = await session.execute(
                    select(schedules.c.reserved_by).where(key)
                )
                row = current.fetchone()
        except SQLAlchemyError as e:
            logger.error(
                "schedule_reservation_failed",
                schedule_id=schedule_id,
                country_iso=country.value,
                appointment_id=appointment_id,
                error=str(e),
            )
            raise StoreUnavailableError("schedule_store.reserve", e) from e

        if row is None:
            raise ScheduleNotFoundError(schedule_id, country.value)
        if row.reserved_by == appointment_id:
            logger.info(
                "schedule_already_reserved_by_appointment",
                schedule_id=schedule_id,
                country_iso=country.value,
                appointment_id=appointment_id,
            )
            return ReservationOutcome.ALREADY_HELD
        raise ScheduleConflictError(schedule_id, country.value, row.reserved_by)

    @staticmethod
    def _to_schedule(row: dict[str, Any]) -> Schedule:
        return Schedule(
            schedule_id=row["schedule_id"],
            country_iso=CountryISO(row["country_iso"]),
            center_id=row["center_id"],
            specialty_id=row["specialty_id"],
            medic_id=row["medic_id"],
            date=ensure_utc(row["available_date"]),
            is_available=row["is_available"],
            reserved_by=row["reserved_by"],
        )

"""Country store: one relational table per country."""

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import Table, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.core.clock import ensure_utc
from booking.core.exceptions import StoreUnavailableError
from booking.core.pii import mask_insured_id
from booking.models.country_appointments import country_appointment_table
from booking.schemas.appointments import (
    Appointment,
    AppointmentStatus,
    CountryISO,
    ScheduleSnapshot,
)

logger = structlog.get_logger(__name__)

# Columns refreshed when a redelivered appointment is written again
_UPSERT_UPDATE_COLUMNS = (
    "status",
    "center_id",
    "specialty_id",
    "medic_id",
    "appointment_date",
    "updated_at",
)


def upsert_statement(dialect_name: str, table: Table, values: dict[str, Any]) -> Any:
    """
    Build an insert-or-update keyed by ``appointment_id`` for the dialect.

    Raises:
        NotImplementedError: For dialects without a native upsert
    """
    if dialect_name == "postgresql":
        stmt = postgresql.insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[table.c.appointment_id],
            set_={column: stmt.excluded[column] for column in _UPSERT_UPDATE_COLUMNS},
        )
    if dialect_name == "sqlite":
        stmt = sqlite.insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[table.c.appointment_id],
            set_={column: stmt.excluded[column] for column in _UPSERT_UPDATE_COLUMNS},
        )
    if dialect_name in ("mysql", "mariadb"):
        stmt = mysql.insert(table).values(**values)
        return stmt.on_duplicate_key_update(
            {column: stmt.inserted[column] for column in _UPSERT_UPDATE_COLUMNS}
        )
    raise NotImplementedError(f"No upsert support for dialect {dialect_name}")


class SqlCountryStore:
    """Country appointment tables accessed through SQLAlchemy Core."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table_names: Mapping[str, str],
    ):
        """
        Initialize the store.

        Args:
            session_factory: Async session factory
            table_names: Country code -> table name, in lookup order
        """
        self.session_factory = session_factory
        self.tables: dict[CountryISO, Table] = {
            CountryISO(country): country_appointment_table(name, country)
            for country, name in table_names.items()
        }

    def table_for(self, country: CountryISO) -> Table:
        return self.tables[country]

    async def upsert(self, appointment: Appointment) -> None:
        """Insert the appointment, or refresh it if it is already there."""
        table = self.table_for(appointment.country_iso)
        schedule = appointment.schedule
        values = {
            "appointment_id": appointment.appointment_id,
            "insured_id": appointment.insured_id,
            "schedule_id": appointment.schedule_id,
            "country_iso": appointment.country_iso.value,
            "center_id": schedule.center_id if schedule else None,
            "specialty_id": schedule.specialty_id if schedule else None,
            "medic_id": schedule.medic_id if schedule else None,
            "appointment_date": schedule.date if schedule else None,
            "status": appointment.status.value,
            "created_at": appointment.created_at,
            "updated_at": appointment.updated_at,
        }

        try:
            async with self.session_factory() as session:
                dialect_name = session.get_bind().dialect.name
                await session.execute(upsert_statement(dialect_name, table, values))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "country_store_upsert_failed",
                table=table.name,
                error=str(e),
                **appointment.log_context(),
            )
            raise StoreUnavailableError("country_store.upsert", e) from e

        logger.info("country_record_saved", table=table.name, **appointment.log_context())

    async def find_by_appointment_id(
        self, appointment_id: str, country: CountryISO | None = None
    ) -> Appointment | None:
        """
        Look an appointment up by id.

        With a country hint only that country's table is read; without one,
        every country table is searched in order and the first hit wins.
        """
        tables = [self.table_for(country)] if country else list(self.tables.values())

        try:
            async with self.session_factory() as session:
                for table in tables:
                    stmt = select(table).where(table.c.appointment_id == appointment_id).limit(1)
                    result = await session.execute(stmt)
                    row = result.fetchone()
                    if row is not None:
                        return self._to_appointment(dict(row._mapping))
        except SQLAlchemyError as e:
            logger.error(
                "country_store_find_failed", appointment_id=appointment_id, error=str(e)
            )
            raise StoreUnavailableError("country_store.find_by_appointment_id", e) from e

        return None

    async def list_by_insured(self, insured_id: str) -> list[Appointment]:
        """Appointments of one insured person across all country tables."""
        appointments: list[Appointment] = []
        try:
            async with self.session_factory() as session:
                for table in self.tables.values():
                    stmt = (
                        select(table)
                        .where(table.c.insured_id == insured_id)
                        .order_by(table.c.created_at.desc())
                    )
                    result = await session.execute(stmt)
                    appointments.extend(
                        self._to_appointment(dict(row._mapping)) for row in result.fetchall()
                    )
        except SQLAlchemyError as e:
            logger.error(
                "country_store_list_failed",
                insured_id=mask_insured_id(insured_id),
                error=str(e),
            )
            raise StoreUnavailableError("country_store.list_by_insured", e) from e

        return appointments

    @staticmethod
    def _to_appointment(row: dict[str, Any]) -> Appointment:
        status = AppointmentStatus(row["status"])
        updated_at = ensure_utc(row["updated_at"])
        schedule = None
        if row.get("appointment_date") is not None:
            schedule = ScheduleSnapshot(
                center_id=row["center_id"] or 0,
                specialty_id=row["specialty_id"] or 0,
                medic_id=row["medic_id"] or 0,
                date=ensure_utc(row["appointment_date"]),
            )
        return Appointment(
            appointment_id=row["appointment_id"],
            insured_id=row["insured_id"],
            country_iso=CountryISO(row["country_iso"]),
            schedule_id=row["schedule_id"],
            status=status,
            created_at=ensure_utc(row["created_at"]),
            updated_at=updated_at,
            # The row is written at processing time, so its update time is the
            # processing time for anything past pending.
            processed_at=None if status == AppointmentStatus.PENDING else updated_at,
            schedule=schedule,
        )

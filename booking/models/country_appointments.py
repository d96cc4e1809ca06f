"""Country appointment tables using SQLAlchemy Core.

Every supported country has its own table with an identical shape; the
table for a country is looked up through ``country_appointment_table``.
"""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Table,
    func,
)

from booking.models.schedules import metadata

_STATUS_VALUES = "('pending', 'processed', 'completed')"


def _country_table(name: str, country_iso: str) -> Table:
    return Table(
        name,
        metadata,
        Column("appointment_id", String(50), primary_key=True),
        Column("insured_id", String(10), nullable=False),
        Column("schedule_id", BigInteger, nullable=False),
        Column("country_iso", String(2), nullable=False, server_default=country_iso),
        # Snapshot of the schedule at processing time
        Column("center_id", Integer, nullable=True),
        Column("specialty_id", Integer, nullable=True),
        Column("medic_id", Integer, nullable=True),
        Column("appointment_date", DateTime(timezone=True), nullable=True),
        Column("status", String(20), nullable=False, server_default="processed"),
        # Audit fields
        Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        CheckConstraint(f"status IN {_STATUS_VALUES}", name=f"{name}_status_check"),
        Index(f"idx_{name}_insured_id", "insured_id"),
        Index(f"idx_{name}_schedule_id", "schedule_id"),
    )


appointments_pe = _country_table("appointments_pe", "PE")
appointments_cl = _country_table("appointments_cl", "CL")


def country_appointment_table(name: str, country_iso: str) -> Table:
    """
    Resolve a configured table name to its Table object.

    Tables for names other than the built-in ones are defined on first use so
    that deployments can rename them through configuration.
    """
    existing = metadata.tables.get(name)
    if existing is not None:
        return existing
    return _country_table(name, country_iso)

"""Schedules table model using SQLAlchemy Core."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    func,
    text,
)

# Metadata for all tables
metadata = MetaData()

# Bookable slots, one row per (schedule_id, country_iso)
schedules = Table(
    "schedules",
    metadata,
    Column("schedule_id", BigInteger, nullable=False),
    Column("country_iso", String(2), nullable=False),
    Column("center_id", Integer, nullable=False),
    Column("specialty_id", Integer, nullable=False),
    Column("medic_id", Integer, nullable=False),
    Column("available_date", DateTime(timezone=True), nullable=False),
    # Reservation state: available -> reserved, exactly once
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("reserved_by", String(50), nullable=True),
    Column("reserved_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    PrimaryKeyConstraint("schedule_id", "country_iso", name="schedules_pkey"),
    Index("idx_schedules_country_available", "country_iso", "is_available"),
)

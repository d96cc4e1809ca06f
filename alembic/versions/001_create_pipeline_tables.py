"""Create schedules and country appointment tables

Revision ID: 001_create_pipeline_tables
Revises:
Create Date: 2026-10-17

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

COUNTRY_TABLES = (("appointments_pe", "PE"), ("appointments_cl", "CL"))


def upgrade() -> None:
    """Create schedules and one appointments table per country."""
    op.create_table(
        "schedules",
        sa.Column("schedule_id", sa.BigInteger(), nullable=False),
        sa.Column("country_iso", sa.String(length=2), nullable=False),
        sa.Column("center_id", sa.Integer(), nullable=False),
        sa.Column("specialty_id", sa.Integer(), nullable=False),
        sa.Column("medic_id", sa.Integer(), nullable=False),
        sa.Column("available_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("reserved_by", sa.String(length=50), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("schedule_id", "country_iso", name="schedules_pkey"),
    )
    op.create_index(
        "idx_schedules_country_available", "schedules", ["country_iso", "is_available"]
    )

    for table_name, country_iso in COUNTRY_TABLES:
        op.create_table(
            table_name,
            sa.Column("appointment_id", sa.String(length=50), nullable=False),
            sa.Column("insured_id", sa.String(length=10), nullable=False),
            sa.Column("schedule_id", sa.BigInteger(), nullable=False),
            sa.Column(
                "country_iso",
                sa.String(length=2),
                server_default=country_iso,
                nullable=False,
            ),
            sa.Column("center_id", sa.Integer(), nullable=True),
            sa.Column("specialty_id", sa.Integer(), nullable=True),
            sa.Column("medic_id", sa.Integer(), nullable=True),
            sa.Column("appointment_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "status",
                sa.String(length=20),
                server_default="processed",
                nullable=False,
            ),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            ),
            sa.PrimaryKeyConstraint("appointment_id", name=f"{table_name}_pkey"),
            sa.CheckConstraint(
                "status IN ('pending', 'processed', 'completed')",
                name=f"{table_name}_status_check",
            ),
        )
        op.create_index(f"idx_{table_name}_insured_id", table_name, ["insured_id"])
        op.create_index(f"idx_{table_name}_schedule_id", table_name, ["schedule_id"])


def downgrade() -> None:
    """Drop pipeline tables."""
    for table_name, _ in reversed(COUNTRY_TABLES):
        op.drop_index(f"idx_{table_name}_schedule_id", table_name=table_name)
        op.drop_index(f"idx_{table_name}_insured_id", table_name=table_name)
        op.drop_table(table_name)

    op.drop_index("idx_schedules_country_available", table_name="schedules")
    op.drop_table("schedules")

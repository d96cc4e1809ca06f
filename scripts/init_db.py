"""Script to initialize the database."""

import asyncio

from booking.config import get_settings
from booking.database import create_engine
from booking.models import country_appointment_table, metadata


async def init_db() -> None:
    """Create the schedules table and every configured country table."""
    settings = get_settings()
    for country, table_name in settings.country_tables().items():
        country_appointment_table(table_name, country)

    engine = create_engine(settings)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
    finally:
        await engine.dispose()

    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())

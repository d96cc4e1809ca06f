"""Seed bookable schedules for every supported country.

Usage: python scripts/seed_schedules.py [--days N]
"""

import argparse
import asyncio
from datetime import datetime, time, timedelta

from sqlalchemy import delete, insert

from booking.config import get_settings
from booking.core.clock import utc_now
from booking.database import create_engine
from booking.models import schedules

# (center_id, specialty_id, medic_id, hours of the day) per country
SLOT_TEMPLATES: dict[str, list[tuple[int, int, int, tuple[int, ...]]]] = {
    "PE": [
        (1, 1, 1, (9, 10)),  # Hospital Nacional Lima, cardiology
        (1, 2, 2, (11, 12)),  # Hospital Nacional Lima, dermatology
        (2, 3, 3, (8, 9)),  # Clinica San Borja, pediatrics
        (2, 4, 4, (13, 14)),  # Clinica San Borja, gynecology
    ],
    "CL": [
        (3, 1, 5, (9, 10)),  # Hospital Salvador, cardiology
        (3, 2, 6, (11, 15)),  # Hospital Salvador, dermatology
        (4, 5, 7, (8, 9)),  # Clinica Las Condes, neurology
        (4, 6, 8, (10, 16)),  # Clinica Las Condes, ophthalmology
    ],
}


def build_schedule_rows(start: datetime, days: int) -> list[dict]:
    """Rows for ``days`` days of slots; ids restart at 1 for each country."""
    rows = []
    for country_iso, templates in SLOT_TEMPLATES.items():
        schedule_id = 1
        for day in range(1, days + 1):
            date = (start + timedelta(days=day)).date()
            for center_id, specialty_id, medic_id, hours in templates:
                for hour in hours:
                    rows.append(
                        {
                            "schedule_id": schedule_id,
                            "country_iso": country_iso,
                            "center_id": center_id,
                            "specialty_id": specialty_id,
                            "medic_id": medic_id,
                            "available_date": datetime.combine(
                                date, time(hour=hour), tzinfo=start.tzinfo
                            ),
                            "is_available": True,
                        }
                    )
                    schedule_id += 1
    return rows


async def seed(days: int) -> None:
    """Replace all schedules with freshly generated ones."""
    settings = get_settings()
    engine = create_engine(settings)
    rows = build_schedule_rows(utc_now(), days)
    try:
        async with engine.begin() as conn:
            await conn.execute(delete(schedules))
            await conn.execute(insert(schedules), rows)
    finally:
        await engine.dispose()

    print(f"✓ Seeded {len(rows)} schedules")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--days", type=int, default=5, help="Days of slots to create")
    args = parser.parse_args()
    asyncio.run(seed(args.days))

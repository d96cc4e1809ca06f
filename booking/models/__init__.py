"""Database models."""

from booking.models.country_appointments import (
    appointments_cl,
    appointments_pe,
    country_appointment_table,
)
from booking.models.schedules import metadata, schedules

__all__ = [
    "appointments_cl",
    "appointments_pe",
    "country_appointment_table",
    "metadata",
    "schedules",
]

"""Schedule schemas."""

from datetime import datetime

from pydantic import BaseModel

from booking.schemas.appointments import CountryISO, ScheduleSnapshot


class Schedule(BaseModel):
    """A bookable slot for one country."""

    schedule_id: int
    country_iso: CountryISO
    center_id: int
    specialty_id: int
    medic_id: int
    date: datetime
    is_available: bool = True
    reserved_by: str | None = None

    def snapshot(self) -> ScheduleSnapshot:
        """Details copied onto an appointment that books this slot."""
        return ScheduleSnapshot(
            center_id=self.center_id,
            specialty_id=self.specialty_id,
            medic_id=self.medic_id,
            date=self.date,
        )

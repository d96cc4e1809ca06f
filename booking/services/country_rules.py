"""Country-specific processing rules.

Each supported country maps to a rules object applied by its processor
before the appointment is written to the country store. Supporting a new
country means adding an entry to ``COUNTRY_RULES``.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol

import structlog

from booking.core.exceptions import CountryRuleViolationError, UnsupportedCountryError
from booking.schemas.appointments import Appointment, CountryISO
from booking.schemas.schedules import Schedule

logger = structlog.get_logger(__name__)


class CountryRules(Protocol):
    async def apply(self, appointment: Appointment, schedule: Schedule) -> None:
        """Check the appointment; raise a business error to reject it."""
        ...


@dataclass(frozen=True)
class RegistryRules:
    """Rules shared by every country: the booking stays inside its country.

    ``registry`` names the national insurance registry the country checks
    against and is attached to the log trail.
    """

    country: CountryISO
    registry: str

    async def apply(self, appointment: Appointment, schedule: Schedule) -> None:
        if appointment.country_iso != self.country:
            raise CountryRuleViolationError(
                f"{self.registry} rules cannot process appointments from "
                f"{appointment.country_iso.value}"
            )
        if schedule.country_iso != self.country:
            raise CountryRuleViolationError(
                f"Schedule {schedule.schedule_id} belongs to {schedule.country_iso.value}, "
                f"not {self.country.value}"
            )
        logger.info("country_rules_applied", registry=self.registry, **appointment.log_context())


COUNTRY_RULES: Mapping[CountryISO, CountryRules] = MappingProxyType(
    {
        CountryISO.PE: RegistryRules(CountryISO.PE, "RENIEC"),
        CountryISO.CL: RegistryRules(CountryISO.CL, "FONASA"),
    }
)


def rules_for(
    country: CountryISO, rules: Mapping[CountryISO, CountryRules] = COUNTRY_RULES
) -> CountryRules:
    try:
        return rules[country]
    except KeyError:
        raise UnsupportedCountryError(country.value) from None

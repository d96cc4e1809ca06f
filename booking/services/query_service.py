"""Read-side queries merging the tracking store and the country store."""

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from booking.core.exceptions import AppointmentNotFoundError, StoreUnavailableError
from booking.core.pii import mask_insured_id
from booking.schemas.appointments import (
    Appointment,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    normalize_insured_id,
    parse_country,
)
from booking.stores.base import CountryStore, TrackingStore

logger = structlog.get_logger(__name__)

TRACKING_SOURCE = "tracking"
COUNTRY_SOURCE = "country"


def merge_appointments(*sources: Iterable[AppointmentResponse]) -> list[AppointmentResponse]:
    """
    Merge appointment lists from several stores.

    Keeps one entry per appointment id, the one with the latest
    ``updated_at`` (the earlier source wins ties), newest created first.
    """
    latest: dict[str, AppointmentResponse] = {}
    for source in sources:
        for item in source:
            current = latest.get(item.appointment_id)
            if current is None or item.updated_at > current.updated_at:
                latest[item.appointment_id] = item
    return sorted(latest.values(), key=lambda item: item.created_at, reverse=True)


class QueryService:
    """Service for reading appointments."""

    def __init__(self, tracking_store: TrackingStore, country_store: CountryStore):
        self.tracking_store = tracking_store
        self.country_store = country_store

    async def list_by_insured(
        self, insured_id: Any, filters: AppointmentFilters | None = None
    ) -> AppointmentListResponse:
        """
        List an insured person's appointments from both stores.

        A store that fails is logged and treated as empty, so the other one
        still answers.

        Raises:
            InvalidInsuredIdError: If the insured id is malformed
        """
        insured = normalize_insured_id(insured_id)
        filters = filters or AppointmentFilters()

        tracked, stored = await asyncio.gather(
            self.tracking_store.list_by_insured(insured),
            self.country_store.list_by_insured(insured),
            return_exceptions=True,
        )
        tracked = self._or_empty(tracked, TRACKING_SOURCE, insured)
        stored = self._or_empty(stored, COUNTRY_SOURCE, insured)

        merged = merge_appointments(
            (AppointmentResponse.from_appointment(a, TRACKING_SOURCE) for a in tracked),
            (AppointmentResponse.from_appointment(a, COUNTRY_SOURCE) for a in stored),
        )
        offset = (filters.page - 1) * filters.page_size
        return AppointmentListResponse(
            total=len(merged),
            page=filters.page,
            page_size=filters.page_size,
            items=merged[offset : offset + filters.page_size],
        )

    async def get_appointment(
        self, appointment_id: str, country_iso: Any = None
    ) -> AppointmentResponse:
        """
        Get one appointment by id, preferring whichever store is fresher.

        Raises:
            AppointmentNotFoundError: If neither store has the appointment
            StoreUnavailableError: If both stores failed
        """
        country = parse_country(country_iso) if country_iso else None

        tracked, stored = await asyncio.gather(
            self.tracking_store.get(appointment_id),
            self.country_store.find_by_appointment_id(appointment_id, country),
            return_exceptions=True,
        )
        failures = [r for r in (tracked, stored) if isinstance(r, BaseException)]
        for result in failures:
            if not isinstance(result, Exception):
                raise result
            logger.warning(
                "appointment_lookup_source_failed",
                appointment_id=appointment_id,
                error=str(result),
            )
        if len(failures) == 2:
            raise StoreUnavailableError("query.get_appointment", failures[0])

        candidates = []
        if isinstance(tracked, Appointment):
            candidates.append(AppointmentResponse.from_appointment(tracked, TRACKING_SOURCE))
        if isinstance(stored, Appointment):
            candidates.append(AppointmentResponse.from_appointment(stored, COUNTRY_SOURCE))
        merged = merge_appointments(candidates)
        if not merged:
            raise AppointmentNotFoundError(appointment_id)
        return merged[0]

    @staticmethod
    def _or_empty(result: Any, source: str, insured_id: str) -> list[Appointment]:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(
                "appointment_source_failed",
                source=source,
                insured_id=mask_insured_id(insured_id),
                error=str(result),
            )
            return []
        return result

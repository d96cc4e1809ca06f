"""Appointment endpoints."""

from fastapi import APIRouter, Query, status

from booking.dependencies import IntakeServiceDep, QueryServiceDep
from booking.schemas.appointments import (
    AppointmentCreate,
    AppointmentCreatedResponse,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
)

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Appointments"],
    summary="Request a new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    intake: IntakeServiceDep,
) -> AppointmentCreatedResponse:
    """
    Accept an appointment request.

    The appointment is stored as pending and processed asynchronously by the
    country pipeline.

    Args:
        data: Appointment request
        intake: Intake service

    Returns:
        Appointment id and pending status
    """
    return await intake.create_appointment(data.insured_id, data.country_iso, data.schedule_id)


@router.get(
    "/insured/{insured_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments of an insured person",
)
async def list_insured_appointments(
    insured_id: str,
    query: QueryServiceDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List an insured person's appointments across all countries.

    Args:
        insured_id: Insured person's id
        query: Query service
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments, newest first
    """
    filters = AppointmentFilters(page=page, page_size=page_size)
    return await query.list_by_insured(insured_id, filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    query: QueryServiceDep,
    country_iso: str | None = Query(None),
) -> AppointmentResponse:
    """
    Get one appointment.

    Args:
        appointment_id: Appointment id
        query: Query service
        country_iso: Optional country hint for the country store lookup

    Returns:
        Appointment details
    """
    return await query.get_appointment(appointment_id, country_iso)

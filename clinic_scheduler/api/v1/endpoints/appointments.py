"""Appointment endpoints."""

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import CurrentUserId, Scheduling
from clinic_scheduler.schemas.appointments import (
    AppointmentCancel,
    AppointmentCheckIn,
    AppointmentComplete,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStart,
    AppointmentStatus,
    AppointmentUpdate,
    BatchCancelRequest,
    BatchConfirmRequest,
    BatchOperationResult,
    BookingResult,
)
from clinic_scheduler.schemas.availability import (
    CalendarQuery,
    CalendarResponse,
    DailyScheduleResponse,
    SlotListResponse,
    SlotQuery,
)

router = APIRouter()


@router.post(
    "/",
    response_model=BookingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> BookingResult:
    """
    Book an appointment, optionally as a recurring series.

    Args:
        data: Appointment creation data
        current_user_id: Authenticated user
        service: Scheduling service

    Returns:
        The booked appointment and per-occurrence outcomes for a series
    """
    return await service.create_appointment(data, current_user_id)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    current_user_id: CurrentUserId,
    service: Scheduling,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    patient_id: UUID | None = Query(None),
    doctor_id: UUID | None = Query(None),
    clinic_id: UUID | None = Query(None),
    room_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Args:
        current_user_id: Authenticated user
        service: Scheduling service
        status_filter: Filter by status
        patient_id: Filter by patient ID
        doctor_id: Filter by doctor ID
        clinic_id: Filter by clinic ID
        room_id: Filter by room ID
        from_date: Filter by start date
        to_date: Filter by end date
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        patient_id=patient_id,
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        room_id=room_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/available-slots",
    response_model=SlotListResponse,
    status_code=status.HTTP_200_OK,
    summary="Search available slots",
)
async def get_available_slots(
    query: Annotated[SlotQuery, Query()],
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> SlotListResponse:
    """
    Search bookable slots for a doctor, a clinic or a specialty.

    Slots are ordered by start time across doctors. Without an end date the
    search covers the following week.
    """
    return await service.get_available_slots(query)


@router.get(
    "/daily-schedule/{doctor_id}",
    response_model=DailyScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a doctor's daily schedule",
)
async def get_daily_schedule(
    doctor_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
    day: date = Query(..., alias="date"),
) -> DailyScheduleResponse:
    """Get a doctor's appointments for one day with totals and the next free slot."""
    return await service.get_daily_schedule(doctor_id, day)


@router.get(
    "/calendar",
    response_model=CalendarResponse,
    status_code=status.HTTP_200_OK,
    summary="Get calendar events",
)
async def get_calendar(
    query: Annotated[CalendarQuery, Query()],
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> CalendarResponse:
    """
    Get appointments, schedule blocks and vacations for a day, week or month.

    Filter by clinic, doctors and rooms. Explicit start and end dates
    override the period derived from the view.
    """
    return await service.get_calendar(query)


@router.post(
    "/batch/cancel",
    response_model=BatchOperationResult,
    status_code=status.HTTP_200_OK,
    summary="Cancel several appointments",
)
async def batch_cancel(
    data: BatchCancelRequest,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> BatchOperationResult:
    """Cancel several appointments, reporting the outcome of each one."""
    return await service.batch_cancel(data, current_user_id)


@router.post(
    "/batch/confirm",
    response_model=BatchOperationResult,
    status_code=status.HTTP_200_OK,
    summary="Confirm several appointments",
)
async def batch_confirm(
    data: BatchConfirmRequest,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> BatchOperationResult:
    """Confirm several appointments, reporting the outcome of each one."""
    return await service.batch_confirm(data, current_user_id)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        HTTPException: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> AppointmentResponse:
    """
    Edit an appointment's details, time, participants or room.

    Raises:
        HTTPException: If not found, not editable, conflicting or out of hours
    """
    return await service.update_appointment(appointment_id, data, current_user_id)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> None:
    """Soft delete an appointment."""
    await service.delete_appointment(appointment_id, current_user_id)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> AppointmentResponse:
    """
    Move an appointment to a new time, doctor or room.

    The original is kept as RESCHEDULED and the returned appointment
    references it through ``original_appointment_id``.
    """
    return await service.reschedule_appointment(appointment_id, data, current_user_id)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> AppointmentResponse:
    """Confirm a scheduled appointment."""
    return await service.confirm_appointment(appointment_id, current_user_id)


@router.post(
    "/{appointment_id}/check-in",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Check in patient",
)
async def check_in(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
    data: AppointmentCheckIn | None = None,
) -> AppointmentResponse:
    """Register the patient's arrival."""
    return await service.check_in(appointment_id, data, current_user_id)


@router.post(
    "/{appointment_id}/start",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Start consultation",
)
async def start_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
    data: AppointmentStart | None = None,
) -> AppointmentResponse:
    """Start the consultation, optionally in a given room."""
    return await service.start_appointment(appointment_id, data, current_user_id)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete consultation",
)
async def complete_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
    data: AppointmentComplete | None = None,
) -> AppointmentResponse:
    """Complete the consultation."""
    return await service.complete_appointment(appointment_id, data, current_user_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """Cancel an appointment and release its interval."""
    return await service.cancel_appointment(appointment_id, data, current_user_id)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark appointment as no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    current_user_id: CurrentUserId,
    service: Scheduling,
) -> AppointmentResponse:
    """Record that the patient did not attend."""
    return await service.mark_no_show(appointment_id, current_user_id)

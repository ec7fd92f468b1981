"""Doctor availability endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from clinic_scheduler.dependencies import Availability, CurrentUserId
from clinic_scheduler.schemas.availability import (
    ScheduleBlockCreate,
    ScheduleBlockResponse,
    VacationCreate,
    VacationResponse,
    WorkingHoursResponse,
    WorkingHoursUpdate,
)

router = APIRouter()


# ============================================================================
# Working Hours
# ============================================================================


@router.get(
    "/{doctor_id}/working-hours",
    response_model=list[WorkingHoursResponse],
    status_code=status.HTTP_200_OK,
    summary="Get weekly working hours",
)
async def get_working_hours(
    doctor_id: UUID,
    current_user_id: CurrentUserId,
    service: Availability,
) -> list[WorkingHoursResponse]:
    """Get a doctor's weekly working hours, one row per working weekday."""
    return await service.get_working_hours(doctor_id)


@router.put(
    "/{doctor_id}/working-hours",
    response_model=list[WorkingHoursResponse],
    status_code=status.HTTP_200_OK,
    summary="Replace weekly working hours",
)
async def replace_working_hours(
    doctor_id: UUID,
    data: WorkingHoursUpdate,
    current_user_id: CurrentUserId,
    service: Availability,
) -> list[WorkingHoursResponse]:
    """
    Replace a doctor's weekly working hours.

    - **day_of_week**: 0 (Sunday) to 6 (Saturday)
    - **start_time** / **end_time**: Wall-clock hours in the clinic timezone
    - **break_start** / **break_end**: Optional lunch break inside the hours
    - **is_available**: False marks the weekday as a day off
    """
    return await service.replace_working_hours(doctor_id, data)


# ============================================================================
# Blocks and Vacations
# ============================================================================


@router.post(
    "/{doctor_id}/blocks",
    response_model=ScheduleBlockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Block part of the schedule",
)
async def add_block(
    doctor_id: UUID,
    data: ScheduleBlockCreate,
    current_user_id: CurrentUserId,
    service: Availability,
) -> ScheduleBlockResponse:
    """Close an interval of the doctor's agenda; all-day blocks cover whole days."""
    return await service.add_block(doctor_id, data)


@router.post(
    "/{doctor_id}/vacations",
    response_model=VacationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register vacation",
)
async def add_vacation(
    doctor_id: UUID,
    data: VacationCreate,
    current_user_id: CurrentUserId,
    service: Availability,
) -> VacationResponse:
    """Register an inclusive date range during which the doctor is away."""
    return await service.add_vacation(doctor_id, data)

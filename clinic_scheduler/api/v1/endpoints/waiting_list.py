"""Waiting list endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import CurrentUserId, WaitingList
from clinic_scheduler.schemas.waiting_list import (
    WaitingListCreate,
    WaitingListEntryResponse,
    WaitingListFilters,
    WaitingListResponse,
    WaitingListStatus,
)

router = APIRouter()


@router.post(
    "/",
    response_model=WaitingListEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add patient to waiting list",
)
async def add_entry(
    data: WaitingListCreate,
    current_user_id: CurrentUserId,
    service: WaitingList,
) -> WaitingListEntryResponse:
    """
    Add a patient to a doctor's waiting list.

    A patient may wait only once per doctor at a time.
    """
    return await service.add_entry(data, current_user_id)


@router.get(
    "/",
    response_model=WaitingListResponse,
    status_code=status.HTTP_200_OK,
    summary="List waiting list entries",
)
async def list_entries(
    current_user_id: CurrentUserId,
    service: WaitingList,
    doctor_id: UUID | None = Query(None),
    clinic_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    status_filter: WaitingListStatus | None = Query(None, alias="status"),
    min_priority: int | None = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> WaitingListResponse:
    """List waiting list entries, highest priority and oldest first."""
    filters = WaitingListFilters(
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        patient_id=patient_id,
        status=status_filter,
        min_priority=min_priority,
        page=page,
        page_size=page_size,
    )
    return await service.list_entries(filters)


@router.delete(
    "/{entry_id}",
    response_model=WaitingListEntryResponse,
    status_code=status.HTTP_200_OK,
    summary="Remove waiting list entry",
)
async def remove_entry(
    entry_id: UUID,
    current_user_id: CurrentUserId,
    service: WaitingList,
) -> WaitingListEntryResponse:
    """Take an entry off the waiting list; it is kept as cancelled."""
    return await service.remove_entry(entry_id)

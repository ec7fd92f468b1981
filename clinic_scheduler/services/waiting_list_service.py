"""Waiting list service for business logic."""

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

import structlog

from clinic_scheduler.core.exceptions import ConflictException, NotFoundException
from clinic_scheduler.scheduling.conflicts import ResourceRef
from clinic_scheduler.schemas.waiting_list import (
    WaitingListCreate,
    WaitingListEntryResponse,
    WaitingListFilters,
    WaitingListResponse,
    WaitingListStatus,
)
from clinic_scheduler.services.scheduling_service import utc_now
from clinic_scheduler.services.scheduling_store import SchedulingStore

logger = structlog.get_logger(__name__)


class WaitingListService:
    """Service for patients waiting for a doctor's agenda to open up."""

    def __init__(self, store: SchedulingStore, clock: Callable[[], datetime] | None = None):
        """Initialize service with store."""
        self.store = store
        self.clock = clock or utc_now

    async def add_entry(
        self,
        data: WaitingListCreate,
        actor_id: UUID | None = None,
    ) -> WaitingListEntryResponse:
        """
        Add a patient to a doctor's waiting list.

        Args:
            data: Waiting list entry data
            actor_id: User adding the entry

        Returns:
            Created entry

        Raises:
            NotFoundException: If patient, doctor or clinic not found
            ConflictException: If the patient is already waiting for this doctor
        """
        for kind, entity_id in (
            ("patient", data.patient_id),
            ("doctor", data.doctor_id),
            ("clinic", data.clinic_id),
        ):
            if not await self.store.entity_exists(kind, entity_id):
                raise NotFoundException(f"{kind.capitalize()} not found")

        resources = [ResourceRef.patient(data.patient_id), ResourceRef.doctor(data.doctor_id)]
        async with self.store.transaction(resources):
            if await self.store.find_waiting_entry(data.patient_id, data.doctor_id):
                raise ConflictException("Patient is already on the waiting list for this doctor")

            values = data.model_dump()
            if data.preferred_period is not None:
                values["preferred_period"] = data.preferred_period.value
            entry = await self.store.insert_waiting_entry(
                {
                    **values,
                    "status": WaitingListStatus.WAITING.value,
                    "created_by": actor_id,
                }
            )

        logger.info(
            "waiting_list_entry_added",
            entry_id=str(entry.id),
            doctor_id=str(entry.doctor_id),
            priority=entry.priority,
        )
        return entry

    async def list_entries(self, filters: WaitingListFilters) -> WaitingListResponse:
        """List waiting list entries, highest priority first."""
        total, items = await self.store.list_waiting_entries(filters)
        return WaitingListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def remove_entry(self, entry_id: UUID) -> WaitingListEntryResponse:
        """
        Take an entry off the waiting list.

        The entry is kept with CANCELLED status.

        Raises:
            NotFoundException: If entry not found
        """
        entry = await self.store.get_waiting_entry(entry_id)
        if entry is None:
            raise NotFoundException("Waiting list entry not found")

        async with self.store.transaction():
            removed = await self.store.update_waiting_entry(
                entry_id,
                {"status": WaitingListStatus.CANCELLED.value, "updated_at": self.clock()},
            )

        logger.info("waiting_list_entry_removed", entry_id=str(entry_id))
        return removed

"""Service for managing doctor working hours, schedule blocks and vacations."""

from uuid import UUID

import structlog

from clinic_scheduler.core.exceptions import NotFoundException
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.scheduling.conflicts import ResourceRef
from clinic_scheduler.schemas.availability import (
    ScheduleBlockCreate,
    ScheduleBlockResponse,
    VacationCreate,
    VacationResponse,
    WorkingHoursResponse,
    WorkingHoursUpdate,
)
from clinic_scheduler.services.scheduling_service import invalidate_resources
from clinic_scheduler.services.scheduling_store import SchedulingStore

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """
    Service for the inputs of the working-hours resolver.

    Existing bookings are left untouched when availability shrinks; only
    new bookings and slot searches see the change.
    """

    def __init__(self, store: SchedulingStore, cache: CacheManager | None = None):
        """Initialize service with store and optional cache."""
        self.store = store
        self.cache = cache

    async def get_working_hours(self, doctor_id: UUID) -> list[WorkingHoursResponse]:
        """
        Get a doctor's weekly working hours.

        Raises:
            NotFoundException: If doctor not found
        """
        await self._ensure_doctor(doctor_id)
        return await self.store.get_working_hours(doctor_id)

    async def replace_working_hours(
        self,
        doctor_id: UUID,
        data: WorkingHoursUpdate,
    ) -> list[WorkingHoursResponse]:
        """
        Replace a doctor's weekly working hours.

        Weekdays missing from ``data`` become days off.

        Args:
            doctor_id: Doctor ID
            data: One entry per working weekday

        Returns:
            The stored weekly hours

        Raises:
            NotFoundException: If doctor not found
        """
        await self._ensure_doctor(doctor_id)

        async with self.store.transaction([ResourceRef.doctor(doctor_id)]):
            hours = await self.store.replace_working_hours(doctor_id, data.entries)

        logger.info("working_hours_replaced", doctor_id=str(doctor_id), days=len(hours))
        invalidate_resources(self.cache, [ResourceRef.doctor(doctor_id)])
        return hours

    async def add_block(
        self,
        doctor_id: UUID,
        data: ScheduleBlockCreate,
    ) -> ScheduleBlockResponse:
        """
        Close part of a doctor's agenda.

        Raises:
            NotFoundException: If doctor not found
        """
        await self._ensure_doctor(doctor_id)

        async with self.store.transaction([ResourceRef.doctor(doctor_id)]):
            block = await self.store.insert_block(doctor_id, data.model_dump())

        logger.info(
            "schedule_block_added",
            doctor_id=str(doctor_id),
            start_time=block.start_time.isoformat(),
            end_time=block.end_time.isoformat(),
            all_day=block.all_day,
        )
        invalidate_resources(self.cache, [ResourceRef.doctor(doctor_id)])
        return block

    async def add_vacation(self, doctor_id: UUID, data: VacationCreate) -> VacationResponse:
        """
        Register a doctor's vacation.

        Raises:
            NotFoundException: If doctor not found
        """
        await self._ensure_doctor(doctor_id)

        async with self.store.transaction([ResourceRef.doctor(doctor_id)]):
            vacation = await self.store.insert_vacation(doctor_id, data.model_dump())

        logger.info(
            "vacation_added",
            doctor_id=str(doctor_id),
            start_date=vacation.start_date.isoformat(),
            end_date=vacation.end_date.isoformat(),
        )
        invalidate_resources(self.cache, [ResourceRef.doctor(doctor_id)])
        return vacation

    async def _ensure_doctor(self, doctor_id: UUID) -> None:
        if not await self.store.entity_exists("doctor", doctor_id):
            raise NotFoundException("Doctor not found")

"""Persistence boundary of the scheduling core."""

from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, func, insert, select, text, true, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import ConflictException, SchedulingConflictException
from clinic_scheduler.models import (
    appointments,
    clinics,
    doctor_clinics,
    doctor_vacations,
    doctor_working_hours,
    doctors,
    patients,
    rooms,
    schedule_blocks,
    waiting_list_entries,
)
from clinic_scheduler.scheduling.conflicts import ResourceKind, ResourceRef
from clinic_scheduler.schemas.appointments import (
    INACTIVE_STATUSES,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStatus,
)
from clinic_scheduler.schemas.availability import (
    ScheduleBlockResponse,
    VacationResponse,
    WorkingHoursEntry,
    WorkingHoursResponse,
)
from clinic_scheduler.schemas.waiting_list import (
    WaitingListEntryResponse,
    WaitingListFilters,
    WaitingListStatus,
)

logger = structlog.get_logger(__name__)

_INACTIVE_VALUES = [status.value for status in INACTIVE_STATUSES]

# Exclusion constraints created by the initial migration
_OVERLAP_CONSTRAINTS = {
    "appointments_doctor_no_overlap": ResourceKind.DOCTOR,
    "appointments_patient_no_overlap": ResourceKind.PATIENT,
    "appointments_room_no_overlap": ResourceKind.ROOM,
}

# SQLSTATE raised when lock_timeout expires
LOCK_NOT_AVAILABLE = "55P03"

_DIRECTORY_TABLES = {
    "patient": patients,
    "doctor": doctors,
    "clinic": clinics,
    "room": rooms,
}


class SchedulingStore(Protocol):
    """Everything the scheduling services read and write."""

    def transaction(
        self, resources: Sequence[ResourceRef] = ()
    ) -> AbstractAsyncContextManager[None]: ...

    async def get_appointment(
        self, appointment_id: UUID, for_update: bool = False
    ) -> AppointmentResponse | None: ...

    async def find_overlapping_appointments(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[AppointmentResponse]: ...

    async def list_doctor_appointments(
        self, doctor_id: UUID, start: datetime, end: datetime, active_only: bool = True
    ) -> list[AppointmentResponse]: ...

    async def insert_appointment(self, values: dict[str, Any]) -> AppointmentResponse: ...

    async def update_appointment(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        expected_status: AppointmentStatus | None = None,
    ) -> AppointmentResponse | None: ...

    async def list_appointments(
        self, filters: AppointmentFilters
    ) -> tuple[int, list[AppointmentResponse]]: ...

    async def entity_exists(self, kind: str, entity_id: UUID) -> bool: ...

    async def candidate_doctors(
        self,
        doctor_id: UUID | None = None,
        clinic_id: UUID | None = None,
        specialty_id: UUID | None = None,
    ) -> list[UUID]: ...

    async def get_working_hours(self, doctor_id: UUID) -> list[WorkingHoursResponse]: ...

    async def replace_working_hours(
        self, doctor_id: UUID, entries: Sequence[WorkingHoursEntry]
    ) -> list[WorkingHoursResponse]: ...

    async def list_blocks(
        self, doctor_id: UUID, start: datetime, end: datetime
    ) -> list[ScheduleBlockResponse]: ...

    async def insert_block(
        self, doctor_id: UUID, values: dict[str, Any]
    ) -> ScheduleBlockResponse: ...

    async def list_vacations(
        self, doctor_id: UUID, start_date: date, end_date: date
    ) -> list[VacationResponse]: ...

    async def insert_vacation(
        self, doctor_id: UUID, values: dict[str, Any]
    ) -> VacationResponse: ...

    async def find_waiting_entry(
        self, patient_id: UUID, doctor_id: UUID
    ) -> WaitingListEntryResponse | None: ...

    async def get_waiting_entry(self, entry_id: UUID) -> WaitingListEntryResponse | None: ...

    async def insert_waiting_entry(self, values: dict[str, Any]) -> WaitingListEntryResponse: ...

    async def update_waiting_entry(
        self, entry_id: UUID, values: dict[str, Any]
    ) -> WaitingListEntryResponse | None: ...

    async def list_waiting_entries(
        self, filters: WaitingListFilters
    ) -> tuple[int, list[WaitingListEntryResponse]]: ...


def integrity_error_to_conflict(error: IntegrityError) -> ConflictException | None:
    """Translate a constraint violation raised by a booking write."""
    detail = str(error.orig)
    for constraint, kind in _OVERLAP_CONSTRAINTS.items():
        if constraint in detail:
            return SchedulingConflictException(resource_kind=kind.value)
    if "uq_waiting_list_active_patient_doctor" in detail:
        return ConflictException("Patient is already on the waiting list for this doctor")
    return None


class SqlSchedulingStore:
    """SQLAlchemy Core implementation of the scheduling store."""

    def __init__(self, db: AsyncSession):
        """Initialize store with database session."""
        self.db = db

    @asynccontextmanager
    async def transaction(self, resources: Sequence[ResourceRef] = ()) -> AsyncIterator[None]:
        """
        Run a unit of work holding advisory locks on the given resources.

        Locks are transaction scoped and taken in sorted key order, so two
        bookings touching the same doctor, patient or room serialize and
        never deadlock. Commits on success and rolls back on any error.

        Args:
            resources: Resources whose bookings the unit of work reads or writes

        Raises:
            SchedulingConflictException: If an exclusion constraint rejects the write
            ConflictException: If another request holds the locks past lock_timeout
        """
        try:
            for key in sorted({resource.lock_key for resource in resources}):
                await self.db.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": key},
                )
            yield
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            conflict = integrity_error_to_conflict(e)
            if conflict is None:
                raise
            logger.info("booking_rejected_by_constraint", error=str(e.orig))
            raise conflict from e
        except DBAPIError as e:
            await self.db.rollback()
            if getattr(e.orig, "sqlstate", None) != LOCK_NOT_AVAILABLE:
                raise
            logger.warning("booking_lock_timeout", resources=[r.lock_key for r in resources])
            raise ConflictException(
                "The schedule is being changed by another request, please retry"
            ) from e
        except Exception:
            await self.db.rollback()
            raise

    # Appointments

    async def get_appointment(
        self, appointment_id: UUID, for_update: bool = False
    ) -> AppointmentResponse | None:
        stmt = select(appointments).where(
            and_(
                appointments.c.id == appointment_id,
                appointments.c.deleted_at.is_(None),
            )
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        row = result.fetchone()
        return AppointmentResponse.model_validate(dict(row._mapping)) if row else None

    async def find_overlapping_appointments(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[AppointmentResponse]:
        """
        Active appointments of a resource intersecting ``[start, end)``.

        One query shape serves every resource kind; only the filter column
        changes.
        """
        conditions = [
            appointments.c[resource.kind.column] == resource.id,
            appointments.c.deleted_at.is_(None),
            appointments.c.status.notin_(_INACTIVE_VALUES),
            appointments.c.start_time < end,
            appointments.c.end_time > start,
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_time)
        result = await self.db.execute(stmt)
        return [AppointmentResponse.model_validate(dict(row._mapping)) for row in result]

    async def list_doctor_appointments(
        self, doctor_id: UUID, start: datetime, end: datetime, active_only: bool = True
    ) -> list[AppointmentResponse]:
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.deleted_at.is_(None),
            appointments.c.start_time < end,
            appointments.c.end_time > start,
        ]
        if active_only:
            conditions.append(appointments.c.status.notin_(_INACTIVE_VALUES))

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_time)
        result = await self.db.execute(stmt)
        return [AppointmentResponse.model_validate(dict(row._mapping)) for row in result]

    async def insert_appointment(self, values: dict[str, Any]) -> AppointmentResponse:
        stmt = insert(appointments).values(**values).returning(appointments)
        result = await self.db.execute(stmt)
        return AppointmentResponse.model_validate(dict(result.fetchone()._mapping))

    async def update_appointment(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        expected_status: AppointmentStatus | None = None,
    ) -> AppointmentResponse | None:
        """
        Update a live appointment, optionally guarded on its current status.

        Returns:
            The updated record, or None when no row matched the guard
        """
        conditions = [
            appointments.c.id == appointment_id,
            appointments.c.deleted_at.is_(None),
        ]
        if expected_status is not None:
            conditions.append(appointments.c.status == expected_status.value)

        stmt = (
            update(appointments)
            .where(and_(*conditions))
            .values(**values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return AppointmentResponse.model_validate(dict(row._mapping)) if row else None

    async def list_appointments(
        self, filters: AppointmentFilters
    ) -> tuple[int, list[AppointmentResponse]]:
        conditions = [appointments.c.deleted_at.is_(None)]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.clinic_id:
            conditions.append(appointments.c.clinic_id == filters.clinic_id)

        if filters.room_id:
            conditions.append(appointments.c.room_id == filters.room_id)

        if filters.from_date:
            conditions.append(appointments.c.start_time >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.start_time <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.start_time.asc())
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row._mapping)) for row in result]
        return total, items

    # Directory

    async def entity_exists(self, kind: str, entity_id: UUID) -> bool:
        table = _DIRECTORY_TABLES[kind]
        stmt = select(table.c.id).where(and_(table.c.id == entity_id, table.c.deleted_at.is_(None)))
        if kind == "doctor":
            stmt = stmt.where(table.c.is_active.is_(True))
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def candidate_doctors(
        self,
        doctor_id: UUID | None = None,
        clinic_id: UUID | None = None,
        specialty_id: UUID | None = None,
    ) -> list[UUID]:
        """Active doctors matching the given doctor, clinic and specialty filters."""
        conditions = [doctors.c.is_active.is_(True), doctors.c.deleted_at.is_(None)]
        if doctor_id:
            conditions.append(doctors.c.id == doctor_id)
        if specialty_id:
            conditions.append(doctors.c.specialty_id == specialty_id)

        stmt = select(doctors.c.id)
        if clinic_id:
            stmt = stmt.join(doctor_clinics, doctor_clinics.c.doctor_id == doctors.c.id)
            conditions.append(doctor_clinics.c.clinic_id == clinic_id)
            conditions.append(doctor_clinics.c.is_active.is_(True))

        result = await self.db.execute(stmt.where(and_(*conditions)).order_by(doctors.c.id))
        return [row.id for row in result]

    # Availability

    async def get_working_hours(self, doctor_id: UUID) -> list[WorkingHoursResponse]:
        stmt = (
            select(doctor_working_hours)
            .where(doctor_working_hours.c.doctor_id == doctor_id)
            .order_by(doctor_working_hours.c.day_of_week)
        )
        result = await self.db.execute(stmt)
        return [WorkingHoursResponse.model_validate(dict(row._mapping)) for row in result]

    async def replace_working_hours(
        self, doctor_id: UUID, entries: Sequence[WorkingHoursEntry]
    ) -> list[WorkingHoursResponse]:
        await self.db.execute(
            delete(doctor_working_hours).where(doctor_working_hours.c.doctor_id == doctor_id)
        )
        if entries:
            await self.db.execute(
                insert(doctor_working_hours),
                [{"doctor_id": doctor_id, **entry.model_dump()} for entry in entries],
            )
        return await self.get_working_hours(doctor_id)

    async def list_blocks(
        self, doctor_id: UUID, start: datetime, end: datetime
    ) -> list[ScheduleBlockResponse]:
        stmt = (
            select(schedule_blocks)
            .where(
                and_(
                    schedule_blocks.c.doctor_id == doctor_id,
                    schedule_blocks.c.start_time < end,
                    schedule_blocks.c.end_time > start,
                )
            )
            .order_by(schedule_blocks.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [ScheduleBlockResponse.model_validate(dict(row._mapping)) for row in result]

    async def insert_block(self, doctor_id: UUID, values: dict[str, Any]) -> ScheduleBlockResponse:
        stmt = (
            insert(schedule_blocks)
            .values(doctor_id=doctor_id, **values)
            .returning(schedule_blocks)
        )
        result = await self.db.execute(stmt)
        return ScheduleBlockResponse.model_validate(dict(result.fetchone()._mapping))

    async def list_vacations(
        self, doctor_id: UUID, start_date: date, end_date: date
    ) -> list[VacationResponse]:
        stmt = (
            select(doctor_vacations)
            .where(
                and_(
                    doctor_vacations.c.doctor_id == doctor_id,
                    doctor_vacations.c.start_date <= end_date,
                    doctor_vacations.c.end_date >= start_date,
                )
            )
            .order_by(doctor_vacations.c.start_date)
        )
        result = await self.db.execute(stmt)
        return [VacationResponse.model_validate(dict(row._mapping)) for row in result]

    async def insert_vacation(self, doctor_id: UUID, values: dict[str, Any]) -> VacationResponse:
        stmt = (
            insert(doctor_vacations)
            .values(doctor_id=doctor_id, **values)
            .returning(doctor_vacations)
        )
        result = await self.db.execute(stmt)
        return VacationResponse.model_validate(dict(result.fetchone()._mapping))

    # Waiting list

    async def find_waiting_entry(
        self, patient_id: UUID, doctor_id: UUID
    ) -> WaitingListEntryResponse | None:
        stmt = select(waiting_list_entries).where(
            and_(
                waiting_list_entries.c.patient_id == patient_id,
                waiting_list_entries.c.doctor_id == doctor_id,
                waiting_list_entries.c.status == WaitingListStatus.WAITING.value,
            )
        )
        row = (await self.db.execute(stmt)).fetchone()
        return WaitingListEntryResponse.model_validate(dict(row._mapping)) if row else None

    async def get_waiting_entry(self, entry_id: UUID) -> WaitingListEntryResponse | None:
        stmt = select(waiting_list_entries).where(waiting_list_entries.c.id == entry_id)
        row = (await self.db.execute(stmt)).fetchone()
        return WaitingListEntryResponse.model_validate(dict(row._mapping)) if row else None

    async def insert_waiting_entry(self, values: dict[str, Any]) -> WaitingListEntryResponse:
        stmt = insert(waiting_list_entries).values(**values).returning(waiting_list_entries)
        result = await self.db.execute(stmt)
        return WaitingListEntryResponse.model_validate(dict(result.fetchone()._mapping))

    async def update_waiting_entry(
        self, entry_id: UUID, values: dict[str, Any]
    ) -> WaitingListEntryResponse | None:
        stmt = (
            update(waiting_list_entries)
            .where(waiting_list_entries.c.id == entry_id)
            .values(**values)
            .returning(waiting_list_entries)
        )
        row = (await self.db.execute(stmt)).fetchone()
        return WaitingListEntryResponse.model_validate(dict(row._mapping)) if row else None

    async def list_waiting_entries(
        self, filters: WaitingListFilters
    ) -> tuple[int, list[WaitingListEntryResponse]]:
        conditions = []

        if filters.doctor_id:
            conditions.append(waiting_list_entries.c.doctor_id == filters.doctor_id)

        if filters.clinic_id:
            conditions.append(waiting_list_entries.c.clinic_id == filters.clinic_id)

        if filters.patient_id:
            conditions.append(waiting_list_entries.c.patient_id == filters.patient_id)

        if filters.status:
            conditions.append(waiting_list_entries.c.status == filters.status.value)

        if filters.min_priority:
            conditions.append(waiting_list_entries.c.priority >= filters.min_priority)

        where = and_(true(), *conditions)
        count_stmt = select(func.count()).select_from(waiting_list_entries).where(where)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(waiting_list_entries)
            .where(where)
            .order_by(
                waiting_list_entries.c.priority.desc(),
                waiting_list_entries.c.created_at.asc(),
            )
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        items = [WaitingListEntryResponse.model_validate(dict(row._mapping)) for row in result]
        return total, items

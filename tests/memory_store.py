"""In-memory scheduling store used by the service and endpoint tests."""

import asyncio
import copy
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import UUID, uuid4

from clinic_scheduler.core.exceptions import SchedulingConflictException
from clinic_scheduler.scheduling.conflicts import ResourceKind, ResourceRef
from clinic_scheduler.scheduling.intervals import overlaps
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

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=UTC)

_INACTIVE_VALUES = {status.value for status in INACTIVE_STATUSES}

_APPOINTMENT_DEFAULTS: dict[str, Any] = {
    "room_id": None,
    "specialty_id": None,
    "original_appointment_id": None,
    "is_recurrence": False,
    "appointment_type": "in_person",
    "status": AppointmentStatus.SCHEDULED.value,
    "reason": None,
    "notes": None,
    "confirmed_at": None,
    "check_in_time": None,
    "actual_start_time": None,
    "actual_end_time": None,
    "cancelled_at": None,
    "cancellation_reason": None,
    "waiting_time_minutes": None,
    "consultation_duration_minutes": None,
    "created_by": None,
    "deleted_at": None,
}


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on ``day``; tests run with the clinic zone set to UTC."""
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


def _is_active(row: dict[str, Any]) -> bool:
    return row["deleted_at"] is None and row["status"] not in _INACTIVE_VALUES


class InMemorySchedulingStore:
    """
    Dictionary-backed store with the same contract as ``SqlSchedulingStore``.

    A single asyncio lock stands in for the advisory locks, and a failed
    unit of work restores the snapshot taken when it began. Inserts enforce
    the same no-overlap rule as the database exclusion constraints.
    """

    _STATE = (
        "appointments",
        "working_hours",
        "blocks",
        "vacations",
        "waiting_entries",
    )

    def __init__(self, clock: Callable[[], datetime] = lambda: NOW):
        self.clock = clock
        self.patients: dict[UUID, dict[str, Any]] = {}
        self.doctors: dict[UUID, dict[str, Any]] = {}
        self.clinics: dict[UUID, dict[str, Any]] = {}
        self.rooms: dict[UUID, dict[str, Any]] = {}
        self.doctor_clinics: set[tuple[UUID, UUID]] = set()

        self.appointments: dict[UUID, dict[str, Any]] = {}
        self.working_hours: dict[UUID, list[dict[str, Any]]] = {}
        self.blocks: list[dict[str, Any]] = []
        self.vacations: list[dict[str, Any]] = []
        self.waiting_entries: dict[UUID, dict[str, Any]] = {}

        self.lock_history: list[list[str]] = []
        self.commits = 0
        self.rollbacks = 0
        self._lock = asyncio.Lock()

    # Seeding

    def add_patient(self) -> UUID:
        patient_id = uuid4()
        self.patients[patient_id] = {"id": patient_id, "deleted_at": None}
        return patient_id

    def add_clinic(self) -> UUID:
        clinic_id = uuid4()
        self.clinics[clinic_id] = {"id": clinic_id, "deleted_at": None}
        return clinic_id

    def add_room(self, clinic_id: UUID) -> UUID:
        room_id = uuid4()
        self.rooms[room_id] = {"id": room_id, "clinic_id": clinic_id, "deleted_at": None}
        return room_id

    def add_doctor(
        self,
        clinic_id: UUID | None = None,
        specialty_id: UUID | None = None,
        is_active: bool = True,
        doctor_id: UUID | None = None,
    ) -> UUID:
        doctor_id = doctor_id or uuid4()
        self.doctors[doctor_id] = {
            "id": doctor_id,
            "specialty_id": specialty_id,
            "is_active": is_active,
            "deleted_at": None,
        }
        if clinic_id is not None:
            self.doctor_clinics.add((doctor_id, clinic_id))
        return doctor_id

    def set_hours(
        self,
        doctor_id: UUID,
        days: Sequence[int],
        start: time = time(9),
        end: time = time(17),
        break_start: time | None = None,
        break_end: time | None = None,
    ) -> None:
        rows = [
            row for row in self.working_hours.get(doctor_id, []) if row["day_of_week"] not in days
        ]
        for day in days:
            rows.append(
                {
                    "doctor_id": doctor_id,
                    "day_of_week": day,
                    "is_available": True,
                    "start_time": start,
                    "end_time": end,
                    "break_start": break_start,
                    "break_end": break_end,
                }
            )
        self.working_hours[doctor_id] = rows

    def seed_appointment(self, **values: Any) -> AppointmentResponse:
        """Store an appointment directly, bypassing every check."""
        start = values["start_time"]
        end = values.setdefault("end_time", start + timedelta(minutes=30))
        values.setdefault("duration_minutes", round((end - start) / timedelta(minutes=1)))
        values.setdefault("clinic_id", uuid4())
        return self._store_appointment(values)

    # Unit of work

    @asynccontextmanager
    async def transaction(self, resources: Sequence[ResourceRef] = ()) -> AsyncIterator[None]:
        async with self._lock:
            self.lock_history.append(sorted({resource.lock_key for resource in resources}))
            snapshot = {name: copy.deepcopy(getattr(self, name)) for name in self._STATE}
            try:
                yield
            except Exception:
                for name, value in snapshot.items():
                    setattr(self, name, value)
                self.rollbacks += 1
                raise
            self.commits += 1

    # Appointments

    async def get_appointment(
        self, appointment_id: UUID, for_update: bool = False
    ) -> AppointmentResponse | None:
        row = self.appointments.get(appointment_id)
        if row is None or row["deleted_at"] is not None:
            return None
        return AppointmentResponse.model_validate(row)

    async def find_overlapping_appointments(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[AppointmentResponse]:
        # Give other tasks a chance to run between the read and the write
        await asyncio.sleep(0)
        column = resource.kind.column
        return [
            AppointmentResponse.model_validate(row)
            for row in sorted(self.appointments.values(), key=lambda r: r["start_time"])
            if row[column] == resource.id
            and row["id"] != exclude_id
            and _is_active(row)
            and overlaps(start, end, row["start_time"], row["end_time"])
        ]

    async def list_doctor_appointments(
        self, doctor_id: UUID, start: datetime, end: datetime, active_only: bool = True
    ) -> list[AppointmentResponse]:
        return [
            AppointmentResponse.model_validate(row)
            for row in sorted(self.appointments.values(), key=lambda r: r["start_time"])
            if row["doctor_id"] == doctor_id
            and row["deleted_at"] is None
            and (_is_active(row) or not active_only)
            and overlaps(start, end, row["start_time"], row["end_time"])
        ]

    async def insert_appointment(self, values: dict[str, Any]) -> AppointmentResponse:
        for kind in ResourceKind:
            resource_id = values.get(kind.column)
            if resource_id is None:
                continue
            for row in self.appointments.values():
                if (
                    row[kind.column] == resource_id
                    and _is_active(row)
                    and overlaps(
                        values["start_time"], values["end_time"], row["start_time"], row["end_time"]
                    )
                ):
                    raise SchedulingConflictException(resource_kind=kind.value)
        return self._store_appointment(values)

    def _store_appointment(self, values: dict[str, Any]) -> AppointmentResponse:
        now = self.clock()
        row = {
            **_APPOINTMENT_DEFAULTS,
            **values,
            "id": uuid4(),
            "created_at": now,
            "updated_at": now,
        }
        self.appointments[row["id"]] = row
        return AppointmentResponse.model_validate(row)

    async def update_appointment(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        expected_status: AppointmentStatus | None = None,
    ) -> AppointmentResponse | None:
        row = self.appointments.get(appointment_id)
        if row is None or row["deleted_at"] is not None:
            return None
        if expected_status is not None and row["status"] != expected_status.value:
            return None
        row.update(values)
        return AppointmentResponse.model_validate(row)

    async def list_appointments(
        self, filters: AppointmentFilters
    ) -> tuple[int, list[AppointmentResponse]]:
        rows = [row for row in self.appointments.values() if row["deleted_at"] is None]
        for field in ("patient_id", "doctor_id", "clinic_id", "room_id"):
            wanted = getattr(filters, field)
            if wanted:
                rows = [row for row in rows if row[field] == wanted]
        if filters.status:
            rows = [row for row in rows if row["status"] == filters.status.value]
        if filters.from_date:
            rows = [row for row in rows if row["start_time"] >= filters.from_date]
        if filters.to_date:
            rows = [row for row in rows if row["start_time"] <= filters.to_date]

        rows.sort(key=lambda row: row["start_time"])
        offset = (filters.page - 1) * filters.page_size
        page = rows[offset : offset + filters.page_size]
        return len(rows), [AppointmentResponse.model_validate(row) for row in page]

    # Directory

    async def entity_exists(self, kind: str, entity_id: UUID) -> bool:
        table = {
            "patient": self.patients,
            "doctor": self.doctors,
            "clinic": self.clinics,
            "room": self.rooms,
        }[kind]
        row = table.get(entity_id)
        if row is None or row["deleted_at"] is not None:
            return False
        return row.get("is_active", True)

    async def candidate_doctors(
        self,
        doctor_id: UUID | None = None,
        clinic_id: UUID | None = None,
        specialty_id: UUID | None = None,
    ) -> list[UUID]:
        found = []
        for row in self.doctors.values():
            if not row["is_active"] or row["deleted_at"] is not None:
                continue
            if doctor_id and row["id"] != doctor_id:
                continue
            if specialty_id and row["specialty_id"] != specialty_id:
                continue
            if clinic_id and (row["id"], clinic_id) not in self.doctor_clinics:
                continue
            found.append(row["id"])
        return sorted(found, key=str)

    # Availability

    async def get_working_hours(self, doctor_id: UUID) -> list[WorkingHoursResponse]:
        rows = sorted(self.working_hours.get(doctor_id, []), key=lambda r: r["day_of_week"])
        return [WorkingHoursResponse.model_validate(row) for row in rows]

    async def replace_working_hours(
        self, doctor_id: UUID, entries: Sequence[WorkingHoursEntry]
    ) -> list[WorkingHoursResponse]:
        self.working_hours[doctor_id] = [
            {"doctor_id": doctor_id, **entry.model_dump()} for entry in entries
        ]
        return await self.get_working_hours(doctor_id)

    async def list_blocks(
        self, doctor_id: UUID, start: datetime, end: datetime
    ) -> list[ScheduleBlockResponse]:
        return [
            ScheduleBlockResponse.model_validate(row)
            for row in sorted(self.blocks, key=lambda r: r["start_time"])
            if row["doctor_id"] == doctor_id
            and overlaps(start, end, row["start_time"], row["end_time"])
        ]

    async def insert_block(self, doctor_id: UUID, values: dict[str, Any]) -> ScheduleBlockResponse:
        row = {"all_day": False, "reason": None, **values, "id": uuid4(), "doctor_id": doctor_id}
        self.blocks.append(row)
        return ScheduleBlockResponse.model_validate(row)

    async def list_vacations(
        self, doctor_id: UUID, start_date: date, end_date: date
    ) -> list[VacationResponse]:
        return [
            VacationResponse.model_validate(row)
            for row in sorted(self.vacations, key=lambda r: r["start_date"])
            if row["doctor_id"] == doctor_id
            and row["start_date"] <= end_date
            and row["end_date"] >= start_date
        ]

    async def insert_vacation(self, doctor_id: UUID, values: dict[str, Any]) -> VacationResponse:
        row = {"reason": None, **values, "id": uuid4(), "doctor_id": doctor_id}
        self.vacations.append(row)
        return VacationResponse.model_validate(row)

    # Waiting list

    async def find_waiting_entry(
        self, patient_id: UUID, doctor_id: UUID
    ) -> WaitingListEntryResponse | None:
        for row in self.waiting_entries.values():
            if (
                row["patient_id"] == patient_id
                and row["doctor_id"] == doctor_id
                and row["status"] == WaitingListStatus.WAITING.value
            ):
                return WaitingListEntryResponse.model_validate(row)
        return None

    async def get_waiting_entry(self, entry_id: UUID) -> WaitingListEntryResponse | None:
        row = self.waiting_entries.get(entry_id)
        return WaitingListEntryResponse.model_validate(row) if row else None

    async def insert_waiting_entry(self, values: dict[str, Any]) -> WaitingListEntryResponse:
        now = self.clock()
        row = {
            "preferred_date": None,
            "preferred_period": None,
            "priority": 1,
            "urgency_reason": None,
            "created_by": None,
            **values,
            "id": uuid4(),
            "created_at": now,
            "updated_at": now,
        }
        self.waiting_entries[row["id"]] = row
        return WaitingListEntryResponse.model_validate(row)

    async def update_waiting_entry(
        self, entry_id: UUID, values: dict[str, Any]
    ) -> WaitingListEntryResponse | None:
        row = self.waiting_entries.get(entry_id)
        if row is None:
            return None
        row.update(values)
        return WaitingListEntryResponse.model_validate(row)

    async def list_waiting_entries(
        self, filters: WaitingListFilters
    ) -> tuple[int, list[WaitingListEntryResponse]]:
        rows = list(self.waiting_entries.values())
        for field in ("doctor_id", "clinic_id", "patient_id"):
            wanted = getattr(filters, field)
            if wanted:
                rows = [row for row in rows if row[field] == wanted]
        if filters.status:
            rows = [row for row in rows if row["status"] == filters.status.value]
        if filters.min_priority:
            rows = [row for row in rows if row["priority"] >= filters.min_priority]

        rows.sort(key=lambda row: (-row["priority"], row["created_at"]))
        offset = (filters.page - 1) * filters.page_size
        page = rows[offset : offset + filters.page_size]
        return len(rows), [WaitingListEntryResponse.model_validate(row) for row in page]

"""Double-booking detection for doctors, patients and rooms."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from clinic_scheduler.core.exceptions import SchedulingConflictException
from clinic_scheduler.scheduling.intervals import overlaps
from clinic_scheduler.schemas.appointments import AppointmentResponse


class ResourceKind(str, Enum):
    """Kinds of resources that cannot be double-booked."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    ROOM = "room"

    @property
    def column(self) -> str:
        """Appointment column holding this resource's id."""
        return f"{self.value}_id"


@dataclass(frozen=True, order=True)
class ResourceRef:
    """A concrete resource: a kind tagged with an id."""

    kind: ResourceKind
    id: UUID

    @property
    def lock_key(self) -> str:
        return f"{self.kind.value}:{self.id}"

    @classmethod
    def doctor(cls, resource_id: UUID) -> "ResourceRef":
        return cls(ResourceKind.DOCTOR, resource_id)

    @classmethod
    def patient(cls, resource_id: UUID) -> "ResourceRef":
        return cls(ResourceKind.PATIENT, resource_id)

    @classmethod
    def room(cls, resource_id: UUID) -> "ResourceRef":
        return cls(ResourceKind.ROOM, resource_id)


def booking_resources(
    doctor_id: UUID, patient_id: UUID, room_id: UUID | None = None
) -> list[ResourceRef]:
    """Resources a booking occupies, in the order they are checked."""
    resources = [ResourceRef.doctor(doctor_id), ResourceRef.patient(patient_id)]
    if room_id is not None:
        resources.append(ResourceRef.room(room_id))
    return resources


def find_overlapping(
    appointments: Iterable[AppointmentResponse],
    start: datetime,
    end: datetime,
    exclude_id: UUID | None = None,
) -> AppointmentResponse | None:
    """Return the first active appointment overlapping ``[start, end)``."""
    for appointment in appointments:
        if appointment.id == exclude_id or not appointment.is_active:
            continue
        if overlaps(start, end, appointment.start_time, appointment.end_time):
            return appointment
    return None


class OverlapQuery(Protocol):
    async def find_overlapping_appointments(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[AppointmentResponse]: ...


class ConflictDetector:
    """Checks candidate intervals against stored bookings."""

    def __init__(self, store: OverlapQuery):
        """Initialize detector with the appointment store."""
        self.store = store

    async def find_conflict(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> AppointmentResponse | None:
        """
        Find an active appointment of ``resource`` overlapping the interval.

        Args:
            resource: Doctor, patient or room to check
            start: Candidate start (inclusive)
            end: Candidate end (exclusive)
            exclude_id: Appointment being edited, ignored by the check

        Returns:
            The conflicting appointment or None
        """
        candidates = await self.store.find_overlapping_appointments(
            resource, start, end, exclude_id
        )
        return find_overlapping(candidates, start, end, exclude_id)

    async def has_conflict(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> bool:
        return await self.find_conflict(resource, start, end, exclude_id) is not None

    async def ensure_available(
        self,
        resources: Sequence[ResourceRef],
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Raise if any resource is already booked in the interval.

        Raises:
            SchedulingConflictException: Naming the first conflicting resource
        """
        for resource in resources:
            conflict = await self.find_conflict(resource, start, end, exclude_id)
            if conflict is not None:
                raise SchedulingConflictException(
                    resource_kind=resource.kind.value,
                    resource_id=resource.id,
                    conflicting_start=conflict.start_time,
                    conflicting_end=conflict.end_time,
                    conflicting_appointment_id=conflict.id,
                )

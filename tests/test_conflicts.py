"""Tests for double-booking detection."""

from uuid import uuid4

import pytest

from clinic_scheduler.core.exceptions import SchedulingConflictException
from clinic_scheduler.scheduling.conflicts import ConflictDetector, ResourceRef, booking_resources
from clinic_scheduler.schemas.appointments import AppointmentStatus
from tests.memory_store import MONDAY, at


@pytest.fixture
def booked(store, practice):
    return store.seed_appointment(
        patient_id=practice.patient_id,
        doctor_id=practice.doctor_id,
        clinic_id=practice.clinic_id,
        room_id=practice.room_id,
        start_time=at(MONDAY, 10),
    )


@pytest.mark.asyncio
async def test_overlap_is_a_conflict(store, practice, booked):
    detector = ConflictDetector(store)

    assert await detector.has_conflict(
        ResourceRef.doctor(practice.doctor_id), at(MONDAY, 10, 15), at(MONDAY, 10, 45)
    )


@pytest.mark.asyncio
async def test_touching_intervals_do_not_conflict(store, practice, booked):
    """Test half-open intervals: ending at 10:00 or starting at 10:30 is free."""
    detector = ConflictDetector(store)
    doctor = ResourceRef.doctor(practice.doctor_id)

    assert not await detector.has_conflict(doctor, at(MONDAY, 9, 30), at(MONDAY, 10))
    assert not await detector.has_conflict(doctor, at(MONDAY, 10, 30), at(MONDAY, 11))


@pytest.mark.asyncio
async def test_edited_appointment_is_excluded(store, practice, booked):
    detector = ConflictDetector(store)

    assert not await detector.has_conflict(
        ResourceRef.doctor(practice.doctor_id),
        at(MONDAY, 10),
        at(MONDAY, 10, 30),
        exclude_id=booked.id,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW, AppointmentStatus.RESCHEDULED],
)
async def test_inactive_bookings_free_the_interval(store, practice, status):
    store.seed_appointment(
        patient_id=practice.patient_id,
        doctor_id=practice.doctor_id,
        start_time=at(MONDAY, 10),
        status=status.value,
    )

    assert not await ConflictDetector(store).has_conflict(
        ResourceRef.doctor(practice.doctor_id), at(MONDAY, 10), at(MONDAY, 10, 30)
    )


@pytest.mark.asyncio
async def test_other_resources_are_independent(store, practice, booked):
    detector = ConflictDetector(store)

    assert not await detector.has_conflict(
        ResourceRef.doctor(uuid4()), at(MONDAY, 10), at(MONDAY, 10, 30)
    )


@pytest.mark.asyncio
async def test_ensure_available_names_the_busy_room(store, practice, booked):
    """Test the room conflict is reported when doctor and patient are free."""
    detector = ConflictDetector(store)
    resources = booking_resources(uuid4(), uuid4(), practice.room_id)

    with pytest.raises(SchedulingConflictException) as exc_info:
        await detector.ensure_available(resources, at(MONDAY, 10), at(MONDAY, 10, 30))

    assert exc_info.value.resource_kind == "room"
    assert exc_info.value.resource_id == practice.room_id
    assert exc_info.value.conflicting_appointment_id == booked.id


def test_booking_resources_order():
    doctor_id, patient_id, room_id = uuid4(), uuid4(), uuid4()

    assert [r.kind.value for r in booking_resources(doctor_id, patient_id)] == [
        "doctor",
        "patient",
    ]
    assert booking_resources(doctor_id, patient_id, room_id)[-1] == ResourceRef.room(room_id)

"""Bookable slot generation over a date range."""

import heapq
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from itertools import islice
from typing import Protocol
from uuid import UUID

from clinic_scheduler.scheduling.conflicts import find_overlapping
from clinic_scheduler.scheduling.intervals import TimeInterval, at_wall_clock, day_of_week
from clinic_scheduler.scheduling.working_hours import (
    VacationLike,
    WorkingHoursLike,
    resolve_workable_intervals,
)
from clinic_scheduler.schemas.appointments import AppointmentResponse
from clinic_scheduler.schemas.availability import Slot


class BlockLike(Protocol):
    start_time: datetime
    end_time: datetime
    all_day: bool


def block_interval(block: BlockLike, tz: tzinfo) -> TimeInterval:
    """Span of a schedule block; all-day blocks cover whole local days."""
    if not block.all_day:
        return TimeInterval(block.start_time, block.end_time)

    first_day = block.start_time.astimezone(tz).date()
    last_day = block.end_time.astimezone(tz).date()
    return TimeInterval(
        at_wall_clock(first_day, time.min, tz),
        at_wall_clock(last_day + timedelta(days=1), time.min, tz),
    )


def iter_days(start: date, end: date) -> Iterator[date]:
    """Calendar days from ``start`` to ``end``, both inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


@dataclass(frozen=True)
class DoctorAgenda:
    """Snapshot of everything that shapes one doctor's availability."""

    doctor_id: UUID
    working_hours: Sequence[WorkingHoursLike]
    vacations: Sequence[VacationLike] = ()
    blocks: Sequence[BlockLike] = ()
    appointments: Sequence[AppointmentResponse] = ()
    clinic_id: UUID | None = None


@dataclass(frozen=True)
class SlotCriteria:
    """Search parameters for slot generation."""

    agendas: Sequence[DoctorAgenda]
    start_date: date
    end_date: date
    duration: timedelta
    now: datetime
    tz: tzinfo
    days_of_week: frozenset[int] | None = None
    earliest: time | None = None
    latest: time | None = None
    limit: int = 20

    def __post_init__(self) -> None:
        if self.duration <= timedelta(0):
            raise ValueError("Slot duration must be positive")

    @property
    def ordered_agendas(self) -> list[DoctorAgenda]:
        return sorted(self.agendas, key=lambda agenda: str(agenda.doctor_id))


class SlotGenerator:
    """
    Lazily yields bookable slots for one or more doctors.

    Each iteration starts from scratch, so the same generator can be
    consumed several times. Slots come out ascending by start time across
    all doctors, ties broken by doctor id, and stop at ``criteria.limit``.
    The generator only reads its snapshot and never mutates it.
    """

    def __init__(self, criteria: SlotCriteria):
        """Initialize generator with search criteria."""
        self.criteria = criteria

    def __iter__(self) -> Iterator[Slot]:
        streams = [self._doctor_slots(agenda) for agenda in self.criteria.ordered_agendas]
        merged = heapq.merge(
            *streams,
            key=lambda slot: (slot.start_time, str(slot.doctor_id)),
        )
        return islice(merged, self.criteria.limit)

    def first(self) -> Slot | None:
        """Earliest available slot, if any."""
        return next(iter(self), None)

    def _doctor_slots(self, agenda: DoctorAgenda) -> Iterator[Slot]:
        criteria = self.criteria
        duration_minutes = int(criteria.duration / timedelta(minutes=1))
        blocks = [block_interval(block, criteria.tz) for block in agenda.blocks]

        for day in iter_days(criteria.start_date, criteria.end_date):
            if criteria.days_of_week is not None and day_of_week(day) not in criteria.days_of_week:
                continue

            workable = resolve_workable_intervals(
                day,
                agenda.working_hours,
                agenda.vacations,
                criteria.tz,
                earliest=criteria.earliest,
                latest=criteria.latest,
            )

            for piece in workable:
                slot_start = piece.start
                while slot_start + criteria.duration <= piece.end:
                    slot_end = slot_start + criteria.duration
                    candidate = TimeInterval(slot_start, slot_end)

                    if (
                        slot_start > criteria.now
                        and not any(candidate.overlaps(block) for block in blocks)
                        and find_overlapping(agenda.appointments, slot_start, slot_end) is None
                    ):
                        yield Slot(
                            start_time=slot_start,
                            end_time=slot_end,
                            duration_minutes=duration_minutes,
                            doctor_id=agenda.doctor_id,
                            clinic_id=agenda.clinic_id,
                        )

                    slot_start = slot_end


def generate_slots(criteria: SlotCriteria) -> list[Slot]:
    """Materialize the slots described by ``criteria``."""
    return list(SlotGenerator(criteria))

"""Resolve the workable intervals of a doctor's calendar day."""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, tzinfo
from typing import Protocol

from clinic_scheduler.scheduling.intervals import TimeInterval, at_wall_clock, day_of_week


class WorkingHoursLike(Protocol):
    day_of_week: int
    is_available: bool
    start_time: time
    end_time: time
    break_start: time | None
    break_end: time | None


class VacationLike(Protocol):
    start_date: date
    end_date: date


def is_on_vacation(day: date, vacations: Iterable[VacationLike]) -> bool:
    """Whether ``day`` falls inside any inclusive vacation range."""
    return any(vacation.start_date <= day <= vacation.end_date for vacation in vacations)


def hours_for_day(
    day: date, working_hours: Iterable[WorkingHoursLike]
) -> WorkingHoursLike | None:
    """Return the authoritative working-hours row for the weekday of ``day``."""
    weekday = day_of_week(day)
    for row in working_hours:
        if row.day_of_week == weekday:
            return row
    return None


def resolve_workable_intervals(
    day: date,
    working_hours: Iterable[WorkingHoursLike],
    vacations: Iterable[VacationLike],
    tz: tzinfo,
    earliest: time | None = None,
    latest: time | None = None,
) -> list[TimeInterval]:
    """
    Compute the bookable sub-intervals of one calendar day.

    The lunch break is removed as a hole and the result is clipped to the
    optional wall-clock bounds. A closed day (vacation, day off, no row)
    yields an empty list; this function never raises for lack of hours.

    Args:
        day: Calendar day to resolve
        working_hours: The doctor's weekly working-hours rows
        vacations: The doctor's vacations
        tz: Zone the wall-clock times are expressed in
        earliest: Optional lower wall-clock bound
        latest: Optional upper wall-clock bound

    Returns:
        Non-empty intervals in ascending order
    """
    if is_on_vacation(day, vacations):
        return []

    row = hours_for_day(day, working_hours)
    if row is None or not row.is_available:
        return []

    workday = TimeInterval(
        at_wall_clock(day, row.start_time, tz),
        at_wall_clock(day, row.end_time, tz),
    )
    if workday.is_empty:
        return []

    pieces = [workday]
    if row.break_start is not None and row.break_end is not None:
        lunch = TimeInterval(
            at_wall_clock(day, row.break_start, tz),
            at_wall_clock(day, row.break_end, tz),
        )
        if not lunch.is_empty:
            pieces = workday.subtract(lunch)

    lower = at_wall_clock(day, earliest, tz) if earliest is not None else None
    upper = at_wall_clock(day, latest, tz) if latest is not None else None
    clipped = [piece.clip(lower, upper) for piece in pieces]

    return [piece for piece in clipped if not piece.is_empty]


def is_within_working_hours(
    start: datetime,
    end: datetime,
    working_hours: Sequence[WorkingHoursLike],
    vacations: Sequence[VacationLike],
    tz: tzinfo,
) -> bool:
    """Whether ``[start, end)`` fits inside one workable interval of its day."""
    day = start.astimezone(tz).date()
    return any(
        piece.contains(start, end)
        for piece in resolve_workable_intervals(day, working_hours, vacations, tz)
    )

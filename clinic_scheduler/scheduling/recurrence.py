"""Expansion of recurring appointment rules into concrete instants."""

from datetime import datetime, timedelta, tzinfo

from dateutil.relativedelta import relativedelta

from clinic_scheduler.scheduling.intervals import at_wall_clock, day_of_week
from clinic_scheduler.schemas.appointments import RecurrenceRule, RecurrenceType

DEFAULT_MAX_OCCURRENCES = 12
DEFAULT_HORIZON_DAYS = 365
MAX_ITERATIONS = 1000


def cadence_step(rule: RecurrenceRule) -> relativedelta:
    """Calendar distance between two consecutive candidate dates."""
    if rule.type == RecurrenceType.DAILY:
        return relativedelta(days=rule.interval)
    if rule.type == RecurrenceType.WEEKLY:
        return relativedelta(weeks=rule.interval)
    if rule.type == RecurrenceType.BIWEEKLY:
        return relativedelta(weeks=2)
    if rule.type == RecurrenceType.MONTHLY:
        return relativedelta(months=rule.interval)
    if rule.type == RecurrenceType.QUARTERLY:
        return relativedelta(months=3)
    raise ValueError(f"Unsupported recurrence type: {rule.type}")


def expand_recurrence(
    anchor: datetime,
    rule: RecurrenceRule,
    tz: tzinfo,
    default_max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    default_horizon_days: int = DEFAULT_HORIZON_DAYS,
    max_iterations: int = MAX_ITERATIONS,
) -> list[datetime]:
    """
    List the occurrences that follow ``anchor`` under ``rule``.

    The anchor itself is booked separately and is not part of the returned
    list; ``max_occurrences`` caps the occurrences that follow it. Every
    occurrence keeps the anchor's wall-clock time of day in ``tz``. Month
    steps are taken from the anchor (not chained) so a series anchored on
    the 31st lands on the last day of shorter months without drifting.

    Expansion stops at the first of: the end date (inclusive, defaulting to
    ``default_horizon_days`` after the anchor), the occurrence cap, or
    ``max_iterations`` candidate dates. The last bound guarantees
    termination when a weekday filter rejects every candidate.

    Args:
        anchor: Start of the first booking
        rule: Repeat rule
        tz: Clinic timezone used for wall-clock arithmetic
        default_max_occurrences: Cap on following occurrences when the rule sets none
        default_horizon_days: Horizon when the rule sets no end date
        max_iterations: Upper bound on candidate dates examined

    Returns:
        Occurrence start instants in ascending order
    """
    local_anchor = anchor.astimezone(tz)
    anchor_day = local_anchor.date()
    clock = local_anchor.time()

    total = rule.max_occurrences or default_max_occurrences
    last_day = rule.end_date or anchor_day + timedelta(days=default_horizon_days)
    weekdays = set(rule.days_of_week) if rule.days_of_week else None
    step = cadence_step(rule)

    occurrences: list[datetime] = []
    for iteration in range(1, max_iterations + 1):
        if len(occurrences) >= total:
            break

        day = anchor_day + step * iteration
        if day > last_day:
            break

        if weekdays is not None and day_of_week(day) not in weekdays:
            continue

        occurrences.append(at_wall_clock(day, clock, tz))

    return occurrences

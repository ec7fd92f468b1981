"""Scheduling core: intervals, availability, conflicts, recurrence and lifecycle."""

from clinic_scheduler.scheduling.conflicts import (
    ConflictDetector,
    ResourceKind,
    ResourceRef,
    booking_resources,
    find_overlapping,
)
from clinic_scheduler.scheduling.intervals import TimeInterval, at_wall_clock, overlaps
from clinic_scheduler.scheduling.lifecycle import (
    Transition,
    allowed_transitions,
    ensure_transition,
    plan_transition,
)
from clinic_scheduler.scheduling.recurrence import expand_recurrence
from clinic_scheduler.scheduling.slots import (
    DoctorAgenda,
    SlotCriteria,
    SlotGenerator,
    generate_slots,
)
from clinic_scheduler.scheduling.working_hours import (
    is_within_working_hours,
    resolve_workable_intervals,
)

__all__ = [
    "ConflictDetector",
    "DoctorAgenda",
    "ResourceKind",
    "ResourceRef",
    "SlotCriteria",
    "SlotGenerator",
    "TimeInterval",
    "Transition",
    "allowed_transitions",
    "at_wall_clock",
    "booking_resources",
    "ensure_transition",
    "expand_recurrence",
    "find_overlapping",
    "generate_slots",
    "is_within_working_hours",
    "overlaps",
    "plan_transition",
    "resolve_workable_intervals",
]

"""Appointment lifecycle state machine."""

from datetime import datetime
from enum import Enum
from typing import Any

from clinic_scheduler.core.exceptions import InvalidTransitionException, ValidationException
from clinic_scheduler.scheduling.intervals import minutes_between
from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus


class Transition(str, Enum):
    """Operations that move an appointment through its lifecycle."""

    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
    RESCHEDULE = "reschedule"
    EDIT = "edit"


S = AppointmentStatus

ALLOWED_SOURCES: dict[Transition, frozenset[AppointmentStatus]] = {
    Transition.CONFIRM: frozenset({S.SCHEDULED}),
    Transition.CHECK_IN: frozenset({S.SCHEDULED, S.CONFIRMED}),
    Transition.START: frozenset({S.WAITING, S.CONFIRMED, S.SCHEDULED}),
    Transition.COMPLETE: frozenset({S.IN_PROGRESS}),
    Transition.CANCEL: frozenset({S.SCHEDULED, S.CONFIRMED, S.WAITING}),
    Transition.NO_SHOW: frozenset({S.SCHEDULED, S.CONFIRMED}),
    Transition.RESCHEDULE: frozenset({S.SCHEDULED, S.CONFIRMED}),
    Transition.EDIT: frozenset({S.SCHEDULED, S.CONFIRMED}),
}

# None keeps the current status
TARGET_STATUS: dict[Transition, AppointmentStatus | None] = {
    Transition.CONFIRM: S.CONFIRMED,
    Transition.CHECK_IN: S.WAITING,
    Transition.START: S.IN_PROGRESS,
    Transition.COMPLETE: S.COMPLETED,
    Transition.CANCEL: S.CANCELLED,
    Transition.NO_SHOW: S.NO_SHOW,
    Transition.RESCHEDULE: S.RESCHEDULED,
    Transition.EDIT: None,
}


def can_transition(status: AppointmentStatus, transition: Transition) -> bool:
    return status in ALLOWED_SOURCES[transition]


def allowed_transitions(status: AppointmentStatus) -> set[Transition]:
    """Transitions accepted from ``status``."""
    return {transition for transition, sources in ALLOWED_SOURCES.items() if status in sources}


def ensure_transition(status: AppointmentStatus, transition: Transition) -> None:
    """
    Reject a transition that is not legal from ``status``.

    Raises:
        InvalidTransitionException: If ``status`` is not an allowed source
    """
    if not can_transition(status, transition):
        raise InvalidTransitionException(transition.value, status.value)


def plan_transition(
    appointment: AppointmentResponse,
    transition: Transition,
    at: datetime,
) -> dict[str, Any]:
    """
    Compute the column values a status transition writes.

    The appointment itself is not modified. Stamps are written only by
    their own transition and only from states where they are still unset.

    Args:
        appointment: Current state of the record
        transition: Requested transition
        at: Instant the transition happens (check-in, start or end time)

    Returns:
        Values to apply, including the new status

    Raises:
        InvalidTransitionException: If the transition is illegal
        ValidationException: If ``at`` precedes a stamp it is measured from
    """
    ensure_transition(appointment.status, transition)

    target = TARGET_STATUS[transition]
    values: dict[str, Any] = {"updated_at": at}
    if target is not None:
        values["status"] = target.value

    if transition == Transition.CONFIRM:
        values["confirmed_at"] = at

    elif transition == Transition.CHECK_IN:
        values["check_in_time"] = at

    elif transition == Transition.START:
        values["actual_start_time"] = at
        if appointment.check_in_time is not None:
            if at < appointment.check_in_time:
                raise ValidationException("Start time cannot precede check-in time")
            values["waiting_time_minutes"] = minutes_between(appointment.check_in_time, at)

    elif transition == Transition.COMPLETE:
        started = appointment.actual_start_time or appointment.start_time
        if at < started:
            raise ValidationException("End time cannot precede the consultation start")
        values["actual_end_time"] = at
        values["consultation_duration_minutes"] = minutes_between(started, at)

    elif transition == Transition.CANCEL:
        values["cancelled_at"] = at

    return values

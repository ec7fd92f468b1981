"""Scheduling orchestrator: booking, lifecycle transitions and availability."""

import hashlib
import json
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from dateutil.relativedelta import relativedelta

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.exceptions import (
    AppException,
    InvalidTransitionException,
    NotFoundException,
    OutOfHoursException,
    ValidationException,
)
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.scheduling.conflicts import ConflictDetector, ResourceRef, booking_resources
from clinic_scheduler.scheduling.intervals import (
    TimeInterval,
    at_wall_clock,
    day_of_week,
    minutes_between,
)
from clinic_scheduler.scheduling.lifecycle import Transition, ensure_transition, plan_transition
from clinic_scheduler.scheduling.recurrence import expand_recurrence
from clinic_scheduler.scheduling.slots import (
    DoctorAgenda,
    SlotCriteria,
    SlotGenerator,
    block_interval,
    generate_slots,
)
from clinic_scheduler.scheduling.working_hours import is_within_working_hours
from clinic_scheduler.schemas.appointments import (
    AppointmentCancel,
    AppointmentCheckIn,
    AppointmentComplete,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStart,
    AppointmentStatus,
    AppointmentUpdate,
    BatchCancelRequest,
    BatchConfirmRequest,
    BatchItemError,
    BatchOperationResult,
    BookingResult,
    OccurrenceOutcome,
    RecurrenceRule,
)
from clinic_scheduler.schemas.availability import (
    CalendarEvent,
    CalendarEventType,
    CalendarQuery,
    CalendarResponse,
    CalendarView,
    DailyScheduleResponse,
    Slot,
    SlotListResponse,
    SlotQuery,
)
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.notification_service import EventPublisher, SchedulingEvent
from clinic_scheduler.services.scheduling_store import SchedulingStore

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

_TRANSITION_EVENTS = {
    Transition.CONFIRM: SchedulingEvent.APPOINTMENT_CONFIRMED,
    Transition.CHECK_IN: SchedulingEvent.APPOINTMENT_CHECKED_IN,
    Transition.START: SchedulingEvent.APPOINTMENT_STARTED,
    Transition.COMPLETE: SchedulingEvent.APPOINTMENT_COMPLETED,
    Transition.CANCEL: SchedulingEvent.APPOINTMENT_CANCELLED,
    Transition.NO_SHOW: SchedulingEvent.APPOINTMENT_NO_SHOW,
    Transition.RESCHEDULE: SchedulingEvent.APPOINTMENT_RESCHEDULED,
    Transition.EDIT: SchedulingEvent.APPOINTMENT_UPDATED,
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def resolve_interval(
    start: datetime,
    end: datetime | None,
    duration_minutes: int | None,
    default_minutes: int,
) -> tuple[datetime, datetime, int]:
    """
    Derive the full ``(start, end, duration)`` triple of a booking.

    Args:
        start: Requested start
        end: Requested end, if given
        duration_minutes: Requested duration, if given
        default_minutes: Duration used when neither end nor duration is given

    Returns:
        Start, end and duration in minutes

    Raises:
        ValidationException: If the interval is empty or inconsistent
    """
    if end is not None:
        if end <= start:
            raise ValidationException("End time must be after start time")
        actual = minutes_between(start, end)
        if end - start != timedelta(minutes=actual):
            raise ValidationException("Appointment interval must be a whole number of minutes")
        if duration_minutes is not None and duration_minutes != actual:
            raise ValidationException(
                "Duration does not match the interval between start and end time"
            )
        return start, end, actual

    minutes = duration_minutes or default_minutes
    return start, start + timedelta(minutes=minutes), minutes


def error_message(error: Exception) -> str:
    """Client-facing message of an error recorded per item in a batch or series."""
    if isinstance(error, AppException):
        return error.message
    return str(error) or error.__class__.__name__


def calendar_period(view: CalendarView, reference: date) -> tuple[date, date]:
    """
    Inclusive first and last day of the calendar page showing ``reference``.

    Weeks run Sunday to Saturday.
    """
    if view == CalendarView.DAY:
        return reference, reference
    if view == CalendarView.WEEK:
        first = reference - timedelta(days=day_of_week(reference))
        return first, first + timedelta(days=6)
    first = reference.replace(day=1)
    return first, first + relativedelta(months=1) - timedelta(days=1)


def resource_cache_prefix(resource: ResourceRef) -> str:
    """Namespace of every cache key derived from a resource's bookings."""
    return f"scheduling:{resource.kind.value}:{resource.id}"


def invalidate_resources(cache: CacheManager | None, resources: Sequence[ResourceRef]) -> None:
    """Drop advisory cache entries for the given resources."""
    if cache is None:
        return
    for resource in set(resources):
        cache.delete_pattern(f"{resource_cache_prefix(resource)}:*")


class SchedulingService:
    """
    Service composing conflict detection, working-hours legality, slot
    generation, recurrence and the lifecycle state machine over a store.

    Every write runs inside ``store.transaction`` holding locks on the
    doctor, patient and room it touches, so the conflict read and the write
    are atomic with respect to other bookings of the same resources. Cache
    invalidation and events run after commit and never fail the operation;
    a strict audit entry is written before commit so a failing sink aborts
    the write.
    """

    def __init__(
        self,
        store: SchedulingStore,
        settings: Settings | None = None,
        cache: CacheManager | None = None,
        publisher: EventPublisher | None = None,
        audit: AuditService | None = None,
        clock: Clock | None = None,
    ):
        """Initialize service with its store and collaborators."""
        self.store = store
        self.settings = settings or get_settings()
        self.cache = cache
        self.publisher = publisher
        self.audit = audit or AuditService(strict=self.settings.strict_audit)
        self.clock = clock or utc_now
        self.conflicts = ConflictDetector(store)

    @property
    def tz(self) -> ZoneInfo:
        return self.settings.tzinfo

    # Reads

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        appointment = await self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found")
        return appointment

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """List appointments with filtering and pagination."""
        total, items = await self.store.list_appointments(filters)
        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    # Booking

    async def create_appointment(
        self,
        data: AppointmentCreate,
        actor_id: UUID | None = None,
    ) -> BookingResult:
        """
        Book an appointment, and the rest of its series when recurring.

        The first booking must succeed for the request to succeed. Each
        further occurrence goes through the same checks on its own and a
        failing occurrence is recorded without affecting its siblings.

        Args:
            data: Appointment creation data
            actor_id: User performing the booking

        Returns:
            The booked appointment and, for a series, one outcome per occurrence

        Raises:
            ValidationException: If the requested interval is malformed
            NotFoundException: If a participant does not exist
            SchedulingConflictException: If a participant is already booked
            OutOfHoursException: If the doctor does not work at that time
        """
        start, end, duration = resolve_interval(
            data.start_time,
            data.end_time,
            data.duration_minutes,
            self.settings.default_appointment_duration_minutes,
        )

        await self._ensure_exists("patient", data.patient_id)
        await self._ensure_exists("doctor", data.doctor_id)
        await self._ensure_exists("clinic", data.clinic_id)
        if data.room_id is not None:
            await self._ensure_exists("room", data.room_id)

        values = {
            "patient_id": data.patient_id,
            "doctor_id": data.doctor_id,
            "clinic_id": data.clinic_id,
            "room_id": data.room_id,
            "specialty_id": data.specialty_id,
            "original_appointment_id": data.original_appointment_id,
            "start_time": start,
            "end_time": end,
            "duration_minutes": duration,
            "appointment_type": data.appointment_type.value,
            "reason": data.reason,
            "notes": data.notes,
            "status": AppointmentStatus.SCHEDULED.value,
            "created_by": actor_id,
        }

        appointment = await self._book(values, actor_id)

        if data.recurrence is None:
            return BookingResult(appointment=appointment)

        outcomes = await self._book_series(appointment, data.recurrence, values, actor_id)
        created = sum(1 for outcome in outcomes if outcome.succeeded)
        return BookingResult(
            appointment=appointment,
            occurrences=outcomes,
            created_count=created,
            failed_count=len(outcomes) - created,
        )

    async def _book(self, values: dict[str, Any], actor_id: UUID | None) -> AppointmentResponse:
        resources = booking_resources(values["doctor_id"], values["patient_id"], values["room_id"])

        start, end = values["start_time"], values["end_time"]

        async with self.store.transaction(resources):
            await self.conflicts.ensure_available(resources, start, end)
            await self._ensure_bookable(values["doctor_id"], start, end)
            appointment = await self.store.insert_appointment(values)
            self._audit_before_commit(appointment, "appointment.create", actor_id)

        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
            start_time=appointment.start_time.isoformat(),
            is_recurrence=appointment.is_recurrence,
        )
        self._after_change(
            appointment,
            resources,
            action="appointment.create",
            event=SchedulingEvent.APPOINTMENT_CREATED,
            actor_id=actor_id,
        )
        return appointment

    async def _book_series(
        self,
        anchor: AppointmentResponse,
        rule: RecurrenceRule,
        values: dict[str, Any],
        actor_id: UUID | None,
    ) -> list[OccurrenceOutcome]:
        starts = expand_recurrence(
            anchor.start_time,
            rule,
            self.tz,
            default_max_occurrences=self.settings.recurrence_default_max_occurrences,
            default_horizon_days=self.settings.recurrence_default_horizon_days,
            max_iterations=self.settings.recurrence_max_iterations,
        )
        length = anchor.end_time - anchor.start_time

        outcomes = [
            OccurrenceOutcome(sequence=1, start_time=anchor.start_time, appointment_id=anchor.id)
        ]
        for sequence, occurrence_start in enumerate(starts, start=2):
            occurrence = {
                **values,
                "start_time": occurrence_start,
                "end_time": occurrence_start + length,
                "original_appointment_id": anchor.id,
                "is_recurrence": True,
            }
            try:
                booked = await self._book(occurrence, actor_id)
            except Exception as e:
                message = error_message(e)
                logger.warning(
                    "recurrence_occurrence_failed",
                    anchor_id=str(anchor.id),
                    sequence=sequence,
                    start_time=occurrence_start.isoformat(),
                    error=message,
                )
                outcomes.append(
                    OccurrenceOutcome(
                        sequence=sequence,
                        start_time=occurrence_start,
                        error=message,
                        error_type=e.__class__.__name__,
                    )
                )
            else:
                outcomes.append(
                    OccurrenceOutcome(
                        sequence=sequence,
                        start_time=occurrence_start,
                        appointment_id=booked.id,
                    )
                )

        logger.info(
            "recurrence_series_booked",
            anchor_id=str(anchor.id),
            requested=len(outcomes),
            created=sum(1 for outcome in outcomes if outcome.succeeded),
        )
        return outcomes

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """
        Edit an appointment without changing its status.

        Changing the time, doctor, patient or room re-runs the conflict
        checks (ignoring the appointment itself); changing the time or doctor
        also re-checks working hours.

        Raises:
            NotFoundException: If the appointment or a new participant is missing
            InvalidTransitionException: If the appointment can no longer be edited
            SchedulingConflictException: If the new placement is already booked
            OutOfHoursException: If the new placement is outside working hours
        """
        current = await self.get_appointment(appointment_id)
        ensure_transition(current.status, Transition.EDIT)

        changes = data.model_dump(exclude_unset=True)
        for kind in ("patient", "doctor", "room"):
            new_id = changes.get(f"{kind}_id")
            if new_id is not None and new_id != getattr(current, f"{kind}_id"):
                await self._ensure_exists(kind, new_id)

        details = {"changed_fields": sorted(changes)}
        planned = self._plan_edit(current, changes)
        resources = booking_resources(current.doctor_id, current.patient_id, current.room_id)
        resources += booking_resources(
            planned["doctor_id"], planned["patient_id"], planned["room_id"]
        )

        async with self.store.transaction(resources):
            locked = await self._lock(appointment_id)
            ensure_transition(locked.status, Transition.EDIT)
            values = self._plan_edit(locked, changes)
            new_resources = booking_resources(
                values["doctor_id"], values["patient_id"], values["room_id"]
            )

            retimed = (values["start_time"], values["end_time"]) != (
                locked.start_time,
                locked.end_time,
            )
            moved = retimed or new_resources != booking_resources(
                locked.doctor_id, locked.patient_id, locked.room_id
            )
            if moved:
                await self.conflicts.ensure_available(
                    new_resources, values["start_time"], values["end_time"], appointment_id
                )
            if retimed or values["doctor_id"] != locked.doctor_id:
                await self._ensure_bookable(
                    values["doctor_id"], values["start_time"], values["end_time"]
                )

            updated = await self.store.update_appointment(
                appointment_id, values, expected_status=locked.status
            )
            if updated is None:
                raise InvalidTransitionException(Transition.EDIT.value, locked.status.value)
            self._audit_before_commit(updated, "appointment.update", actor_id, details)

        logger.info("appointment_updated", appointment_id=str(appointment_id), moved=moved)
        self._after_change(
            updated,
            resources,
            action="appointment.update",
            event=SchedulingEvent.APPOINTMENT_UPDATED,
            actor_id=actor_id,
            details=details,
        )
        return updated

    def _plan_edit(self, base: AppointmentResponse, changes: dict[str, Any]) -> dict[str, Any]:
        if {"start_time", "end_time", "duration_minutes"} & changes.keys():
            end = changes.get("end_time")
            duration = changes.get("duration_minutes")
            if end is None and duration is None:
                duration = base.duration_minutes
            start, end, duration = resolve_interval(
                changes.get("start_time") or base.start_time,
                end,
                duration,
                self.settings.default_appointment_duration_minutes,
            )
        else:
            start, end, duration = base.start_time, base.end_time, base.duration_minutes

        values: dict[str, Any] = {
            "patient_id": changes.get("patient_id") or base.patient_id,
            "doctor_id": changes.get("doctor_id") or base.doctor_id,
            "room_id": changes["room_id"] if "room_id" in changes else base.room_id,
            "start_time": start,
            "end_time": end,
            "duration_minutes": duration,
            "updated_at": self.clock(),
        }
        if changes.get("appointment_type") is not None:
            values["appointment_type"] = changes["appointment_type"].value
        for field in ("reason", "notes"):
            if field in changes:
                values[field] = changes[field]
        return values

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment by retiring it and booking its replacement.

        The original record is kept in RESCHEDULED status and the new
        SCHEDULED record points back to it through ``original_appointment_id``.
        Both writes happen in one transaction.

        Args:
            appointment_id: Appointment to move
            data: New time and optionally a new doctor or room
            actor_id: User performing the change

        Returns:
            The replacement appointment

        Raises:
            NotFoundException: If the appointment or new doctor/room is missing
            InvalidTransitionException: If the appointment cannot be rescheduled
            SchedulingConflictException: If the new placement is already booked
            OutOfHoursException: If the new placement is outside working hours
        """
        current = await self.get_appointment(appointment_id)
        ensure_transition(current.status, Transition.RESCHEDULE)

        doctor_id = data.new_doctor_id or current.doctor_id
        room_id = data.new_room_id or current.room_id
        if doctor_id != current.doctor_id:
            await self._ensure_exists("doctor", doctor_id)
        if room_id is not None and room_id != current.room_id:
            await self._ensure_exists("room", room_id)

        duration = data.new_duration_minutes
        if data.new_end_time is None and duration is None:
            duration = current.duration_minutes
        start, end, duration = resolve_interval(
            data.new_start_time,
            data.new_end_time,
            duration,
            self.settings.default_appointment_duration_minutes,
        )

        new_resources = booking_resources(doctor_id, current.patient_id, room_id)
        resources = new_resources + booking_resources(
            current.doctor_id, current.patient_id, current.room_id
        )
        now = self.clock()

        async with self.store.transaction(resources):
            locked = await self._lock(appointment_id)
            ensure_transition(locked.status, Transition.RESCHEDULE)

            await self.conflicts.ensure_available(new_resources, start, end, appointment_id)
            await self._ensure_bookable(doctor_id, start, end)

            # Retire first so the replacement may overlap the old interval
            retired = await self.store.update_appointment(
                appointment_id,
                plan_transition(locked, Transition.RESCHEDULE, now),
                expected_status=locked.status,
            )
            if retired is None:
                raise InvalidTransitionException(Transition.RESCHEDULE.value, locked.status.value)

            replacement = await self.store.insert_appointment(
                {
                    "patient_id": locked.patient_id,
                    "doctor_id": doctor_id,
                    "clinic_id": locked.clinic_id,
                    "room_id": room_id,
                    "specialty_id": locked.specialty_id,
                    "original_appointment_id": locked.id,
                    "start_time": start,
                    "end_time": end,
                    "duration_minutes": duration,
                    "appointment_type": locked.appointment_type.value,
                    "reason": locked.reason,
                    "notes": locked.notes,
                    "status": AppointmentStatus.SCHEDULED.value,
                    "created_by": actor_id,
                }
            )
            details = {"new_appointment_id": str(replacement.id), "reason": data.reason}
            self._audit_before_commit(retired, "appointment.reschedule", actor_id, details)

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            new_appointment_id=str(replacement.id),
            start_time=start.isoformat(),
        )
        self._after_change(
            retired,
            resources,
            action="appointment.reschedule",
            event=SchedulingEvent.APPOINTMENT_RESCHEDULED,
            actor_id=actor_id,
            details=details,
        )
        return replacement

    # Lifecycle transitions

    async def confirm_appointment(
        self, appointment_id: UUID, actor_id: UUID | None = None
    ) -> AppointmentResponse:
        """Confirm a scheduled appointment."""
        return await self._transition(appointment_id, Transition.CONFIRM, actor_id)

    async def check_in(
        self,
        appointment_id: UUID,
        data: AppointmentCheckIn | None = None,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """Register the patient's arrival; the appointment moves to WAITING."""
        at = data.check_in_time if data and data.check_in_time else None
        return await self._transition(appointment_id, Transition.CHECK_IN, actor_id, at=at)

    async def start_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentStart | None = None,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """
        Start the consultation.

        When the patient checked in, the waiting time is stored in minutes.
        A room given here is checked for conflicts over the booked interval.
        """
        data = data or AppointmentStart()
        if data.room_id is not None:
            await self._ensure_exists("room", data.room_id)

        return await self._transition(
            appointment_id,
            Transition.START,
            actor_id,
            at=data.actual_start_time,
            room_id=data.room_id,
        )

    async def complete_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentComplete | None = None,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """Complete the consultation and store its duration in minutes."""
        data = data or AppointmentComplete()
        extra = {"notes": data.notes} if data.notes is not None else {}
        return await self._transition(
            appointment_id,
            Transition.COMPLETE,
            actor_id,
            at=data.actual_end_time,
            extra_values=extra,
        )

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentCancel | None = None,
        actor_id: UUID | None = None,
    ) -> AppointmentResponse:
        """Cancel an appointment and tell the waiting list its interval is free."""
        reason = data.reason if data else None
        cancelled = await self._transition(
            appointment_id,
            Transition.CANCEL,
            actor_id,
            extra_values={"cancellation_reason": reason},
            details={"reason": reason},
        )
        if self.publisher is not None:
            self.publisher.slot_released(cancelled)
        return cancelled

    async def mark_no_show(
        self, appointment_id: UUID, actor_id: UUID | None = None
    ) -> AppointmentResponse:
        """Record that the patient did not attend."""
        return await self._transition(appointment_id, Transition.NO_SHOW, actor_id)

    async def _transition(
        self,
        appointment_id: UUID,
        transition: Transition,
        actor_id: UUID | None,
        at: datetime | None = None,
        extra_values: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
        room_id: UUID | None = None,
    ) -> AppointmentResponse:
        at = at or self.clock()
        requested_room = ResourceRef.room(room_id) if room_id is not None else None
        claim: ResourceRef | None = None

        async with self.store.transaction([requested_room] if requested_room else []):
            locked = await self._lock(appointment_id)
            values = plan_transition(locked, transition, at)
            values.update(extra_values or {})

            # Room change is decided against the locked row
            if room_id is not None and room_id != locked.room_id:
                claim = requested_room
                await self.conflicts.ensure_available(
                    [claim], locked.start_time, locked.end_time, appointment_id
                )
                values["room_id"] = room_id

            updated = await self.store.update_appointment(
                appointment_id, values, expected_status=locked.status
            )
            if updated is None:
                raise InvalidTransitionException(transition.value, locked.status.value)
            details = {"previous_status": locked.status.value, **(details or {})}
            self._audit_before_commit(updated, f"appointment.{transition.value}", actor_id, details)

        logger.info(
            "appointment_transitioned",
            appointment_id=str(appointment_id),
            transition=transition.value,
            from_status=locked.status.value,
            to_status=updated.status.value,
        )
        resources = booking_resources(locked.doctor_id, locked.patient_id, locked.room_id)
        if claim is not None:
            resources.append(claim)
        self._after_change(
            updated,
            resources,
            action=f"appointment.{transition.value}",
            event=_TRANSITION_EVENTS[transition],
            actor_id=actor_id,
            details=details,
        )
        return updated

    async def delete_appointment(
        self, appointment_id: UUID, actor_id: UUID | None = None
    ) -> None:
        """
        Soft delete an appointment.

        Raises:
            NotFoundException: If appointment not found
        """
        now = self.clock()
        current = await self.get_appointment(appointment_id)
        resources = booking_resources(current.doctor_id, current.patient_id, current.room_id)

        async with self.store.transaction(resources):
            deleted = await self.store.update_appointment(
                appointment_id, {"deleted_at": now, "updated_at": now}
            )
            if deleted is None:
                raise NotFoundException("Appointment not found")
            self._audit_before_commit(deleted, "appointment.delete", actor_id)

        logger.info("appointment_deleted", appointment_id=str(appointment_id))
        self._after_change(
            deleted,
            resources,
            action="appointment.delete",
            event=SchedulingEvent.APPOINTMENT_DELETED,
            actor_id=actor_id,
        )

    # Batch operations

    async def batch_cancel(
        self, data: BatchCancelRequest, actor_id: UUID | None = None
    ) -> BatchOperationResult:
        """Cancel several appointments, reporting the outcome of each."""
        cancel = AppointmentCancel(reason=data.reason)
        return await self._run_batch(
            data.appointment_ids,
            lambda appointment_id: self.cancel_appointment(appointment_id, cancel, actor_id),
        )

    async def batch_confirm(
        self, data: BatchConfirmRequest, actor_id: UUID | None = None
    ) -> BatchOperationResult:
        """Confirm several appointments, reporting the outcome of each."""
        return await self._run_batch(
            data.appointment_ids,
            lambda appointment_id: self.confirm_appointment(appointment_id, actor_id),
        )

    async def _run_batch(
        self,
        appointment_ids: Sequence[UUID],
        operation: Callable[[UUID], Awaitable[AppointmentResponse]],
    ) -> BatchOperationResult:
        success_ids: list[UUID] = []
        errors: list[BatchItemError] = []

        for appointment_id in appointment_ids:
            try:
                await operation(appointment_id)
            except Exception as e:
                errors.append(
                    BatchItemError(
                        id=appointment_id,
                        error=error_message(e),
                        error_type=e.__class__.__name__,
                    )
                )
            else:
                success_ids.append(appointment_id)

        return BatchOperationResult(
            success=not errors,
            total=len(appointment_ids),
            processed=len(success_ids),
            failed=len(errors),
            success_ids=success_ids,
            errors=errors,
        )

    # Availability

    async def get_available_slots(self, query: SlotQuery) -> SlotListResponse:
        """
        Search bookable slots.

        Candidate doctors come from the explicit doctor, or from clinic
        membership and specialty. Results are ascending by start across
        doctors. Single-doctor searches are cached briefly; the cache is
        cleared whenever that doctor's bookings or availability change.

        Raises:
            ValidationException: If no doctor, clinic or specialty is given
            NotFoundException: If the requested doctor does not exist
        """
        if query.doctor_id is None and query.clinic_id is None and query.specialty_id is None:
            raise ValidationException("A doctor, clinic or specialty is required to search slots")
        if query.doctor_id is not None:
            await self._ensure_exists("doctor", query.doctor_id)

        end_date = query.end_date or query.start_date + timedelta(
            days=self.settings.default_slot_search_days
        )
        limit = min(query.limit, self.settings.max_slot_limit)
        now = self.clock()

        cache_key = self._slot_cache_key(query, end_date, limit)
        if cache_key is not None:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                slots = [Slot.model_validate(item) for item in cached]
                slots = [slot for slot in slots if slot.start_time > now]
                return SlotListResponse(
                    slots=slots, total=len(slots), start_date=query.start_date, end_date=end_date
                )

        doctor_ids = await self.store.candidate_doctors(
            query.doctor_id, query.clinic_id, query.specialty_id
        )
        agendas = [
            await self._load_agenda(doctor_id, query.start_date, end_date, query.clinic_id)
            for doctor_id in doctor_ids
        ]

        slots = generate_slots(
            SlotCriteria(
                agendas=agendas,
                start_date=query.start_date,
                end_date=end_date,
                duration=timedelta(minutes=query.duration_minutes),
                now=now,
                tz=self.tz,
                days_of_week=frozenset(query.days_of_week) if query.days_of_week else None,
                earliest=query.earliest_time,
                latest=query.latest_time,
                limit=limit,
            )
        )

        if cache_key is not None:
            self.cache.set_json(
                cache_key,
                [slot.model_dump(mode="json") for slot in slots],
                ttl=self.settings.slot_cache_ttl_seconds,
            )

        logger.debug("slots_generated", doctors=len(doctor_ids), count=len(slots))
        return SlotListResponse(
            slots=slots, total=len(slots), start_date=query.start_date, end_date=end_date
        )

    def _slot_cache_key(self, query: SlotQuery, end_date: date, limit: int) -> str | None:
        if self.cache is None or query.doctor_id is None:
            return None
        fingerprint = json.dumps(
            {**query.model_dump(mode="json"), "end_date": end_date.isoformat(), "limit": limit},
            sort_keys=True,
        )
        digest = hashlib.sha256(fingerprint.encode()).hexdigest()[:16]
        return f"{resource_cache_prefix(ResourceRef.doctor(query.doctor_id))}:slots:{digest}"

    async def get_daily_schedule(self, doctor_id: UUID, day: date) -> DailyScheduleResponse:
        """
        A doctor's appointments for one day with per-status totals and the
        next free slot of that day.

        Raises:
            NotFoundException: If the doctor does not exist
        """
        await self._ensure_exists("doctor", doctor_id)

        tz = self.tz
        day_start = at_wall_clock(day, time.min, tz)
        day_end = at_wall_clock(day + timedelta(days=1), time.min, tz)
        booked = await self.store.list_doctor_appointments(
            doctor_id, day_start, day_end, active_only=False
        )
        day_appointments = [a for a in booked if day_start <= a.start_time < day_end]

        def count(*statuses: AppointmentStatus) -> int:
            return sum(1 for a in day_appointments if a.status in statuses)

        agenda = await self._load_agenda(doctor_id, day, day)
        next_slot = SlotGenerator(
            SlotCriteria(
                agendas=[agenda],
                start_date=day,
                end_date=day,
                duration=timedelta(minutes=self.settings.default_appointment_duration_minutes),
                now=self.clock(),
                tz=tz,
                limit=1,
            )
        ).first()

        return DailyScheduleResponse(
            doctor_id=doctor_id,
            date=day,
            appointments=day_appointments,
            total_scheduled=len(day_appointments),
            total_completed=count(AppointmentStatus.COMPLETED),
            total_cancelled=count(AppointmentStatus.CANCELLED),
            total_no_show=count(AppointmentStatus.NO_SHOW),
            total_pending=count(
                AppointmentStatus.SCHEDULED,
                AppointmentStatus.CONFIRMED,
                AppointmentStatus.WAITING,
            ),
            next_available_slot=next_slot.start_time if next_slot else None,
        )

    async def get_calendar(self, query: CalendarQuery) -> CalendarResponse:
        """
        Appointments, schedule blocks and vacations over a calendar period.

        Without explicit dates the period is the day, week or month around
        the reference date (today in the clinic zone). Doctors come from the
        query or from clinic membership. Cancelled and rescheduled
        appointments are left out; the room filter applies to appointments.

        Raises:
            ValidationException: If neither a clinic nor a doctor is given
        """
        if query.clinic_id is None and not query.doctor_ids:
            raise ValidationException("A clinic or at least one doctor is required")

        tz = self.tz
        if query.start_date is not None and query.end_date is not None:
            start_date, end_date = query.start_date, query.end_date
        else:
            reference = query.reference_date or self.clock().astimezone(tz).date()
            start_date, end_date = calendar_period(query.view, reference)
        range_start = at_wall_clock(start_date, time.min, tz)
        range_end = at_wall_clock(end_date + timedelta(days=1), time.min, tz)

        doctor_ids = query.doctor_ids or await self.store.candidate_doctors(
            clinic_id=query.clinic_id
        )
        rooms = set(query.room_ids)
        hidden = {AppointmentStatus.CANCELLED.value, AppointmentStatus.RESCHEDULED.value}
        events: list[CalendarEvent] = []

        for doctor_id in doctor_ids:
            booked = await self.store.list_doctor_appointments(
                doctor_id, range_start, range_end, active_only=False
            )
            for appointment in booked:
                if appointment.status.value in hidden:
                    continue
                if not range_start <= appointment.start_time < range_end:
                    continue
                if query.clinic_id is not None and appointment.clinic_id != query.clinic_id:
                    continue
                if rooms and appointment.room_id not in rooms:
                    continue
                events.append(
                    CalendarEvent(
                        id=str(appointment.id),
                        event_type=CalendarEventType.APPOINTMENT,
                        start=appointment.start_time,
                        end=appointment.end_time,
                        title=appointment.reason,
                        doctor_id=doctor_id,
                        status=appointment.status,
                        appointment_id=appointment.id,
                        patient_id=appointment.patient_id,
                        clinic_id=appointment.clinic_id,
                        room_id=appointment.room_id,
                    )
                )

            if query.include_blocks:
                for block in await self.store.list_blocks(doctor_id, range_start, range_end):
                    span = block_interval(block, tz)
                    events.append(
                        CalendarEvent(
                            id=f"block-{block.id}",
                            event_type=CalendarEventType.BLOCK,
                            start=span.start,
                            end=span.end,
                            all_day=block.all_day,
                            title=block.reason or "Blocked",
                            doctor_id=doctor_id,
                        )
                    )

            if query.include_vacations:
                for vacation in await self.store.list_vacations(doctor_id, start_date, end_date):
                    events.append(
                        CalendarEvent(
                            id=f"vacation-{vacation.id}",
                            event_type=CalendarEventType.VACATION,
                            start=at_wall_clock(vacation.start_date, time.min, tz),
                            end=at_wall_clock(vacation.end_date + timedelta(days=1), time.min, tz),
                            all_day=True,
                            title=vacation.reason or "Vacation",
                            doctor_id=doctor_id,
                        )
                    )

        events.sort(key=lambda event: (event.start, event.event_type.value, event.id))
        logger.debug("calendar_built", doctors=len(doctor_ids), events=len(events))
        return CalendarResponse(
            events=events, start_date=start_date, end_date=end_date, view=query.view
        )

    async def _load_agenda(
        self,
        doctor_id: UUID,
        start_date: date,
        end_date: date,
        clinic_id: UUID | None = None,
    ) -> DoctorAgenda:
        tz = self.tz
        range_start = at_wall_clock(start_date, time.min, tz)
        range_end = at_wall_clock(end_date + timedelta(days=1), time.min, tz)
        margin = timedelta(days=1)

        return DoctorAgenda(
            doctor_id=doctor_id,
            working_hours=await self.store.get_working_hours(doctor_id),
            vacations=await self.store.list_vacations(doctor_id, start_date, end_date),
            blocks=await self.store.list_blocks(
                doctor_id, range_start - margin, range_end + margin
            ),
            appointments=await self.store.list_doctor_appointments(
                doctor_id, range_start, range_end
            ),
            clinic_id=clinic_id,
        )

    # Helpers

    async def _ensure_exists(self, kind: str, entity_id: UUID) -> None:
        if not await self.store.entity_exists(kind, entity_id):
            raise NotFoundException(f"{kind.capitalize()} not found")

    async def _lock(self, appointment_id: UUID) -> AppointmentResponse:
        locked = await self.store.get_appointment(appointment_id, for_update=True)
        if locked is None:
            raise NotFoundException("Appointment not found")
        return locked

    async def _ensure_bookable(self, doctor_id: UUID, start: datetime, end: datetime) -> None:
        """
        Check that the doctor works during ``[start, end)``.

        Raises:
            OutOfHoursException: If the interval is outside working hours, on
                a vacation day, or overlaps a schedule block
        """
        tz = self.tz
        day = start.astimezone(tz).date()
        working_hours = await self.store.get_working_hours(doctor_id)
        vacations = await self.store.list_vacations(doctor_id, day, day)

        if not is_within_working_hours(start, end, working_hours, vacations, tz):
            raise OutOfHoursException(
                doctor_id=doctor_id, requested_start=start, requested_end=end
            )

        requested = TimeInterval(start, end)
        margin = timedelta(days=1)
        for block in await self.store.list_blocks(doctor_id, start - margin, end + margin):
            if block_interval(block, tz).overlaps(requested):
                raise OutOfHoursException(
                    "Requested time overlaps a blocked period of the doctor's schedule",
                    doctor_id=doctor_id,
                    requested_start=start,
                    requested_end=end,
                )

    def _after_change(
        self,
        appointment: AppointmentResponse,
        resources: Sequence[ResourceRef],
        action: str,
        event: SchedulingEvent,
        actor_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        invalidate_resources(self.cache, resources)
        if not self.audit.strict:
            self.audit.record(action, appointment.id, actor_id, details)
        if self.publisher is not None:
            self.publisher.appointment_event(event, appointment, actor_id)

    def _audit_before_commit(
        self,
        appointment: AppointmentResponse,
        action: str,
        actor_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Record a strict audit entry inside the write's transaction.

        A failing sink rolls the write back. Lenient audits run after commit.
        """
        if self.audit.strict:
            self.audit.record(action, appointment.id, actor_id, details)

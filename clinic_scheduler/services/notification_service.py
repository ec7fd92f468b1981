"""Event publication for scheduling changes via Redis pub/sub."""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

import redis
import structlog

from clinic_scheduler.schemas.appointments import AppointmentResponse

logger = structlog.get_logger(__name__)


class SchedulingEvent(str, Enum):
    """Event types published on the scheduling channel."""

    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_UPDATED = "appointment.updated"
    APPOINTMENT_CONFIRMED = "appointment.confirmed"
    APPOINTMENT_CHECKED_IN = "appointment.checked_in"
    APPOINTMENT_STARTED = "appointment.started"
    APPOINTMENT_COMPLETED = "appointment.completed"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_NO_SHOW = "appointment.no_show"
    APPOINTMENT_RESCHEDULED = "appointment.rescheduled"
    APPOINTMENT_DELETED = "appointment.deleted"
    WAITING_LIST_CHECK_AVAILABILITY = "waiting_list.check_availability"


class EventPublisher:
    """
    Fire-and-forget publisher for scheduling events.

    Delivery is best effort: a Redis outage is logged and never fails the
    scheduling operation that triggered the event.
    """

    def __init__(self, redis_client: redis.Redis | None, channel: str):
        """Initialize publisher with Redis client and channel name."""
        self.redis = redis_client
        self.channel = channel

    def publish(self, event: SchedulingEvent, payload: dict[str, Any]) -> bool:
        """
        Publish an event.

        Args:
            event: Event type
            payload: JSON-serializable event body

        Returns:
            True if the event was handed to Redis, False otherwise
        """
        if self.redis is None:
            return False

        message = json.dumps(
            {
                "event": event.value,
                "occurred_at": datetime.now(UTC).isoformat(),
                "payload": payload,
            },
            default=str,
        )

        try:
            self.redis.publish(self.channel, message)
        except redis.RedisError as e:
            logger.warning("event_publish_failed", event_type=event.value, error=str(e))
            return False

        logger.debug("event_published", event_type=event.value, channel=self.channel)
        return True

    def appointment_event(
        self,
        event: SchedulingEvent,
        appointment: AppointmentResponse,
        actor_id: UUID | None = None,
        **extra: Any,
    ) -> bool:
        """Publish an event describing a single appointment."""
        payload = {
            "appointment_id": str(appointment.id),
            "patient_id": str(appointment.patient_id),
            "doctor_id": str(appointment.doctor_id),
            "clinic_id": str(appointment.clinic_id),
            "room_id": str(appointment.room_id) if appointment.room_id else None,
            "start_time": appointment.start_time.isoformat(),
            "end_time": appointment.end_time.isoformat(),
            "status": appointment.status.value,
            "actor_id": str(actor_id) if actor_id else None,
            **extra,
        }
        return self.publish(event, payload)

    def slot_released(self, appointment: AppointmentResponse) -> bool:
        """Signal the waiting list that an interval became free."""
        return self.publish(
            SchedulingEvent.WAITING_LIST_CHECK_AVAILABILITY,
            {
                "doctor_id": str(appointment.doctor_id),
                "clinic_id": str(appointment.clinic_id),
                "start_time": appointment.start_time.isoformat(),
                "end_time": appointment.end_time.isoformat(),
            },
        )

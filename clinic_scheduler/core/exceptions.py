"""Custom application exceptions."""

from datetime import datetime
from typing import Any
from uuid import UUID


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def details(self) -> dict[str, Any] | None:
        """Structured details rendered alongside the message."""
        return None


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class SchedulingConflictException(ConflictException):
    """Candidate interval overlaps an existing booking for a resource."""

    def __init__(
        self,
        resource_kind: str,
        resource_id: UUID | None = None,
        conflicting_start: datetime | None = None,
        conflicting_end: datetime | None = None,
        conflicting_appointment_id: UUID | None = None,
    ):
        """Initialize with the resource that is already booked."""
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        self.conflicting_start = conflicting_start
        self.conflicting_end = conflicting_end
        self.conflicting_appointment_id = conflicting_appointment_id

        message = f"The {resource_kind} already has an appointment in this time range"
        if conflicting_start and conflicting_end:
            message += f" ({conflicting_start.isoformat()} - {conflicting_end.isoformat()})"
        super().__init__(message)

    @property
    def details(self) -> dict[str, Any]:
        """Resource kind and the conflicting interval."""
        return {
            "resource_kind": self.resource_kind,
            "resource_id": str(self.resource_id) if self.resource_id else None,
            "conflicting_appointment_id": (
                str(self.conflicting_appointment_id) if self.conflicting_appointment_id else None
            ),
            "conflicting_start": (
                self.conflicting_start.isoformat() if self.conflicting_start else None
            ),
            "conflicting_end": self.conflicting_end.isoformat() if self.conflicting_end else None,
        }


class OutOfHoursException(ValidationException):
    """Candidate interval falls outside the doctor's bookable time."""

    def __init__(
        self,
        message: str = "Requested time is outside the doctor's working hours",
        doctor_id: UUID | None = None,
        requested_start: datetime | None = None,
        requested_end: datetime | None = None,
    ):
        """Initialize with the rejected interval."""
        self.doctor_id = doctor_id
        self.requested_start = requested_start
        self.requested_end = requested_end
        super().__init__(message)

    @property
    def details(self) -> dict[str, Any]:
        """Doctor and the rejected interval."""
        return {
            "doctor_id": str(self.doctor_id) if self.doctor_id else None,
            "requested_start": self.requested_start.isoformat() if self.requested_start else None,
            "requested_end": self.requested_end.isoformat() if self.requested_end else None,
        }


class InvalidTransitionException(ConflictException):
    """Lifecycle transition is not legal from the current status."""

    def __init__(self, transition: str, current_status: str):
        """Initialize with the attempted transition and current status."""
        self.transition = transition
        self.current_status = current_status
        super().__init__(f"Cannot {transition} an appointment with status '{current_status}'")

    @property
    def details(self) -> dict[str, Any]:
        """Attempted transition and current status."""
        return {"transition": self.transition, "current_status": self.current_status}

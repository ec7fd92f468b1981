"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# Statuses that no longer occupy their interval
INACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    IN_PERSON = "in_person"
    TELEMEDICINE = "telemedicine"
    FOLLOW_UP = "follow_up"
    EXAM = "exam"
    PROCEDURE = "procedure"
    EMERGENCY = "emergency"


class RecurrenceType(str, Enum):
    """Recurrence cadence enumeration."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class RecurrenceRule(BaseModel):
    """Repeat rule attached to a creation request; never persisted."""

    type: RecurrenceType
    interval: int = Field(default=1, ge=1, le=52)
    end_date: date | None = None
    max_occurrences: int | None = Field(
        default=None,
        ge=1,
        le=104,
        description="Occurrences booked after the first booking",
    )
    days_of_week: list[int] | None = Field(
        default=None,
        description="Restrict occurrences to these weekdays (0=Sunday .. 6=Saturday)",
    )

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v: list[int] | None) -> list[int] | None:
        """Validate weekday numbers."""
        if v is not None and any(day < 0 or day > 6 for day in v):
            raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
        return v


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    room_id: UUID | None = None
    specialty_id: UUID | None = None
    original_appointment_id: UUID | None = None
    start_time: AwareDatetime
    end_time: AwareDatetime | None = None
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)
    recurrence: RecurrenceRule | None = None


class AppointmentUpdate(BaseModel):
    """Schema for editing an appointment without changing its status."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    room_id: UUID | None = None
    start_time: AwareDatetime | None = None
    end_time: AwareDatetime | None = None
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    appointment_type: AppointmentType | None = None
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new time, doctor or room."""

    new_start_time: AwareDatetime
    new_end_time: AwareDatetime | None = None
    new_duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    new_doctor_id: UUID | None = None
    new_room_id: UUID | None = None
    reason: str | None = Field(None, max_length=500)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentCheckIn(BaseModel):
    """Schema for patient check-in."""

    check_in_time: AwareDatetime | None = None


class AppointmentStart(BaseModel):
    """Schema for starting the consultation."""

    actual_start_time: AwareDatetime | None = None
    room_id: UUID | None = None


class AppointmentComplete(BaseModel):
    """Schema for completing the consultation."""

    actual_end_time: AwareDatetime | None = None
    notes: str | None = Field(None, max_length=1000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    room_id: UUID | None = None
    specialty_id: UUID | None = None
    original_appointment_id: UUID | None = None
    is_recurrence: bool = False
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    appointment_type: AppointmentType
    status: AppointmentStatus
    reason: str | None = None
    notes: str | None = None
    confirmed_at: datetime | None = None
    check_in_time: datetime | None = None
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    waiting_time_minutes: int | None = None
    consultation_duration_minutes: int | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        """Whether the appointment still occupies its interval."""
        return self.deleted_at is None and self.status not in INACTIVE_STATUSES


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    clinic_id: UUID | None = None
    room_id: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class OccurrenceOutcome(BaseModel):
    """Result of booking one occurrence of a series."""

    sequence: int
    start_time: datetime
    appointment_id: UUID | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the occurrence was booked."""
        return self.appointment_id is not None


class BookingResult(BaseModel):
    """Result of a create request, with per-occurrence outcomes for a series."""

    appointment: AppointmentResponse
    occurrences: list[OccurrenceOutcome] = Field(default_factory=list)
    created_count: int = 1
    failed_count: int = 0


class BatchCancelRequest(BaseModel):
    """Schema for cancelling several appointments at once."""

    appointment_ids: list[UUID] = Field(..., min_length=1, max_length=100)
    reason: str | None = Field(None, max_length=500)


class BatchConfirmRequest(BaseModel):
    """Schema for confirming several appointments at once."""

    appointment_ids: list[UUID] = Field(..., min_length=1, max_length=100)


class BatchItemError(BaseModel):
    """Failure of a single item in a batch operation."""

    id: UUID
    error: str
    error_type: str


class BatchOperationResult(BaseModel):
    """Per-item outcome of a batch operation."""

    success: bool
    total: int
    processed: int
    failed: int
    success_ids: list[UUID] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_counts(self) -> "BatchOperationResult":
        """Processed and failed items add up to the total."""
        if self.processed + self.failed != self.total:
            raise ValueError("processed + failed must equal total")
        return self

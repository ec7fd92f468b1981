"""Availability schemas: working hours, blocks, vacations and slots."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus


class WorkingHoursEntry(BaseModel):
    """Weekly working hours of a doctor for one weekday."""

    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    is_available: bool = True
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_times(self) -> "WorkingHoursEntry":
        """Validate that the day and the optional break are well formed."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")

        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("Break start and break end must be set together")

        if self.break_start is not None and self.break_end is not None:
            if self.break_end <= self.break_start:
                raise ValueError("Break end must be after break start")
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise ValueError("Break must lie within working hours")

        return self


class WorkingHoursUpdate(BaseModel):
    """Schema for replacing a doctor's weekly working hours."""

    entries: list[WorkingHoursEntry] = Field(..., max_length=7)

    @field_validator("entries")
    @classmethod
    def validate_unique_days(cls, v: list[WorkingHoursEntry]) -> list[WorkingHoursEntry]:
        """At most one row per weekday."""
        days = [entry.day_of_week for entry in v]
        if len(days) != len(set(days)):
            raise ValueError("Each day of week may appear only once")
        return v


class WorkingHoursResponse(WorkingHoursEntry):
    """Schema for working hours response."""

    doctor_id: UUID


class ScheduleBlockCreate(BaseModel):
    """Schema for closing part of a doctor's agenda."""

    start_time: AwareDatetime
    end_time: AwareDatetime
    all_day: bool = False
    reason: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_interval(self) -> "ScheduleBlockCreate":
        """Validate end time is after start time."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ScheduleBlockResponse(BaseModel):
    """Schema for schedule block response."""

    id: UUID
    doctor_id: UUID
    start_time: datetime
    end_time: datetime
    all_day: bool = False
    reason: str | None = None

    model_config = {"from_attributes": True}


class VacationCreate(BaseModel):
    """Schema for registering a doctor's vacation."""

    start_date: date
    end_date: date
    reason: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_range(self) -> "VacationCreate":
        """Validate the inclusive range is not reversed."""
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class VacationResponse(BaseModel):
    """Schema for vacation response."""

    id: UUID
    doctor_id: UUID
    start_date: date
    end_date: date
    reason: str | None = None

    model_config = {"from_attributes": True}


class SlotQuery(BaseModel):
    """Schema for available slot search."""

    doctor_id: UUID | None = None
    clinic_id: UUID | None = None
    specialty_id: UUID | None = None
    start_date: date
    end_date: date | None = None
    duration_minutes: int = Field(default=30, gt=0, le=8 * 60)
    days_of_week: list[int] | None = None
    earliest_time: time | None = None
    latest_time: time | None = None
    limit: int = Field(default=20, ge=1, le=200)

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v: list[int] | None) -> list[int] | None:
        """Validate weekday numbers."""
        if v is not None and any(day < 0 or day > 6 for day in v):
            raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @model_validator(mode="after")
    def validate_ranges(self) -> "SlotQuery":
        """Validate date range and wall-clock bounds."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        if self.earliest_time and self.latest_time and self.latest_time <= self.earliest_time:
            raise ValueError("Latest time must be after earliest time")
        return self


class Slot(BaseModel):
    """A bookable interval for a specific doctor."""

    start_time: datetime
    end_time: datetime
    duration_minutes: int
    doctor_id: UUID
    clinic_id: UUID | None = None


class SlotListResponse(BaseModel):
    """Schema for available slot search response."""

    slots: list[Slot]
    total: int
    start_date: date
    end_date: date


class DailyScheduleResponse(BaseModel):
    """A doctor's agenda for one day."""

    doctor_id: UUID
    date: date
    appointments: list[AppointmentResponse]
    total_scheduled: int
    total_completed: int
    total_cancelled: int
    total_no_show: int
    total_pending: int
    next_available_slot: datetime | None = None


class CalendarView(str, Enum):
    """Calendar period granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class CalendarEventType(str, Enum):
    """Kind of entry shown on the calendar."""

    APPOINTMENT = "appointment"
    BLOCK = "block"
    VACATION = "vacation"


class CalendarQuery(BaseModel):
    """Schema for calendar queries."""

    clinic_id: UUID | None = None
    doctor_ids: list[UUID] = Field(default_factory=list)
    room_ids: list[UUID] = Field(default_factory=list)
    view: CalendarView = CalendarView.WEEK
    reference_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    include_blocks: bool = True
    include_vacations: bool = True

    @model_validator(mode="after")
    def validate_period(self) -> "CalendarQuery":
        """An explicit period needs both ends, in order."""
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("Start date and end date must be given together")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class CalendarEvent(BaseModel):
    """One appointment, block or vacation on the calendar."""

    id: str
    event_type: CalendarEventType
    start: datetime
    end: datetime
    all_day: bool = False
    title: str | None = None
    doctor_id: UUID
    status: AppointmentStatus | None = None
    appointment_id: UUID | None = None
    patient_id: UUID | None = None
    clinic_id: UUID | None = None
    room_id: UUID | None = None


class CalendarResponse(BaseModel):
    """Schema for calendar response."""

    events: list[CalendarEvent]
    start_date: date
    end_date: date
    view: CalendarView

"""Waiting list schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class WaitingListStatus(str, Enum):
    """Waiting list entry status enumeration."""

    WAITING = "waiting"
    CONTACTED = "contacted"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PreferredPeriod(str, Enum):
    """Preferred part of the day."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANY = "any"


class WaitingListCreate(BaseModel):
    """Schema for adding a patient to a doctor's waiting list."""

    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    preferred_date: date | None = None
    preferred_period: PreferredPeriod | None = None
    priority: int = Field(default=1, ge=1, le=5)
    urgency_reason: str | None = Field(None, max_length=500)


class WaitingListEntryResponse(BaseModel):
    """Schema for waiting list entry response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    clinic_id: UUID
    preferred_date: date | None = None
    preferred_period: PreferredPeriod | None = None
    priority: int
    urgency_reason: str | None = None
    status: WaitingListStatus
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WaitingListFilters(BaseModel):
    """Schema for waiting list filtering."""

    doctor_id: UUID | None = None
    clinic_id: UUID | None = None
    patient_id: UUID | None = None
    status: WaitingListStatus | None = None
    min_priority: int | None = Field(None, ge=1, le=5)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class WaitingListResponse(BaseModel):
    """Schema for paginated waiting list response."""

    total: int
    page: int
    page_size: int
    items: list[WaitingListEntryResponse]

"""Waiting list table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    SmallInteger,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from clinic_scheduler.models.appointments import metadata

waiting_list_entries = Table(
    "waiting_list_entries",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    Column("doctor_id", UUID(as_uuid=True), nullable=False),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("preferred_date", Date, nullable=True),
    # morning, afternoon, evening, any
    Column("preferred_period", String(20), nullable=True),
    Column("priority", SmallInteger, nullable=False, server_default=text("1")),
    Column("urgency_reason", Text, nullable=True),
    Column("status", String(20), nullable=False, server_default=text("'waiting'")),
    Column("created_by", UUID(as_uuid=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint(
        "status IN ('waiting', 'contacted', 'scheduled', 'cancelled', 'expired')",
        name="waiting_list_entries_status_check",
    ),
    CheckConstraint("priority BETWEEN 1 AND 5", name="waiting_list_entries_priority_check"),
)

Index(
    "idx_waiting_list_doctor_status",
    waiting_list_entries.c.doctor_id,
    waiting_list_entries.c.status,
)
Index(
    "uq_waiting_list_active_patient_doctor",
    waiting_list_entries.c.patient_id,
    waiting_list_entries.c.doctor_id,
    unique=True,
    postgresql_where=text("status = 'waiting'"),
)

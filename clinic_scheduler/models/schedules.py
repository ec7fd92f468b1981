"""Doctor availability tables: weekly hours, ad-hoc blocks and vacations."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    SmallInteger,
    Table,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from clinic_scheduler.models.appointments import metadata

doctor_working_hours = Table(
    "doctor_working_hours",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("doctor_id", UUID(as_uuid=True), nullable=False, index=True),
    # 0 = Sunday ... 6 = Saturday
    Column("day_of_week", SmallInteger, nullable=False),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("break_start", Time, nullable=True),
    Column("break_end", Time, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_working_hours_day"),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="doctor_working_hours_day_check"),
    CheckConstraint("end_time > start_time", name="doctor_working_hours_interval_check"),
)

schedule_blocks = Table(
    "schedule_blocks",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("doctor_id", UUID(as_uuid=True), nullable=False),
    Column("start_time", DateTime(timezone=True), nullable=False),
    Column("end_time", DateTime(timezone=True), nullable=False),
    Column("all_day", Boolean, nullable=False, server_default=text("false")),
    Column("reason", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint("end_time > start_time", name="schedule_blocks_interval_check"),
)

doctor_vacations = Table(
    "doctor_vacations",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("doctor_id", UUID(as_uuid=True), nullable=False),
    # Inclusive date range
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("reason", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint("end_date >= start_date", name="doctor_vacations_range_check"),
)

Index(
    "idx_schedule_blocks_doctor_range",
    schedule_blocks.c.doctor_id,
    schedule_blocks.c.start_time,
    schedule_blocks.c.end_time,
)
Index(
    "idx_doctor_vacations_doctor_range",
    doctor_vacations.c.doctor_id,
    doctor_vacations.c.start_date,
    doctor_vacations.c.end_date,
)

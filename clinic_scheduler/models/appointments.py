"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

# Metadata for all tables
metadata = MetaData()

ACTIVE_STATUSES_SQL = "status NOT IN ('cancelled', 'no_show', 'rescheduled')"

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Participants
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    Column("doctor_id", UUID(as_uuid=True), nullable=False),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("room_id", UUID(as_uuid=True), nullable=True),
    Column("specialty_id", UUID(as_uuid=True), nullable=True),
    # Lineage (reschedule target or follow-up)
    Column("original_appointment_id", UUID(as_uuid=True), nullable=True),
    Column("is_recurrence", Boolean, nullable=False, server_default=text("false")),
    # Time, half-open [start_time, end_time)
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    # Details
    Column("appointment_type", VARCHAR(30), nullable=False, server_default="in_person"),
    Column("reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    # Status management
    Column(
        "status",
        VARCHAR(20),
        nullable=False,
        server_default="scheduled",
    ),
    # Lifecycle stamps, written once by their transition
    Column("confirmed_at", TIMESTAMP(timezone=True), nullable=True),
    Column("check_in_time", TIMESTAMP(timezone=True), nullable=True),
    Column("actual_start_time", TIMESTAMP(timezone=True), nullable=True),
    Column("actual_end_time", TIMESTAMP(timezone=True), nullable=True),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("waiting_time_minutes", Integer, nullable=True),
    Column("consultation_duration_minutes", Integer, nullable=True),
    # Audit fields
    Column("created_by", UUID(as_uuid=True), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Soft delete (healthcare compliance)
    Column("deleted_at", TIMESTAMP(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'waiting', 'in_progress', 'completed', "
        "'cancelled', 'no_show', 'rescheduled')",
        name="appointments_status_check",
    ),
    CheckConstraint("end_time > start_time", name="appointments_interval_check"),
)

# Conflict lookups filter by resource and interval on live rows only
Index(
    "idx_appointments_doctor_active",
    appointments.c.doctor_id,
    appointments.c.start_time,
    appointments.c.end_time,
    postgresql_where=text(f"deleted_at IS NULL AND {ACTIVE_STATUSES_SQL}"),
)
Index(
    "idx_appointments_patient_active",
    appointments.c.patient_id,
    appointments.c.start_time,
    appointments.c.end_time,
    postgresql_where=text(f"deleted_at IS NULL AND {ACTIVE_STATUSES_SQL}"),
)
Index(
    "idx_appointments_room_active",
    appointments.c.room_id,
    appointments.c.start_time,
    appointments.c.end_time,
    postgresql_where=text(f"room_id IS NOT NULL AND deleted_at IS NULL AND {ACTIVE_STATUSES_SQL}"),
)
Index("idx_appointments_clinic_start", appointments.c.clinic_id, appointments.c.start_time)
Index("idx_appointments_original", appointments.c.original_appointment_id)


def no_overlap_constraints() -> list[str]:
    """DDL for the exclusion constraints that forbid double booking.

    ``metadata.create_all`` cannot express them, so bootstrap scripts run
    these after creating the tables. Requires the ``btree_gist`` extension.
    """
    statements = []
    for resource, extra in (("doctor", ""), ("patient", ""), ("room", "room_id IS NOT NULL AND ")):
        statements.append(
            f"ALTER TABLE appointments ADD CONSTRAINT appointments_{resource}_no_overlap "
            f"EXCLUDE USING gist ({resource}_id WITH =, "
            f"tstzrange(start_time, end_time, '[)') WITH &&) "
            f"WHERE ({extra}deleted_at IS NULL AND {ACTIVE_STATUSES_SQL})"
        )
    return statements

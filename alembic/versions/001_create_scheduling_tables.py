"""Create scheduling tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_APPOINTMENT = "deleted_at IS NULL AND status NOT IN ('cancelled', 'no_show', 'rescheduled')"


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def upgrade() -> None:
    """Create directory, availability, appointment and waiting list tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')
    # Needed to mix uuid equality with range overlap in exclusion constraints
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # Directory tables owned by the surrounding clinic system
    op.create_table(
        "patients",
        _uuid_pk(),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "doctors",
        _uuid_pk(),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("specialty_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_doctors_specialty_id", "doctors", ["specialty_id"])
    op.create_index("ix_doctors_is_active", "doctors", ["is_active"])

    op.create_table(
        "clinics",
        _uuid_pk(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "rooms",
        _uuid_pk(),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["clinic_id"], ["clinics.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "doctor_clinics",
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.PrimaryKeyConstraint("doctor_id", "clinic_id"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["clinic_id"], ["clinics.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_doctor_clinics_clinic_id", "doctor_clinics", ["clinic_id"])

    # Doctor availability
    op.create_table(
        "doctor_working_hours",
        _uuid_pk(),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("break_start", sa.Time(), nullable=True),
        sa.Column("break_end", sa.Time(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_working_hours_day"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="doctor_working_hours_day_check"),
        sa.CheckConstraint("end_time > start_time", name="doctor_working_hours_interval_check"),
    )
    op.create_index(
        "ix_doctor_working_hours_doctor_id", "doctor_working_hours", ["doctor_id"]
    )

    op.create_table(
        "schedule_blocks",
        _uuid_pk(),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("all_day", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_time > start_time", name="schedule_blocks_interval_check"),
    )
    op.create_index(
        "idx_schedule_blocks_doctor_range",
        "schedule_blocks",
        ["doctor_id", "start_time", "end_time"],
    )

    op.create_table(
        "doctor_vacations",
        _uuid_pk(),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_date >= start_date", name="doctor_vacations_range_check"),
    )
    op.create_index(
        "idx_doctor_vacations_doctor_range",
        "doctor_vacations",
        ["doctor_id", "start_date", "end_date"],
    )

    # Appointments
    op.create_table(
        "appointments",
        _uuid_pk(),
        sa.Column("patient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("specialty_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("original_appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_recurrence", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column(
            "appointment_type",
            sa.String(length=30),
            server_default=sa.text("'in_person'"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'scheduled'"),
            nullable=False,
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("waiting_time_minutes", sa.Integer(), nullable=True),
        sa.Column("consultation_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'waiting', 'in_progress', 'completed', "
            "'cancelled', 'no_show', 'rescheduled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("end_time > start_time", name="appointments_interval_check"),
    )

    op.create_index(
        "idx_appointments_doctor_active",
        "appointments",
        ["doctor_id", "start_time", "end_time"],
        postgresql_where=sa.text(ACTIVE_APPOINTMENT),
    )
    op.create_index(
        "idx_appointments_patient_active",
        "appointments",
        ["patient_id", "start_time", "end_time"],
        postgresql_where=sa.text(ACTIVE_APPOINTMENT),
    )
    op.create_index(
        "idx_appointments_room_active",
        "appointments",
        ["room_id", "start_time", "end_time"],
        postgresql_where=sa.text(f"room_id IS NOT NULL AND {ACTIVE_APPOINTMENT}"),
    )
    op.create_index("idx_appointments_clinic_start", "appointments", ["clinic_id", "start_time"])
    op.create_index("idx_appointments_original", "appointments", ["original_appointment_id"])

    # Last line of defence against double booking: no two active appointments
    # of the same doctor, patient or room may share any instant.
    for resource, extra in (("doctor", ""), ("patient", ""), ("room", "room_id IS NOT NULL AND ")):
        op.execute(
            f"""
            ALTER TABLE appointments
            ADD CONSTRAINT appointments_{resource}_no_overlap
            EXCLUDE USING gist (
                {resource}_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            )
            WHERE ({extra}{ACTIVE_APPOINTMENT})
            """
        )

    # Waiting list
    op.create_table(
        "waiting_list_entries",
        _uuid_pk(),
        sa.Column("patient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("preferred_date", sa.Date(), nullable=True),
        sa.Column("preferred_period", sa.String(length=20), nullable=True),
        sa.Column("priority", sa.SmallInteger(), server_default=sa.text("1"), nullable=False),
        sa.Column("urgency_reason", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'waiting'"),
            nullable=False,
        ),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('waiting', 'contacted', 'scheduled', 'cancelled', 'expired')",
            name="waiting_list_entries_status_check",
        ),
        sa.CheckConstraint("priority BETWEEN 1 AND 5", name="waiting_list_entries_priority_check"),
    )
    op.create_index(
        "idx_waiting_list_doctor_status", "waiting_list_entries", ["doctor_id", "status"]
    )
    op.create_index(
        "uq_waiting_list_active_patient_doctor",
        "waiting_list_entries",
        ["patient_id", "doctor_id"],
        unique=True,
        postgresql_where=sa.text("status = 'waiting'"),
    )


def downgrade() -> None:
    """Drop scheduling tables."""
    op.drop_table("waiting_list_entries")
    op.drop_table("appointments")
    op.drop_table("doctor_vacations")
    op.drop_table("schedule_blocks")
    op.drop_table("doctor_working_hours")
    op.drop_table("doctor_clinics")
    op.drop_table("rooms")
    op.drop_table("clinics")
    op.drop_table("doctors")
    op.drop_table("patients")

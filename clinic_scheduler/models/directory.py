"""Reference tables owned by the surrounding clinic system.

Only the columns the scheduling core reads are declared here: existence
checks for the participants of a booking and candidate-doctor lookups for
slot searches.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from clinic_scheduler.models.appointments import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("full_name", String(200), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

doctors = Table(
    "doctors",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("full_name", String(200), nullable=False),
    Column("specialty_id", UUID(as_uuid=True), index=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true"), index=True),
    Column("deleted_at", DateTime(timezone=True)),
)

clinics = Table(
    "clinics",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("name", String(200), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

rooms = Table(
    "rooms",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column(
        "clinic_id",
        UUID(as_uuid=True),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", String(100), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

doctor_clinics = Table(
    "doctor_clinics",
    metadata,
    Column(
        "doctor_id",
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "clinic_id",
        UUID(as_uuid=True),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)

Index("idx_doctor_clinics_clinic_id", doctor_clinics.c.clinic_id)

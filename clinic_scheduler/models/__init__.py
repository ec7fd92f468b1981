"""Database models."""

from clinic_scheduler.models.appointments import appointments, metadata
from clinic_scheduler.models.directory import clinics, doctor_clinics, doctors, patients, rooms
from clinic_scheduler.models.schedules import (
    doctor_vacations,
    doctor_working_hours,
    schedule_blocks,
)
from clinic_scheduler.models.waiting_list import waiting_list_entries

__all__ = [
    "appointments",
    "clinics",
    "doctor_clinics",
    "doctor_vacations",
    "doctor_working_hours",
    "doctors",
    "metadata",
    "patients",
    "rooms",
    "schedule_blocks",
    "waiting_list_entries",
]

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import time, timedelta
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from clinic_scheduler.config import Settings
from clinic_scheduler.core.security import create_access_token
from clinic_scheduler.dependencies import (
    get_availability_service,
    get_scheduling_service,
    get_waiting_list_service,
)
from clinic_scheduler.main import app
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.availability_service import AvailabilityService
from clinic_scheduler.services.notification_service import EventPublisher
from clinic_scheduler.services.scheduling_service import SchedulingService
from clinic_scheduler.services.waiting_list_service import WaitingListService
from tests.memory_store import NOW, InMemorySchedulingStore


@dataclass
class Practice:
    """Ids of a small seeded clinic: one doctor working weekdays 09-17."""

    clinic_id: UUID
    doctor_id: UUID
    patient_id: UUID
    other_patient_id: UUID
    room_id: UUID
    specialty_id: UUID


@pytest.fixture
def test_settings() -> Settings:
    """Settings pinned to UTC so wall-clock hours equal instants."""
    return Settings(
        _env_file=None,
        CLINIC_TIMEZONE="UTC",
        DEFAULT_APPOINTMENT_DURATION_MINUTES=30,
        STRICT_AUDIT=False,
    )


@pytest.fixture
def store() -> InMemorySchedulingStore:
    """Create an empty in-memory store whose clock is fixed."""
    return InMemorySchedulingStore(clock=lambda: NOW)


@pytest.fixture
def practice(store: InMemorySchedulingStore) -> Practice:
    """Seed a clinic with one doctor, two patients and a room."""
    clinic_id = store.add_clinic()
    specialty_id = uuid4()
    doctor_id = store.add_doctor(clinic_id=clinic_id, specialty_id=specialty_id)
    store.set_hours(doctor_id, days=range(1, 6), start=time(9), end=time(17))
    return Practice(
        clinic_id=clinic_id,
        doctor_id=doctor_id,
        patient_id=store.add_patient(),
        other_patient_id=store.add_patient(),
        room_id=store.add_room(clinic_id),
        specialty_id=specialty_id,
    )


@pytest.fixture
def publisher() -> MagicMock:
    """Event publisher double."""
    return MagicMock(spec=EventPublisher)


@pytest.fixture
def cache() -> MagicMock:
    """Cache manager double that always misses."""
    cache = MagicMock()
    cache.get_json.return_value = None
    return cache


@pytest.fixture
def service(
    store: InMemorySchedulingStore,
    test_settings: Settings,
    cache: MagicMock,
    publisher: MagicMock,
) -> SchedulingService:
    """Create the scheduling service over the in-memory store."""
    return SchedulingService(
        store,
        settings=test_settings,
        cache=cache,
        publisher=publisher,
        audit=AuditService(strict=True),
        clock=lambda: NOW,
    )


@pytest.fixture
def availability_service(
    store: InMemorySchedulingStore, cache: MagicMock
) -> AvailabilityService:
    return AvailabilityService(store, cache=cache)


@pytest.fixture
def waiting_list_service(store: InMemorySchedulingStore) -> WaitingListService:
    return WaitingListService(store, clock=lambda: NOW)


@pytest_asyncio.fixture
async def client(
    service: SchedulingService,
    availability_service: AvailabilityService,
    waiting_list_service: WaitingListService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the in-memory services."""
    app.dependency_overrides[get_scheduling_service] = lambda: service
    app.dependency_overrides[get_availability_service] = lambda: availability_service
    app.dependency_overrides[get_waiting_list_service] = lambda: waiting_list_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """Create authentication headers for testing protected endpoints."""
    token = create_access_token(uuid4(), expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}

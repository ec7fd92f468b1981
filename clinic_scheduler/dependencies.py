"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

import redis
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.redis_client import CacheManager, get_redis_client
from clinic_scheduler.core.security import read_actor_id
from clinic_scheduler.database import get_db
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.availability_service import AvailabilityService
from clinic_scheduler.services.notification_service import EventPublisher
from clinic_scheduler.services.scheduling_service import SchedulingService
from clinic_scheduler.services.scheduling_store import SqlSchedulingStore
from clinic_scheduler.services.waiting_list_service import WaitingListService

# Security
security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Resolve the acting user from the bearer token.

    Raises:
        HTTPException: If the token is invalid, expired or has no usable subject
    """
    actor_id = read_actor_id(credentials.credentials)

    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return actor_id


def get_redis() -> redis.Redis | None:
    """Dependency for the shared Redis client; None when Redis is disabled."""
    return get_redis_client()


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
RedisClient = Annotated[redis.Redis | None, Depends(get_redis)]


def get_scheduling_service(db: DatabaseSession, redis_client: RedisClient) -> SchedulingService:
    """Build the scheduling service for one request."""
    return SchedulingService(
        SqlSchedulingStore(db),
        settings=settings,
        cache=CacheManager(redis_client) if redis_client is not None else None,
        publisher=EventPublisher(redis_client, settings.events_channel),
        audit=AuditService(strict=settings.strict_audit),
    )


def get_availability_service(
    db: DatabaseSession, redis_client: RedisClient
) -> AvailabilityService:
    """Build the availability service for one request."""
    return AvailabilityService(
        SqlSchedulingStore(db),
        cache=CacheManager(redis_client) if redis_client is not None else None,
    )


def get_waiting_list_service(db: DatabaseSession) -> WaitingListService:
    """Build the waiting list service for one request."""
    return WaitingListService(SqlSchedulingStore(db))


Scheduling = Annotated[SchedulingService, Depends(get_scheduling_service)]
Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
WaitingList = Annotated[WaitingListService, Depends(get_waiting_list_service)]

"""Tests for the Redis cache, event publication and audit sinks."""

import json
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
import redis

from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.scheduling.conflicts import ResourceRef
from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.notification_service import EventPublisher, SchedulingEvent
from clinic_scheduler.services.scheduling_service import invalidate_resources
from tests.memory_store import MONDAY, NOW, at


def make_appointment(**overrides) -> AppointmentResponse:
    values = {
        "id": uuid4(),
        "patient_id": uuid4(),
        "doctor_id": uuid4(),
        "clinic_id": uuid4(),
        "start_time": at(MONDAY, 10),
        "end_time": at(MONDAY, 10, 30),
        "duration_minutes": 30,
        "appointment_type": "in_person",
        "status": AppointmentStatus.CANCELLED,
        "created_at": NOW,
        "updated_at": NOW,
        **overrides,
    }
    return AppointmentResponse(**values)


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    assert cache_manager.get_json("test_key") is None
    mock_redis.get.assert_called_once_with("test_key")

    # Test cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"slots": [], "total": 0}'
    assert cache_manager.get_json("test_key") == {"slots": [], "total": 0}


def test_cache_manager_get_json_degrades_to_miss():
    """Test a Redis outage or a corrupt entry reads as a miss."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.get.side_effect = redis.ConnectionError("down")
    assert cache_manager.get_json("test_key") is None

    mock_redis.get.side_effect = None
    mock_redis.get.return_value = "{not json"
    assert cache_manager.get_json("test_key") is None


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test without TTL
    assert cache_manager.set_json("test_key", {"total": 1}) is True
    mock_redis.set.assert_called_once_with("test_key", '{"total": 1}')

    # Test with TTL
    mock_redis.reset_mock()
    assert cache_manager.set_json("test_key", {"total": 1}, ttl=300) is True
    mock_redis.setex.assert_called_once_with("test_key", 300, '{"total": 1}')


def test_cache_manager_set_json_failure():
    mock_redis = MagicMock()
    mock_redis.set.side_effect = redis.TimeoutError()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("test_key", {"total": 1}) is False


def test_cache_manager_delete():
    """Test CacheManager delete method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.delete("test_key") is True
    mock_redis.delete.assert_called_once_with("test_key")

    mock_redis.delete.side_effect = redis.ConnectionError()
    assert cache_manager.delete("test_key") is False


def test_cache_manager_delete_pattern():
    """Test CacheManager delete_pattern method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.keys.return_value = [
        "scheduling:doctor:1:slots:aaaa",
        "scheduling:doctor:1:slots:bbbb",
    ]
    mock_redis.delete.return_value = 2

    result = cache_manager.delete_pattern("scheduling:doctor:1:*")

    mock_redis.keys.assert_called_once_with("scheduling:doctor:1:*")
    mock_redis.delete.assert_called_once_with(
        "scheduling:doctor:1:slots:aaaa", "scheduling:doctor:1:slots:bbbb"
    )
    assert result == 2


def test_cache_manager_delete_pattern_no_keys():
    mock_redis = MagicMock()
    mock_redis.keys.return_value = []
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.delete_pattern("scheduling:room:*") == 0
    mock_redis.delete.assert_not_called()


def test_invalidate_resources_drops_each_namespace_once():
    """Test every touched resource loses its cached entries."""
    cache = MagicMock(spec=CacheManager)
    doctor_id, patient_id = uuid4(), uuid4()

    invalidate_resources(
        cache,
        [
            ResourceRef.doctor(doctor_id),
            ResourceRef.patient(patient_id),
            ResourceRef.doctor(doctor_id),
        ],
    )

    patterns = sorted(call.args[0] for call in cache.delete_pattern.call_args_list)
    assert patterns == sorted(
        [f"scheduling:doctor:{doctor_id}:*", f"scheduling:patient:{patient_id}:*"]
    )


def test_invalidate_resources_without_cache():
    invalidate_resources(None, [ResourceRef.doctor(uuid4())])


def test_event_publisher_publishes_json():
    """Test the published message carries the event type and payload."""
    mock_redis = MagicMock()
    publisher = EventPublisher(mock_redis, "scheduling-events")
    appointment = make_appointment()

    assert publisher.slot_released(appointment) is True

    channel, message = mock_redis.publish.call_args.args
    body = json.loads(message)
    assert channel == "scheduling-events"
    assert body["event"] == "waiting_list.check_availability"
    assert body["payload"]["doctor_id"] == str(appointment.doctor_id)
    assert "occurred_at" in body


def test_event_publisher_appointment_event():
    mock_redis = MagicMock()
    publisher = EventPublisher(mock_redis, "scheduling-events")
    appointment = make_appointment()
    actor_id = uuid4()

    publisher.appointment_event(
        SchedulingEvent.APPOINTMENT_CANCELLED, appointment, actor_id, reason="ill"
    )

    body = json.loads(mock_redis.publish.call_args.args[1])
    assert body["event"] == "appointment.cancelled"
    assert body["payload"]["status"] == "cancelled"
    assert body["payload"]["actor_id"] == str(actor_id)
    assert body["payload"]["reason"] == "ill"


def test_event_publisher_swallows_redis_failure():
    """Test a publish failure is reported but never raised."""
    mock_redis = MagicMock()
    mock_redis.publish.side_effect = redis.ConnectionError("down")
    publisher = EventPublisher(mock_redis, "scheduling-events")

    assert publisher.slot_released(make_appointment()) is False


def test_event_publisher_without_redis():
    publisher = EventPublisher(None, "scheduling-events")

    assert publisher.publish(SchedulingEvent.APPOINTMENT_CREATED, {}) is False


def test_audit_record_writes_entry():
    appointment_id, actor_id = uuid4(), uuid4()

    with patch("clinic_scheduler.services.audit_service.audit_logger") as audit_logger:
        AuditService().record("appointment.cancel", appointment_id, actor_id, {"reason": "ill"})

    kwargs = audit_logger.info.call_args.kwargs
    assert audit_logger.info.call_args.args == ("audit_entry",)
    assert kwargs["action"] == "appointment.cancel"
    assert kwargs["entity_id"] == str(appointment_id)
    assert kwargs["actor_id"] == str(actor_id)
    assert kwargs["details"] == {"reason": "ill"}


def test_audit_failure_is_logged_when_not_strict():
    with patch("clinic_scheduler.services.audit_service.audit_logger") as audit_logger:
        audit_logger.info.side_effect = OSError("disk full")
        AuditService(strict=False).record("appointment.confirm", uuid4(), None)


def test_audit_failure_propagates_when_strict():
    """Test strict mode surfaces sink failures."""
    with patch("clinic_scheduler.services.audit_service.audit_logger") as audit_logger:
        audit_logger.info.side_effect = OSError("disk full")

        with pytest.raises(OSError):
            AuditService(strict=True).record("appointment.confirm", uuid4(), None)

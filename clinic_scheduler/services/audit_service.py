"""Audit trail for scheduling changes."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog

logger = structlog.get_logger(__name__)
audit_logger = structlog.get_logger("audit")


class AuditService:
    """Writes one immutable entry per scheduling change to the audit log."""

    def __init__(self, strict: bool = False):
        """
        Initialize audit service.

        Args:
            strict: Propagate sink failures instead of logging them
        """
        self.strict = strict

    def record(
        self,
        action: str,
        appointment_id: UUID | None,
        actor_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Record an audit entry.

        Args:
            action: What happened (e.g. ``appointment.cancel``)
            appointment_id: Affected appointment
            actor_id: Who did it, when known
            details: Extra context such as previous status or reason
        """
        try:
            audit_logger.info(
                "audit_entry",
                action=action,
                entity_type="appointment",
                entity_id=str(appointment_id) if appointment_id else None,
                actor_id=str(actor_id) if actor_id else None,
                recorded_at=datetime.now(UTC).isoformat(),
                details=details or {},
            )
        except Exception as e:
            if self.strict:
                raise
            logger.warning("audit_record_failed", action=action, error=str(e))

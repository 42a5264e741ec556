# ================================
# AUDIT LOGGING UTILITY (utils/audit.py)
# ================================

from typing import Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal
import uuid
import logging

from app.core.events import AuditRecorded, EventBus, event_bus

logger = logging.getLogger(__name__)

class AuditLogger:
    """
    Emits audit facts as (actor, action, entity, entity_id).

    Storing the records is up to whoever subscribes to AuditRecorded on the
    event bus. Every fact is also written to the application log.
    """

    MAX_STRING_LENGTH = 1000

    def __init__(self, bus: Optional[EventBus] = None):
        """
        Initialize the audit logger.

        Args:
            bus: Event bus to publish on, the global bus if omitted
        """
        self._bus = bus

    @property
    def bus(self) -> EventBus:
        return self._bus or event_bus

    def log_business_event(
        self,
        action: str,
        user_id: Optional[uuid.UUID],
        resource_type: str,
        resource_id: Any,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditRecorded]:
        """
        Log business logic events (status changes, blocks, sync runs).

        Args:
            action: Business action (e.g., 'BOOKING_CREATED', 'DATES_BLOCKED')
            user_id: User performing the action, None for system jobs
            resource_type: Type of business resource ('booking', 'unit', ...)
            resource_id: ID of the affected resource
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)

        Returns:
            The published AuditRecorded event, None if emitting failed
        """
        try:
            record = AuditRecorded(
                actor_id=user_id,
                action=action,
                entity=resource_type,
                entity_id=str(resource_id) if resource_id is not None else None,
                old_values=self._serialize(old_values or {}),
                new_values=self._serialize(new_values or {})
            )

            logger.info(
                f"Audit: {action} {resource_type}={record.entity_id} by {user_id or 'system'}",
                extra={"audit_action": action, "audit_entity": resource_type}
            )
            self.bus.publish(record)
            return record

        except Exception as e:
            # Audit failures must never break the business operation
            logger.error(f"Failed to emit audit event {action}: {e}")
            return None

    def _serialize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Make values JSON friendly and truncate very long strings"""
        serialized = {}
        for key, value in data.items():
            if isinstance(value, dict):
                serialized[key] = self._serialize(value)
            elif isinstance(value, (list, tuple, set)):
                serialized[key] = [self._serialize_value(item) for item in value]
            else:
                serialized[key] = self._serialize_value(value)
        return serialized

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        if isinstance(value, uuid.UUID):
            return str(value)
        if hasattr(value, "value") and not isinstance(value, (str, int, float, bool)):
            return value.value
        if isinstance(value, str) and len(value) > self.MAX_STRING_LENGTH:
            return value[:self.MAX_STRING_LENGTH] + "...[TRUNCATED]"
        return value

audit_logger = AuditLogger()

# ================================
# DOMAIN EVENTS (core/events.py)
# ================================

"""
In-process publication of booking facts.

Services publish events only after their transaction committed. Notification
delivery (email, push) and audit storage subscribe here; a failing subscriber
is logged and never breaks the publishing request.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Type
import logging
import uuid

logger = logging.getLogger(__name__)

@dataclass
class DomainEvent:
    """Base class for all published facts"""
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), kw_only=True)

    @property
    def name(self) -> str:
        return getattr(self, "event_name", type(self).__name__)

@dataclass
class BookingCreated(DomainEvent):
    """
    A booking was persisted in status pending.

    Triggers:
    - Send request confirmation to guest
    - Notify unit owner
    """
    event_name = "booking.created"

    booking_id: uuid.UUID
    booking_number: str
    unit_id: uuid.UUID
    guest_id: uuid.UUID
    check_in: date
    check_out: date
    total_price: Decimal
    currency: str

@dataclass
class BookingStatusChanged(DomainEvent):
    """
    A booking moved along its lifecycle.

    Triggers:
    - Notify guest about confirmation, payment or cancellation
    - Issue refunds through the payment collaborator
    """
    event_name = "booking.status_changed"

    booking_id: uuid.UUID
    booking_number: str
    unit_id: uuid.UUID
    guest_id: uuid.UUID
    from_status: str
    to_status: str
    changed_by: Optional[uuid.UUID]
    comment: Optional[str] = None
    refund_amount: Optional[Decimal] = None

@dataclass
class AuditRecorded(DomainEvent):
    """(actor, action, entity, entity_id) tuple for the audit collaborator"""
    event_name = "audit.recorded"

    actor_id: Optional[uuid.UUID]
    action: str
    entity: str
    entity_id: Optional[str]
    old_values: Dict[str, Any] = field(default_factory=dict)
    new_values: Dict[str, Any] = field(default_factory=dict)

class EventBus:
    """Synchronous publish/subscribe registry"""

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Callable[[DomainEvent], None]]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: Callable[[DomainEvent], None]):
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable[[DomainEvent], None]):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self):
        self._handlers.clear()

    def publish(self, event: DomainEvent) -> int:
        """Deliver an event to every subscriber of its type, returns delivered count"""
        delivered = 0
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                    delivered += 1
                except Exception as e:
                    logger.error(f"Event handler {getattr(handler, '__name__', handler)} failed for {event.name}: {e}")
        logger.debug(f"Published {event.name} to {delivered} handler(s)")
        return delivered

# Global event bus instance
event_bus = EventBus()

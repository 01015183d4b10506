"""Lifecycle notifications and the per-user activity feed.

Notification delivery sits outside the consistency boundary: ``dispatch`` is
only called after the state change it reports has been committed, and a
failing dispatcher is logged rather than propagated.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from .domain import ActivityEvent, EventType, NotificationType, Offer, Order
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class NotificationEvent:
    """A typed lifecycle event addressed to one user."""

    type: NotificationType
    recipient_id: str
    order_id: str
    payload: Dict[str, Any]
    offer_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class NotificationDispatcher(Protocol):
    def send(self, event: NotificationEvent) -> None:
        ...


class RecordingNotificationDispatcher:
    """Keeps every event in memory; used by tests and the demo script."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: NotificationType) -> List[NotificationEvent]:
        return [event for event in self.events if event.type == event_type]


class LoggingNotificationDispatcher:
    """Writes each event to the log instead of delivering it."""

    def send(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification %s for user %s (order %s, offer %s)",
            event.type.value,
            event.recipient_id,
            event.order_id,
            event.offer_id,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def order_snapshot(order: Order) -> Dict[str, Any]:
    return _jsonable(asdict(order))


def offer_snapshot(offer: Offer) -> Dict[str, Any]:
    return _jsonable(asdict(offer))


def dispatch(dispatcher: Optional[NotificationDispatcher], event: NotificationEvent) -> bool:
    """Best-effort delivery. Returns False when the dispatcher failed."""
    if dispatcher is None:
        return False
    try:
        dispatcher.send(event)
    except Exception:
        logger.exception(
            "Failed to deliver %s notification for order %s", event.type.value, event.order_id
        )
        return False
    return True


def format_order_id(order_id: Any) -> str:
    """Short display form of an order id used in event descriptions."""
    if order_id is None:
        return "N/A"
    if isinstance(order_id, int) and not isinstance(order_id, bool):
        return f"{order_id:06d}"
    text = str(order_id)
    sanitized = "".join(char for char in text if char.isascii() and char.isalnum())
    if not sanitized:
        return text
    return sanitized[:6].upper()


class ActivityFeed:
    """Stores activity events alongside the rest of the marketplace data."""

    def __init__(self, store) -> None:
        self._store = store

    def record(
        self,
        event_type: EventType,
        description: str,
        user_id: str,
        order_id: Optional[str] = None,
    ) -> ActivityEvent:
        event = ActivityEvent(
            id=str(uuid4()),
            event_type=event_type,
            description=description,
            user_id=user_id,
            order_id=order_id,
        )
        self._store.events.add(event.id, event)
        logger.debug("Created %s event for user %s", event_type.value, user_id)
        return event

    def recent(self, user_id: str, *, limit: int = 10) -> List[ActivityEvent]:
        events = self._store.events.filter(lambda event: event.user_id == user_id)
        # Storage order is insertion order; reversing first keeps ties newest-first.
        events.reverse()
        events.sort(key=lambda event: event.created_at, reverse=True)
        return events[:limit] if limit else events


__all__ = [
    "NotificationEvent",
    "NotificationDispatcher",
    "RecordingNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "ActivityFeed",
    "dispatch",
    "format_order_id",
    "order_snapshot",
    "offer_snapshot",
]

"""
Event publisher - fans committed domain events out to notification dispatchers.

Delivery belongs to the dispatcher. Publishing happens after the owning
transaction commits; a failing dispatcher is logged and never undoes the
business operation.
"""
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


class NotificationDispatcher(Protocol):
    """External collaborator notified of booking and voucher state changes."""

    def notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records each event in the application log."""

    def notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notification event {event_type}", extra={"event_type": event_type, "payload": payload})


def serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Convert datetimes and decimals to JSON-friendly strings."""
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, Decimal):
            result[key] = str(value)
        else:
            result[key] = value
    return result


class EventPublisher:
    """Publishes domain events to every registered dispatcher."""

    def __init__(self, dispatchers: Optional[List[NotificationDispatcher]] = None):
        self.dispatchers: List[NotificationDispatcher] = (
            list(dispatchers) if dispatchers is not None else [LoggingNotificationDispatcher()]
        )

    def register(self, dispatcher: NotificationDispatcher) -> None:
        self.dispatchers.append(dispatcher)

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = serialize_payload(event.to_dict())

        for dispatcher in self.dispatchers:
            try:
                dispatcher.notify(event_type, payload)
            except Exception as exc:
                logger.error(
                    f"Notification dispatcher {type(dispatcher).__name__} failed for {event_type}: {exc}",
                    exc_info=True,
                )


_default_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """Process-wide publisher used when a service is built without one."""
    global _default_publisher
    if _default_publisher is None:
        _default_publisher = EventPublisher()
    return _default_publisher

"""Domain events emitted by the reservation engine."""

from .booking_events import BookingCreated, BookingStatusChanged
from .publisher import (
    EventPublisher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    get_event_publisher,
)
from .voucher_events import VoucherPurchased, VoucherRedeemed

__all__ = [
    "BookingCreated",
    "BookingStatusChanged",
    "VoucherPurchased",
    "VoucherRedeemed",
    "EventPublisher",
    "NotificationDispatcher",
    "LoggingNotificationDispatcher",
    "get_event_publisher",
]

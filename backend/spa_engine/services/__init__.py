"""Service layer: business rules and transaction boundaries."""

from .availability_service import (
    AvailabilityResult,
    AvailabilityService,
    BookingCalendarConfig,
    generate_slot_starts,
)
from .base import BaseService
from .booking_service import BookingService
from .gift_voucher_service import GiftVoucherService

__all__ = [
    "BaseService",
    "AvailabilityService",
    "AvailabilityResult",
    "BookingCalendarConfig",
    "generate_slot_starts",
    "BookingService",
    "GiftVoucherService",
]

"""
Database models for the spa reservation engine.

The models are organized by functionality:
- User identity mirror (authentication is external)
- Catalog: services, branches and per-branch offerings
- Bookings
- Gift voucher templates, vouchers and the redemption ledger
"""

from .booking import (
    ACTIVE_BOOKING_STATUSES,
    ALLOWED_STATUS_TRANSITIONS,
    TERMINAL_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    is_transition_allowed,
)
from .catalog import Branch, BranchService, Service
from .gift_voucher import (
    GiftVoucher,
    GiftVoucherTemplate,
    GiftVoucherUsage,
    VoucherStatus,
    VoucherType,
)
from .user import User

__all__ = [
    # User models
    "User",
    # Catalog models
    "Service",
    "Branch",
    "BranchService",
    # Booking models
    "Booking",
    "BookingStatus",
    "ACTIVE_BOOKING_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "ALLOWED_STATUS_TRANSITIONS",
    "is_transition_allowed",
    # Gift voucher models
    "GiftVoucherTemplate",
    "GiftVoucher",
    "GiftVoucherUsage",
    "VoucherType",
    "VoucherStatus",
]

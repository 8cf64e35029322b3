"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is successfully created."""

    booking_id: str
    user_id: str
    branch_service_id: str
    scheduled_at: datetime
    total_price: Decimal
    voucher_amount_applied: Decimal
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingStatusChanged:
    """Fired after a booking moves to a new status (including cancellation)."""

    booking_id: str
    user_id: str
    service_name: str
    branch_name: str
    scheduled_at: datetime
    old_status: str
    new_status: str
    changed_at: datetime
    admin_notes: Optional[str] = None
    changed_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

"""FastAPI dependencies."""

from .auth import Principal, get_current_principal, require_admin
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_service,
    get_event_publisher_dep,
    get_gift_voucher_service,
)

__all__ = [
    "Principal",
    "get_current_principal",
    "require_admin",
    "get_db",
    "get_availability_service",
    "get_booking_service",
    "get_event_publisher_dep",
    "get_gift_voucher_service",
]

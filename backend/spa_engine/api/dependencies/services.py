# backend/spa_engine/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events.publisher import EventPublisher, get_event_publisher
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.gift_voucher_service import GiftVoucherService
from .database import get_db


def get_event_publisher_dep() -> EventPublisher:
    return get_event_publisher()


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_gift_voucher_service(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher_dep),
) -> GiftVoucherService:
    return GiftVoucherService(db, event_publisher=event_publisher)


def get_booking_service(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher_dep),
) -> BookingService:
    """
    Get booking service instance with all dependencies.

    The voucher service shares the booking's session so a voucher debit and
    the booking insert commit as one unit.
    """
    return BookingService(db, event_publisher=event_publisher)

# backend/spa_engine/repositories/booking_repository.py
"""
Booking Repository for the reservation engine.

All conflict queries run against the booking's own snapshot fields
(``scheduled_at`` and ``ends_at``), never against the current catalog
duration, so a later catalog edit cannot create or hide overlaps.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _apply_eager_loading(self, query):
        return query.options(
            joinedload(Booking.service),
            joinedload(Booking.branch),
            joinedload(Booking.voucher_usage),
        )

    # Conflict Queries

    def get_active_bookings_between(
        self, branch_service_id: str, window_start: datetime, window_end: datetime
    ) -> List[Booking]:
        """
        Active bookings on a BranchService whose start falls in ``[window_start, window_end)``.

        Used by the availability calculator for one local calendar day.
        """
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.branch_service_id == branch_service_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.scheduled_at >= window_start,
                    Booking.scheduled_at < window_end,
                )
                .order_by(Booking.scheduled_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self._raise("loading day bookings for", e)

    def find_overlapping(
        self,
        branch_service_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Active bookings whose ``[scheduled_at, ends_at)`` intersects ``[start, end)``.

        Touching endpoints do not intersect.
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.branch_service_id == branch_service_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.scheduled_at < end,
                Booking.ends_at > start,
            )
            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)
            return cast(List[Booking], query.all())
        except SQLAlchemyError as e:
            self._raise("checking overlaps for", e)

    # Listing Queries

    def get_user_bookings(self, user_id: str, status: Optional[str] = None) -> List[Booking]:
        """A customer's bookings, newest appointment first."""
        try:
            query = self._apply_eager_loading(self.db.query(Booking)).filter(
                Booking.user_id == user_id
            )
            if status:
                query = query.filter(Booking.status == status)
            return cast(List[Booking], query.order_by(Booking.scheduled_at.desc()).all())
        except SQLAlchemyError as e:
            self._raise("listing user", e)

    def list_bookings(
        self,
        status: Optional[str] = None,
        branch_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Booking]:
        """Back-office listing, newest created first."""
        try:
            query = self._apply_eager_loading(self.db.query(Booking))
            if status:
                query = query.filter(Booking.status == status)
            if branch_id:
                query = query.filter(Booking.branch_id == branch_id)
            return cast(
                List[Booking],
                query.order_by(Booking.created_at.desc()).offset(skip).limit(limit).all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing", e)

# backend/spa_engine/models/booking.py
"""
Booking model for the reservation engine.

A booking occupies ``[scheduled_at, ends_at)`` on one BranchService. The
duration, end instant and price are snapshotted when the booking is created,
so later catalog edits (a longer treatment, a new price) never rewrite history
or retroactively create overlaps between existing bookings.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime, utcnow

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Created by the customer, awaiting the spa
    CONFIRMED = "CONFIRMED"  # Accepted by an operator
    COMPLETED = "COMPLETED"  # Treatment delivered
    CANCELLED = "CANCELLED"  # Cancelled by customer or operator


# Statuses that hold their interval on the calendar
ACTIVE_BOOKING_STATUSES: FrozenSet[str] = frozenset(
    {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}
)
TERMINAL_BOOKING_STATUSES: FrozenSet[str] = frozenset(
    {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value}
)

# Operator-driven transitions; anything not listed is rejected
ALLOWED_STATUS_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    BookingStatus.PENDING.value: frozenset(
        {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value}
    ),
    BookingStatus.CONFIRMED.value: frozenset(
        {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value}
    ),
    BookingStatus.COMPLETED.value: frozenset(),
    BookingStatus.CANCELLED.value: frozenset(),
}


def is_transition_allowed(current: str, requested: str) -> bool:
    return requested in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset())


class Booking(Base):
    """
    Self-contained booking record for one treatment at one branch.

    Design: the service duration and branch price are copied onto the row at
    creation time. Conflict checks use the row's own ``ends_at``.
    """

    __tablename__ = "bookings"

    # Primary key
    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Core relationships
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    branch_id = Column(String(26), ForeignKey("branches.id"), nullable=False)
    branch_service_id = Column(String(26), ForeignKey("branch_services.id"), nullable=False)

    # Time window (UTC instants)
    scheduled_at = Column(UTCDateTime(), nullable=False)
    ends_at = Column(UTCDateTime(), nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    # Price snapshot
    total_price = Column(Numeric(12, 2), nullable=False)
    voucher_amount_applied = Column(Numeric(12, 2), nullable=False, default=0)

    # Booking details
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    attachment_url = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utcnow)
    confirmed_at = Column(UTCDateTime(), nullable=True)
    completed_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    # Cancellation tracking
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id])
    service = relationship("Service")
    branch = relationship("Branch")
    branch_service = relationship("BranchService")
    voucher_usage = relationship(
        "GiftVoucherUsage",
        back_populates="booking",
        uselist=False,
        viewonly=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("total_price >= 0", name="check_price_non_negative"),
        CheckConstraint("voucher_amount_applied >= 0", name="check_voucher_amount_non_negative"),
        CheckConstraint("ends_at > scheduled_at", name="check_time_order"),
        Index("ix_bookings_branch_service_scheduled", "branch_service_id", "scheduled_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Derive ``ends_at`` from the duration snapshot when not supplied."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value
        if self.ends_at is None and self.scheduled_at is not None and self.duration_minutes:
            self.ends_at = self.scheduled_at + timedelta(minutes=int(self.duration_minutes))
        if self.voucher_amount_applied is None:
            self.voucher_amount_applied = 0

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: user={self.user_id}, branch_service={self.branch_service_id}, "
            f"at={self.scheduled_at}, status={self.status}>"
        )

    @property
    def is_cancellable(self) -> bool:
        """Check if booking can be cancelled."""
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def amount_due(self) -> Any:
        """Portion of the price not covered by a gift voucher (charged externally)."""
        return self.total_price - (self.voucher_amount_applied or 0)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval intersection; touching endpoints do not overlap."""
        return start < self.ends_at and end > self.scheduled_at

    def transition_to(
        self, new_status: str, *, actor_id: Optional[str] = None, at: Optional[datetime] = None
    ) -> None:
        """Apply a status change and stamp the matching timestamp."""
        now = at or datetime.now(timezone.utc)
        self.status = new_status
        if new_status == BookingStatus.CONFIRMED.value:
            self.confirmed_at = now
        elif new_status == BookingStatus.COMPLETED.value:
            self.completed_at = now
        elif new_status == BookingStatus.CANCELLED.value:
            self.cancelled_at = now
            self.cancelled_by_id = actor_id
        logger.info(f"Booking {self.id} moved to {new_status}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for event payloads and debugging."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "service_id": self.service_id,
            "branch_id": self.branch_id,
            "branch_service_id": self.branch_service_id,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "total_price": str(self.total_price),
            "voucher_amount_applied": str(self.voucher_amount_applied),
            "notes": self.notes,
            "admin_notes": self.admin_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

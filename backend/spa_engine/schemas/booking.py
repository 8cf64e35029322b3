"""Booking request and response schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from ..core.constants import ADMIN_NOTES_MAX_LENGTH, BOOKING_NOTES_MAX_LENGTH
from ..models.booking import BookingStatus
from .base import Money, StandardizedModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    branch_id: str
    service_id: str
    scheduled_at: datetime = Field(
        description="Requested start; values without an offset are branch-local wall time"
    )
    notes: Optional[str] = Field(default=None, max_length=BOOKING_NOTES_MAX_LENGTH)
    voucher_code: Optional[str] = Field(default=None, max_length=40)

    @field_validator("voucher_code")
    @classmethod
    def _normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().upper()
        return value or None


class BookingStatusUpdate(StrictRequestModel):
    status: BookingStatus
    admin_notes: Optional[str] = Field(default=None, max_length=ADMIN_NOTES_MAX_LENGTH)


class BookingResponse(StandardizedModel):
    id: str
    user_id: str
    service_id: str
    branch_id: str
    branch_service_id: str
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    status: str
    total_price: Money
    voucher_amount_applied: Money
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class BookingListResponse(StandardizedModel):
    items: List[BookingResponse]
    total: int

"""
Gift voucher models.

A template is the purchasable product; each purchase issues a GiftVoucher with
its own code and currency balance. Every debit of that balance is recorded as
an append-only GiftVoucherUsage row, so

    original_value - remaining_value == sum(usage.amount_used)

holds for every voucher.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

import ulid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base
from .types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from .booking import Booking
    from .catalog import Service
    from .user import User


class VoucherType(str, Enum):
    FIXED_AMOUNT = "FIXED_AMOUNT"
    PERCENTAGE = "PERCENTAGE"
    SERVICE_SPECIFIC = "SERVICE_SPECIFIC"


class VoucherStatus(str, Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class GiftVoucherTemplate(Base):
    """Purchasable voucher product with an optional issuance cap."""

    __tablename__ = "gift_voucher_templates"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    service_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("services.id"), nullable=True
    )
    validity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=365)

    # Issuance cap; current_usage_count only moves through the conditional increment
    max_usage_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True, onupdate=utcnow)

    service: Mapped[Optional["Service"]] = relationship("Service")
    vouchers: Mapped[List["GiftVoucher"]] = relationship("GiftVoucher", back_populates="template")

    __table_args__ = (
        CheckConstraint(
            "type IN ('FIXED_AMOUNT', 'PERCENTAGE', 'SERVICE_SPECIFIC')",
            name="ck_gift_voucher_templates_type",
        ),
        CheckConstraint("validity_days >= 1", name="ck_gift_voucher_templates_validity"),
        CheckConstraint("current_usage_count >= 0", name="ck_gift_voucher_templates_usage_non_negative"),
        CheckConstraint(
            "max_usage_count IS NULL OR current_usage_count <= max_usage_count",
            name="ck_gift_voucher_templates_usage_cap",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GiftVoucherTemplate(name={self.name}, type={self.type}, "
            f"issued={self.current_usage_count}/{self.max_usage_count})>"
        )

    @property
    def is_sold_out(self) -> bool:
        return self.max_usage_count is not None and (self.current_usage_count or 0) >= self.max_usage_count

    @property
    def remaining_quantity(self) -> Optional[int]:
        if self.max_usage_count is None:
            return None
        return max(self.max_usage_count - (self.current_usage_count or 0), 0)


class GiftVoucher(Base):
    """Issued voucher holding a stored-value balance."""

    __tablename__ = "gift_vouchers"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    template_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("gift_voucher_templates.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    purchased_by_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=False, index=True
    )
    recipient_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    original_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    remaining_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VoucherStatus.ACTIVE.value, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True, onupdate=utcnow)

    template: Mapped["GiftVoucherTemplate"] = relationship("GiftVoucherTemplate", back_populates="vouchers")
    purchased_by: Mapped["User"] = relationship("User")
    usages: Mapped[List["GiftVoucherUsage"]] = relationship(
        "GiftVoucherUsage",
        back_populates="voucher",
        order_by="GiftVoucherUsage.used_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'USED', 'EXPIRED', 'CANCELLED')",
            name="ck_gift_vouchers_status",
        ),
        CheckConstraint("remaining_value >= 0", name="ck_gift_vouchers_remaining_non_negative"),
        CheckConstraint(
            "remaining_value <= original_value", name="ck_gift_vouchers_remaining_within_original"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GiftVoucher(code={self.code}, remaining={self.remaining_value}/"
            f"{self.original_value}, status={self.status})>"
        )

    def is_past_expiry(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def amount_used(self) -> Decimal:
        return Decimal(self.original_value) - Decimal(self.remaining_value)


class GiftVoucherUsage(Base):
    """Append-only redemption ledger entry."""

    __tablename__ = "gift_voucher_usages"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    voucher_id: Mapped[str] = mapped_column(String(26), ForeignKey("gift_vouchers.id"), nullable=False)
    booking_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("bookings.id"), nullable=True, unique=True
    )
    amount_used: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    used_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    voucher: Mapped["GiftVoucher"] = relationship("GiftVoucher", back_populates="usages")
    booking: Mapped[Optional["Booking"]] = relationship("Booking", back_populates="voucher_usage")

    __table_args__ = (
        CheckConstraint("amount_used > 0", name="ck_gift_voucher_usages_amount_positive"),
        Index("ix_gift_voucher_usages_voucher_used_at", "voucher_id", "used_at"),
    )

    def __repr__(self) -> str:
        return f"<GiftVoucherUsage(voucher={self.voucher_id}, amount={self.amount_used}, booking={self.booking_id})>"

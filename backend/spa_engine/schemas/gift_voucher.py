"""Gift voucher request and response schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field, model_validator

from ..core.constants import VOUCHER_RECIPIENT_NAME_MAX_LENGTH, VOUCHER_TEMPLATE_NAME_MAX_LENGTH
from ..models.gift_voucher import VoucherStatus, VoucherType
from .base import Money, StandardizedModel, StrictRequestModel


class GiftVoucherTemplateCreate(StrictRequestModel):
    name: str = Field(min_length=1, max_length=VOUCHER_TEMPLATE_NAME_MAX_LENGTH)
    description: Optional[str] = None
    image_url: Optional[str] = None
    type: VoucherType
    value: Money
    price: Money
    service_id: Optional[str] = None
    validity_days: int = Field(default=365, ge=1)
    max_usage_count: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _service_required_for_service_specific(self) -> "GiftVoucherTemplateCreate":
        if self.type == VoucherType.SERVICE_SPECIFIC and not self.service_id:
            raise ValueError("service_id is required for SERVICE_SPECIFIC vouchers")
        return self


class GiftVoucherTemplateUpdate(StrictRequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=VOUCHER_TEMPLATE_NAME_MAX_LENGTH)
    description: Optional[str] = None
    image_url: Optional[str] = None
    type: Optional[VoucherType] = None
    value: Optional[Money] = None
    price: Optional[Money] = None
    service_id: Optional[str] = None
    validity_days: Optional[int] = Field(default=None, ge=1)
    max_usage_count: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class GiftVoucherTemplateResponse(StandardizedModel):
    id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    type: str
    value: Money
    price: Money
    service_id: Optional[str] = None
    validity_days: int
    max_usage_count: Optional[int] = None
    current_usage_count: int
    remaining_quantity: Optional[int] = None
    is_active: bool
    is_sold_out: bool


class GiftVoucherPurchase(StrictRequestModel):
    template_id: str
    recipient_name: Optional[str] = Field(default=None, max_length=VOUCHER_RECIPIENT_NAME_MAX_LENGTH)
    recipient_email: Optional[EmailStr] = None
    message: Optional[str] = Field(default=None, max_length=500)


class GiftVoucherRedeem(StrictRequestModel):
    code: str = Field(min_length=1, max_length=40)
    amount: Money
    booking_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class GiftVoucherStatusUpdate(StrictRequestModel):
    status: VoucherStatus


class GiftVoucherUsageResponse(StandardizedModel):
    id: str
    voucher_id: str
    booking_id: Optional[str] = None
    amount_used: Money
    used_at: datetime
    notes: Optional[str] = None


class GiftVoucherResponse(StandardizedModel):
    id: str
    template_id: str
    code: str
    purchased_by_id: str
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    message: Optional[str] = None
    original_value: Money
    remaining_value: Money
    purchase_price: Money
    status: str
    expires_at: datetime
    created_at: datetime


class GiftVoucherDetailResponse(GiftVoucherResponse):
    """Voucher with its redemption history, as shown to the purchaser."""

    is_expiring_soon: bool = False
    usages: List[GiftVoucherUsageResponse] = Field(default_factory=list)

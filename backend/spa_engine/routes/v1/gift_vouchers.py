# backend/spa_engine/routes/v1/gift_vouchers.py
"""
Customer gift voucher routes - API v1

Endpoints:
    GET /gift-vouchers/templates - Vouchers currently on sale
    POST /gift-vouchers - Purchase a voucher from a template
    GET /gift-vouchers/mine - Vouchers bought by the caller
    GET /gift-vouchers/code/{code} - Balance and status lookup by code
    POST /gift-vouchers/redeem - Debit a voucher, optionally against a booking
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies import (
    Principal,
    get_booking_service,
    get_current_principal,
    get_gift_voucher_service,
)
from ...core.exceptions import DomainException
from ...models.gift_voucher import GiftVoucher
from ...schemas.gift_voucher import (
    GiftVoucherDetailResponse,
    GiftVoucherPurchase,
    GiftVoucherRedeem,
    GiftVoucherResponse,
    GiftVoucherTemplateResponse,
    GiftVoucherUsageResponse,
)
from ...services.booking_service import BookingService
from ...services.gift_voucher_service import GiftVoucherService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gift-vouchers", tags=["gift-vouchers-v1"])


def voucher_detail(voucher: GiftVoucher, service: GiftVoucherService) -> GiftVoucherDetailResponse:
    response = GiftVoucherDetailResponse.model_validate(voucher)
    response.is_expiring_soon = service.is_expiring_soon(voucher)
    return response


@router.get("/templates", response_model=List[GiftVoucherTemplateResponse])
async def list_available_templates(
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> List[GiftVoucherTemplateResponse]:
    try:
        templates = await asyncio.to_thread(voucher_service.list_available_templates)
    except DomainException as e:
        handle_domain_exception(e)
    return [GiftVoucherTemplateResponse.model_validate(t) for t in templates]


@router.post("", response_model=GiftVoucherResponse, status_code=status.HTTP_201_CREATED)
async def purchase_voucher(
    payload: GiftVoucherPurchase,
    principal: Principal = Depends(get_current_principal),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherResponse:
    """
    Issue a voucher from a template.

    Payment is settled upstream; this call records the sale. 409 SOLD_OUT when
    the template's issuance cap has been reached.
    """
    try:
        voucher = await asyncio.to_thread(
            voucher_service.purchase_voucher,
            template_id=payload.template_id,
            purchaser_id=principal.id,
            recipient_name=payload.recipient_name,
            recipient_email=str(payload.recipient_email) if payload.recipient_email else None,
            message=payload.message,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return GiftVoucherResponse.model_validate(voucher)


@router.get("/mine", response_model=List[GiftVoucherDetailResponse])
async def list_my_vouchers(
    principal: Principal = Depends(get_current_principal),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> List[GiftVoucherDetailResponse]:
    try:
        vouchers = await asyncio.to_thread(voucher_service.list_user_vouchers, principal.id)
    except DomainException as e:
        handle_domain_exception(e)
    return [voucher_detail(v, voucher_service) for v in vouchers]


@router.get("/code/{code}", response_model=GiftVoucherResponse)
async def get_voucher_by_code(
    code: str,
    _: Principal = Depends(get_current_principal),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherResponse:
    """Balance check for a code the caller holds."""
    try:
        voucher = await asyncio.to_thread(
            voucher_service.get_voucher_by_code, code.strip().upper()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return GiftVoucherResponse.model_validate(voucher)


@router.post("/redeem", response_model=GiftVoucherUsageResponse, status_code=status.HTTP_201_CREATED)
async def redeem_voucher(
    payload: GiftVoucherRedeem,
    principal: Principal = Depends(get_current_principal),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
    booking_service: BookingService = Depends(get_booking_service),
) -> GiftVoucherUsageResponse:
    """
    Redeem a voucher.

    Customers may only redeem against their own bookings; redemptions without a
    booking (treatments paid at the desk) are an operator action.
    """
    if payload.booking_id is None and not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Operator access required", "code": "FORBIDDEN"},
        )
    try:
        if payload.booking_id is not None:
            # Ownership check; raises ForbiddenException for someone else's booking
            await asyncio.to_thread(
                booking_service.get_booking,
                payload.booking_id,
                principal.id,
                principal.is_admin,
            )
        usage = await asyncio.to_thread(
            voucher_service.redeem_voucher,
            payload.code.strip().upper(),
            payload.amount,
            booking_id=payload.booking_id,
            notes=payload.notes,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return GiftVoucherUsageResponse.model_validate(usage)

# backend/spa_engine/routes/v1/bookings.py
"""
Customer booking routes - API v1

All business logic delegated to BookingService.

Endpoints:
    POST /bookings - Create a booking (optionally funded by a gift voucher)
    GET /bookings - List the caller's bookings
    GET /bookings/{booking_id} - Booking details (owner or operator)
    POST /bookings/{booking_id}/cancel - Cancel a booking
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import Principal, get_booking_service, get_current_principal
from ...core.exceptions import DomainException
from ...schemas.booking import BookingCreate, BookingListResponse, BookingResponse
from ...services.booking_service import BookingService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings-v1"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Create a PENDING booking.

    409 SLOT_CONFLICT means the slot was taken in the meantime; re-offer
    availability. 422 with a voucher code means the voucher could not be applied.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            user_id=principal.id,
            service_id=payload.service_id,
            branch_id=payload.branch_id,
            scheduled_at=payload.scheduled_at,
            notes=payload.notes,
            voucher_code=payload.voucher_code,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
async def list_my_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_user_bookings, principal.id, status_filter
        )
    except DomainException as e:
        handle_domain_exception(e)
    items = [BookingResponse.model_validate(b) for b in bookings]
    return BookingListResponse(items=items, total=len(items))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.get_booking, booking_id, principal.id, principal.is_admin
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a PENDING or CONFIRMED booking. Voucher redemptions are not reversed."""
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, principal.id, principal.is_admin
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)

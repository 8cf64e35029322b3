# backend/spa_engine/routes/v1/admin_bookings.py
"""
Operator booking routes - API v1

    GET /admin/bookings - List bookings, optionally by status or branch
    PATCH /admin/bookings/{booking_id}/status - Move a booking through its lifecycle
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import Principal, get_booking_service, require_admin
from ...core.exceptions import DomainException
from ...schemas.booking import BookingListResponse, BookingResponse, BookingStatusUpdate
from ...services.booking_service import BookingService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/bookings", tags=["admin-bookings-v1"])


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    branch_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    _: Principal = Depends(require_admin),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_bookings,
            status=status_filter,
            branch_id=branch_id,
            skip=skip,
            limit=limit,
        )
    except DomainException as e:
        handle_domain_exception(e)
    items = [BookingResponse.model_validate(b) for b in bookings]
    return BookingListResponse(items=items, total=len(items))


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    principal: Principal = Depends(require_admin),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """409 INVALID_TRANSITION when the move is outside the booking state machine."""
    try:
        booking = await asyncio.to_thread(
            booking_service.update_status,
            booking_id,
            payload.status.value,
            admin_notes=payload.admin_notes,
            actor_id=principal.id,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)

# backend/spa_engine/routes/v1/availability.py
"""
Availability routes - API v1

    GET /availability - Bookable start times for a branch, treatment and day
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_availability_service
from ...core.exceptions import DomainException
from ...schemas.availability import AvailableSlotsResponse
from ...services.availability_service import AvailabilityService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


@router.get("/availability", response_model=AvailableSlotsResponse)
async def get_available_slots(
    branch_id: str = Query(..., min_length=1),
    service_id: str = Query(..., min_length=1),
    date: str = Query(..., description="Calendar day in YYYY-MM-DD"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailableSlotsResponse:
    """Public calendar view; the answer is advisory and re-checked on booking."""
    try:
        result = await asyncio.to_thread(
            availability_service.get_available_slots, branch_id, service_id, date
        )
    except DomainException as e:
        handle_domain_exception(e)

    return AvailableSlotsResponse(
        branch_service_id=result.branch_service_id,
        date=result.date,
        slots=result.slots,
        is_fully_booked=result.is_fully_booked,
        service_duration=result.service_duration,
    )

# backend/spa_engine/routes/v1/admin_gift_vouchers.py
"""
Operator gift voucher routes - API v1

Templates:
    GET /admin/gift-vouchers/templates
    POST /admin/gift-vouchers/templates
    PATCH /admin/gift-vouchers/templates/{template_id}
    DELETE /admin/gift-vouchers/templates/{template_id} - Retire (soft)

Issued vouchers:
    GET /admin/gift-vouchers
    GET /admin/gift-vouchers/usages
    GET /admin/gift-vouchers/{voucher_id}
    POST /admin/gift-vouchers/{voucher_id}/cancel
    PATCH /admin/gift-vouchers/{voucher_id}/status
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import Principal, get_gift_voucher_service, require_admin
from ...core.exceptions import DomainException
from ...schemas.gift_voucher import (
    GiftVoucherDetailResponse,
    GiftVoucherResponse,
    GiftVoucherStatusUpdate,
    GiftVoucherTemplateCreate,
    GiftVoucherTemplateResponse,
    GiftVoucherTemplateUpdate,
    GiftVoucherUsageResponse,
)
from ...services.gift_voucher_service import GiftVoucherService
from . import handle_domain_exception
from .gift_vouchers import voucher_detail

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/gift-vouchers",
    tags=["admin-gift-vouchers-v1"],
    dependencies=[Depends(require_admin)],
)


# Templates


@router.get("/templates", response_model=List[GiftVoucherTemplateResponse])
async def list_templates(
    active_only: bool = Query(False),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> List[GiftVoucherTemplateResponse]:
    try:
        templates = await asyncio.to_thread(voucher_service.list_templates, active_only)
    except DomainException as e:
        handle_domain_exception(e)
    return [GiftVoucherTemplateResponse.model_validate(t) for t in templates]


@router.post(
    "/templates",
    response_model=GiftVoucherTemplateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    payload: GiftVoucherTemplateCreate,
    principal: Principal = Depends(require_admin),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherTemplateResponse:
    try:
        template = await asyncio.to_thread(
            lambda: voucher_service.create_template(**payload.model_dump())
        )
    except DomainException as e:
        handle_domain_exception(e)
    logger.info(f"Operator {principal.id} created voucher template {template.id}")
    return GiftVoucherTemplateResponse.model_validate(template)


@router.patch("/templates/{template_id}", response_model=GiftVoucherTemplateResponse)
async def update_template(
    template_id: str,
    payload: GiftVoucherTemplateUpdate,
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherTemplateResponse:
    changes = payload.model_dump(exclude_unset=True)
    try:
        template = await asyncio.to_thread(
            lambda: voucher_service.update_template(template_id, **changes)
        )
    except DomainException as e:
        handle_domain_exception(e)
    return GiftVoucherTemplateResponse.model_validate(template)


@router.delete("/templates/{template_id}", response_model=GiftVoucherTemplateResponse)
async def retire_template(
    template_id: str,
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherTemplateResponse:
    """Take a template off sale; vouchers already issued stay valid."""
    try:
        template = await asyncio.to_thread(voucher_service.retire_template, template_id)
    except DomainException as e:
        handle_domain_exception(e)
    return GiftVoucherTemplateResponse.model_validate(template)


# Issued vouchers


@router.get("", response_model=List[GiftVoucherResponse])
async def list_vouchers(
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> List[GiftVoucherResponse]:
    try:
        vouchers = await asyncio.to_thread(
            voucher_service.list_vouchers, status_filter, skip, limit
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [GiftVoucherResponse.model_validate(v) for v in vouchers]


@router.get("/usages", response_model=List[GiftVoucherUsageResponse])
async def list_usages(
    voucher_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> List[GiftVoucherUsageResponse]:
    try:
        usages = await asyncio.to_thread(voucher_service.list_usages, voucher_id, skip, limit)
    except DomainException as e:
        handle_domain_exception(e)
    return [GiftVoucherUsageResponse.model_validate(u) for u in usages]


@router.get("/{voucher_id}", response_model=GiftVoucherDetailResponse)
async def get_voucher(
    voucher_id: str,
    principal: Principal = Depends(require_admin),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherDetailResponse:
    try:
        voucher = await asyncio.to_thread(
            voucher_service.get_voucher, voucher_id, principal.id, True
        )
    except DomainException as e:
        handle_domain_exception(e)
    return voucher_detail(voucher, voucher_service)


@router.post("/{voucher_id}/cancel", response_model=GiftVoucherResponse)
async def cancel_voucher(
    voucher_id: str,
    principal: Principal = Depends(require_admin),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherResponse:
    try:
        voucher = await asyncio.to_thread(voucher_service.cancel_voucher, voucher_id)
    except DomainException as e:
        handle_domain_exception(e)
    logger.info(f"Operator {principal.id} cancelled gift voucher {voucher_id}")
    return GiftVoucherResponse.model_validate(voucher)


@router.patch("/{voucher_id}/status", response_model=GiftVoucherResponse)
async def update_voucher_status(
    voucher_id: str,
    payload: GiftVoucherStatusUpdate,
    principal: Principal = Depends(require_admin),
    voucher_service: GiftVoucherService = Depends(get_gift_voucher_service),
) -> GiftVoucherResponse:
    try:
        voucher = await asyncio.to_thread(
            voucher_service.update_voucher_status, voucher_id, payload.status.value
        )
    except DomainException as e:
        handle_domain_exception(e)
    logger.info(f"Operator {principal.id} set gift voucher {voucher_id} to {voucher.status}")
    return GiftVoucherResponse.model_validate(voucher)

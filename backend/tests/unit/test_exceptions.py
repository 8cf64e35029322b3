"""Domain exception kinds and their HTTP mapping."""

from decimal import Decimal

import pytest

from spa_engine.core.exceptions import (
    ConfigurationException,
    DomainException,
    ForbiddenException,
    InactiveException,
    InsufficientBalanceException,
    InvalidArgumentException,
    InvalidStateException,
    InvalidTransitionException,
    NotFoundException,
    ServiceException,
    SlotConflictException,
    SoldOutException,
    VoucherExpiredException,
    VoucherInvalidException,
    VoucherNotActiveException,
    VoucherNotFoundException,
    VoucherServiceMismatchException,
)


@pytest.mark.parametrize(
    "exc, status_code, code",
    [
        (InvalidArgumentException("bad"), 400, "INVALID_ARGUMENT"),
        (NotFoundException("missing"), 404, "NotFoundException"),
        (ForbiddenException("nope"), 403, "ForbiddenException"),
        (InvalidStateException("terminal"), 409, "INVALID_STATE"),
        (InvalidTransitionException("PENDING", "COMPLETED"), 409, "INVALID_TRANSITION"),
        (SlotConflictException(), 409, "SLOT_CONFLICT"),
        (SoldOutException("tpl", 5), 409, "SOLD_OUT"),
        (InactiveException(), 422, "INACTIVE"),
        (VoucherExpiredException("GV-1"), 422, "VOUCHER_EXPIRED"),
        (VoucherNotActiveException("GV-1", "USED"), 422, "VOUCHER_NOT_ACTIVE"),
        (InsufficientBalanceException("GV-1", Decimal("10"), Decimal("5")), 422, "INSUFFICIENT_BALANCE"),
        (VoucherServiceMismatchException("GV-1", "svc"), 422, "VOUCHER_WRONG_SERVICE"),
        (VoucherNotFoundException("GV-1"), 422, "VOUCHER_NOT_FOUND"),
        (ConfigurationException("zero duration"), 500, "CONFIGURATION_ERROR"),
        (ServiceException("db down"), 500, "ServiceException"),
    ],
)
def test_http_mapping(exc: DomainException, status_code: int, code: str) -> None:
    http_exc = exc.to_http_exception()

    assert http_exc.status_code == status_code
    assert http_exc.detail["code"] == code
    assert http_exc.detail["message"] == exc.message


@pytest.mark.parametrize(
    "exc, reason",
    [
        (VoucherExpiredException("GV-1"), "expired"),
        (VoucherNotActiveException("GV-1", "CANCELLED"), "not_active"),
        (InsufficientBalanceException("GV-1", 10, 5), "insufficient_balance"),
        (VoucherServiceMismatchException("GV-1", "svc"), "wrong_service"),
        (VoucherNotFoundException("GV-1"), "not_found"),
    ],
)
def test_voucher_failures_are_voucher_invalid_with_reason(exc: VoucherInvalidException, reason: str) -> None:
    assert isinstance(exc, VoucherInvalidException)
    assert exc.details["reason"] == reason
    assert exc.details["voucher_code"] == "GV-1"


def test_conflict_kinds_are_distinguishable() -> None:
    slot = SlotConflictException().to_http_exception().detail["code"]
    sold_out = SoldOutException("tpl").to_http_exception().detail["code"]

    assert slot != sold_out
    assert {slot, sold_out}.isdisjoint({"ServiceException", "INVALID_ARGUMENT"})


def test_invalid_transition_reports_both_statuses() -> None:
    exc = InvalidTransitionException("PENDING", "COMPLETED")

    assert exc.details == {"current_status": "PENDING", "requested_status": "COMPLETED"}
    assert "PENDING" in exc.message and "COMPLETED" in exc.message

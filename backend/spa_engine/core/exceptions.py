# backend/spa_engine/core/exceptions.py
"""
Domain-specific exceptions for the reservation engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Each kind maps to one HTTP status so callers can tell a lost race
(slot conflict, sold out) apart from bad input or a terminal state.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidArgumentException(ValidationException):
    """Malformed or out-of-range input; not retryable without a client fix."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_ARGUMENT", details=details)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Raised when the actor lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class ConfigurationException(DomainException):
    """Operator misconfiguration (e.g. a zero-minute service), never shown as 'fully booked'."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)


# Lifecycle errors


class InvalidStateException(ConflictException):
    """Operation is not legal for the entity's current lifecycle state."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_STATE", details=details)


class InvalidTransitionException(ConflictException):
    """Requested status transition is outside the allowed state machine."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot change status from {current} to {requested}",
            code="INVALID_TRANSITION",
            details={"current_status": current, "requested_status": requested},
        )


# Specific business exceptions


class SlotConflictException(ConflictException):
    """Raised when a booking interval overlaps an active booking."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class InactiveException(BusinessRuleException):
    """Raised when a voucher template exists but is not on sale."""

    def __init__(self, message: str = "This gift voucher is no longer available"):
        super().__init__(message=message, code="INACTIVE")


class SoldOutException(ConflictException):
    """Raised when a voucher template has reached its issuance cap."""

    def __init__(self, template_id: str, max_usage_count: Optional[int] = None):
        super().__init__(
            message="This gift voucher is sold out",
            code="SOLD_OUT",
            details={"template_id": template_id, "max_usage_count": max_usage_count},
        )


class VoucherInvalidException(BusinessRuleException):
    """Voucher cannot be applied; ``details['reason']`` carries the specific cause."""

    reason = "invalid"

    def __init__(
        self,
        message: str = "This gift voucher cannot be used",
        *,
        code: str = "VOUCHER_INVALID",
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"reason": self.reason}
        merged.update(details or {})
        super().__init__(message=message, code=code, details=merged)


class VoucherNotFoundException(VoucherInvalidException):
    reason = "not_found"

    def __init__(self, code_value: str):
        super().__init__(
            message="This gift voucher code was not recognised",
            code="VOUCHER_NOT_FOUND",
            details={"voucher_code": code_value},
        )


class VoucherExpiredException(VoucherInvalidException):
    reason = "expired"

    def __init__(self, code_value: str):
        super().__init__(
            message="This gift voucher has expired",
            code="VOUCHER_EXPIRED",
            details={"voucher_code": code_value},
        )


class VoucherNotActiveException(VoucherInvalidException):
    reason = "not_active"

    def __init__(self, code_value: str, current_status: str):
        super().__init__(
            message=f"This gift voucher is {current_status.lower()}",
            code="VOUCHER_NOT_ACTIVE",
            details={"voucher_code": code_value, "status": current_status},
        )


class InsufficientBalanceException(VoucherInvalidException):
    reason = "insufficient_balance"

    def __init__(self, code_value: str, requested: Any, remaining: Any):
        super().__init__(
            message="Gift voucher balance is insufficient",
            code="INSUFFICIENT_BALANCE",
            details={
                "voucher_code": code_value,
                "requested": str(requested),
                "remaining": str(remaining),
            },
        )


class VoucherServiceMismatchException(VoucherInvalidException):
    reason = "wrong_service"

    def __init__(self, code_value: str, service_id: str):
        super().__init__(
            message="This gift voucher is not valid for the selected treatment",
            code="VOUCHER_WRONG_SERVICE",
            details={"voucher_code": code_value, "service_id": service_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

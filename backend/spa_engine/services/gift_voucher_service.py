# backend/spa_engine/services/gift_voucher_service.py
"""
Gift Voucher Service for the reservation engine.

Owns voucher templates, issued vouchers and the append-only usage ledger.

Two contended values live here:
- a template's ``current_usage_count`` (advanced by one conditional UPDATE)
- a voucher's ``remaining_value`` (debited under a row lock)

Expiry is evaluated lazily. A voucher past ``expires_at`` that is still ACTIVE
in storage is flipped to EXPIRED by whichever read or redemption notices it.
"""

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import logging
import secrets
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    VOUCHER_CODE_ALPHABET,
    VOUCHER_RECIPIENT_NAME_MAX_LENGTH,
    VOUCHER_TEMPLATE_NAME_MAX_LENGTH,
)
from ..core.exceptions import (
    ConfigurationException,
    ForbiddenException,
    InactiveException,
    InsufficientBalanceException,
    InvalidArgumentException,
    InvalidStateException,
    InvalidTransitionException,
    NotFoundException,
    ServiceException,
    SoldOutException,
    VoucherExpiredException,
    VoucherInvalidException,
    VoucherNotActiveException,
    VoucherServiceMismatchException,
)
from ..events.voucher_events import VoucherPurchased, VoucherRedeemed
from ..models.booking import BookingStatus
from ..models.gift_voucher import (
    GiftVoucher,
    GiftVoucherTemplate,
    GiftVoucherUsage,
    VoucherStatus,
    VoucherType,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

CENT = Decimal("0.01")
_CODE_GENERATION_ATTEMPTS = 5
_TEMPLATE_FIELDS = (
    "name",
    "description",
    "image_url",
    "type",
    "value",
    "price",
    "service_id",
    "validity_days",
    "max_usage_count",
    "is_active",
)


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce to a two-decimal Decimal; floats go through ``str`` to avoid binary noise."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidArgumentException(
            f"{field_name} must be a number", details={field_name: str(value)}
        ) from None
    if not amount.is_finite():
        raise InvalidArgumentException(
            f"{field_name} must be a number", details={field_name: str(value)}
        )
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_voucher_code(code: str) -> str:
    """Codes are issued upper-case; accept what a customer types."""
    return code.strip().upper()


class GiftVoucherService(BaseService):
    """
    Service layer for gift voucher templates, issuance and redemption.

    ``lock_usable_voucher`` and ``debit_locked`` run inside a caller's transaction
    so BookingService can debit a voucher in the same unit of work as the
    booking insert.
    """

    def __init__(self, db: Session, **kwargs: Any):
        super().__init__(db, **kwargs)
        self.template_repository = RepositoryFactory.create_gift_voucher_template_repository(db)
        self.voucher_repository = RepositoryFactory.create_gift_voucher_repository(db)
        self.usage_repository = RepositoryFactory.create_gift_voucher_usage_repository(db)
        self.catalog_repository = RepositoryFactory.create_catalog_repository(db)

    # Templates

    def _validate_template(self, data: Dict[str, Any]) -> Dict[str, Any]:
        name = (data.get("name") or "").strip()
        if not name:
            raise InvalidArgumentException("Template name is required")
        if len(name) > VOUCHER_TEMPLATE_NAME_MAX_LENGTH:
            raise InvalidArgumentException(
                f"Template name must be at most {VOUCHER_TEMPLATE_NAME_MAX_LENGTH} characters"
            )
        data["name"] = name

        try:
            voucher_type = VoucherType(data.get("type"))
        except ValueError:
            raise InvalidArgumentException(
                "Unknown voucher type", details={"type": data.get("type")}
            ) from None
        data["type"] = voucher_type.value

        data["value"] = to_money(data.get("value"), "value")
        data["price"] = to_money(data.get("price"), "price")
        if data["value"] <= 0:
            raise InvalidArgumentException("Voucher value must be positive")
        if data["price"] <= 0:
            raise InvalidArgumentException("Voucher price must be positive")
        if voucher_type == VoucherType.PERCENTAGE and data["value"] > 100:
            raise InvalidArgumentException("Percentage vouchers must be between 0 and 100")

        if voucher_type == VoucherType.SERVICE_SPECIFIC:
            service_id = data.get("service_id")
            if not service_id or self.catalog_repository.get_service(service_id) is None:
                raise InvalidArgumentException(
                    "Service-specific vouchers must reference an existing service",
                    details={"service_id": service_id},
                )
        else:
            data["service_id"] = None

        validity_days = data.get("validity_days")
        if validity_days is None or int(validity_days) < 1:
            raise InvalidArgumentException("Validity must be at least one day")
        data["validity_days"] = int(validity_days)

        max_usage = data.get("max_usage_count")
        if max_usage is not None:
            if int(max_usage) < 1:
                raise InvalidArgumentException("Maximum usage count must be at least 1")
            data["max_usage_count"] = int(max_usage)
        return data

    @BaseService.measure_operation("create_template")
    def create_template(self, **fields: Any) -> GiftVoucherTemplate:
        """
        Create a purchasable voucher template.

        Raises:
            InvalidArgumentException: Invalid values, or a SERVICE_SPECIFIC
                template without an existing service
        """
        data = {key: fields.get(key) for key in _TEMPLATE_FIELDS if key in fields}
        data.setdefault("validity_days", 365)
        data.setdefault("is_active", True)

        def work() -> GiftVoucherTemplate:
            validated = self._validate_template(data)
            return self.template_repository.create(current_usage_count=0, **validated)

        template = self.run_in_transaction("create_template", work)
        self.log_operation("create_template", template_id=template.id, type=template.type)
        return template

    @BaseService.measure_operation("update_template")
    def update_template(self, template_id: str, **changes: Any) -> GiftVoucherTemplate:
        """Partially update a template; the issuance counter cannot be edited."""

        def work() -> GiftVoucherTemplate:
            template = self.template_repository.get_for_update(template_id)
            if template is None:
                raise NotFoundException("Gift voucher template not found", details={"template_id": template_id})

            merged = {key: getattr(template, key) for key in _TEMPLATE_FIELDS}
            merged.update({k: v for k, v in changes.items() if k in _TEMPLATE_FIELDS})
            validated = self._validate_template(merged)
            max_usage = validated.get("max_usage_count")
            if max_usage is not None and max_usage < template.current_usage_count:
                raise InvalidArgumentException(
                    "Maximum usage count cannot be below the number already issued",
                    details={"current_usage_count": template.current_usage_count},
                )
            for key, value in validated.items():
                setattr(template, key, value)
            self.template_repository.flush()
            return template

        template = self.run_in_transaction("update_template", work)
        self.log_operation("update_template", template_id=template_id, fields=sorted(changes))
        return template

    @BaseService.measure_operation("retire_template")
    def retire_template(self, template_id: str) -> GiftVoucherTemplate:
        """Take a template off sale. Issued vouchers are unaffected."""

        def work() -> GiftVoucherTemplate:
            template = self.template_repository.get_for_update(template_id)
            if template is None:
                raise NotFoundException("Gift voucher template not found", details={"template_id": template_id})
            template.is_active = False
            self.template_repository.flush()
            return template

        template = self.run_in_transaction("retire_template", work)
        self.log_operation("retire_template", template_id=template_id)
        return template

    @BaseService.measure_operation("list_templates")
    def list_templates(self, active_only: bool = False) -> List[GiftVoucherTemplate]:
        return self.template_repository.list_templates(active_only=active_only)

    @BaseService.measure_operation("list_available_templates")
    def list_available_templates(self) -> List[GiftVoucherTemplate]:
        """Templates a customer can buy right now (active and not sold out)."""
        return self.template_repository.list_purchasable()

    # Issuance

    def _generate_code(self) -> str:
        length = settings.voucher_code_length
        for _ in range(_CODE_GENERATION_ATTEMPTS):
            raw = "".join(secrets.choice(VOUCHER_CODE_ALPHABET) for _ in range(length))
            groups = [raw[i : i + 4] for i in range(0, length, 4)]
            code = "-".join([settings.voucher_code_prefix, *groups])
            if not self.voucher_repository.code_exists(code):
                return code
        raise ServiceException("Could not generate a unique voucher code")

    def _original_value(self, template: GiftVoucherTemplate) -> Decimal:
        if template.type == VoucherType.SERVICE_SPECIFIC.value:
            service = (
                self.catalog_repository.get_service(template.service_id)
                if template.service_id
                else None
            )
            if service is None:
                raise ConfigurationException(
                    "Service-specific voucher references a missing service",
                    details={"template_id": template.id, "service_id": template.service_id},
                )
            return to_money(service.price)
        # PERCENTAGE vouchers carry the template value as stored credit
        return to_money(template.value)

    @BaseService.measure_operation("purchase_voucher")
    def purchase_voucher(
        self,
        template_id: str,
        purchaser_id: str,
        recipient_name: Optional[str] = None,
        recipient_email: Optional[str] = None,
        message: Optional[str] = None,
    ) -> GiftVoucher:
        """
        Issue a voucher from a template.

        The cap check and the counter increment are a single conditional UPDATE
        inside the same transaction as the voucher insert.

        Raises:
            NotFoundException: Template missing
            InactiveException: Template not on sale
            SoldOutException: Issuance cap reached
        """
        if message is not None and len(message) > settings.voucher_message_max_length:
            raise InvalidArgumentException(
                f"Message must be at most {settings.voucher_message_max_length} characters"
            )
        if recipient_name is not None and len(recipient_name) > VOUCHER_RECIPIENT_NAME_MAX_LENGTH:
            raise InvalidArgumentException(
                f"Recipient name must be at most {VOUCHER_RECIPIENT_NAME_MAX_LENGTH} characters"
            )
        max_usage_seen: Dict[str, Optional[int]] = {"value": None}

        def work() -> GiftVoucher:
            template = self.template_repository.get_by_id(template_id, load_relationships=False)
            if template is None:
                raise NotFoundException("Gift voucher template not found", details={"template_id": template_id})
            if not template.is_active:
                raise InactiveException()
            max_usage_seen["value"] = template.max_usage_count

            original_value = self._original_value(template)
            if not self.template_repository.try_increment_usage(template.id):
                raise SoldOutException(template.id, template.max_usage_count)
            # The counter moved in SQL; drop the stale in-memory value
            self.db.expire(template, ["current_usage_count"])

            now = self.now()
            return self.voucher_repository.create(
                template_id=template.id,
                code=self._generate_code(),
                purchased_by_id=purchaser_id,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
                message=message,
                original_value=original_value,
                remaining_value=original_value,
                purchase_price=to_money(template.price),
                status=VoucherStatus.ACTIVE.value,
                expires_at=now + timedelta(days=template.validity_days),
                created_at=now,
            )

        try:
            voucher = self.run_in_transaction(
                "purchase_voucher",
                work,
                on_exhausted=lambda: SoldOutException(template_id, max_usage_seen["value"]),
            )
        except SoldOutException:
            prometheus_metrics.inc_voucher_purchase("sold_out")
            self.logger.info(f"Voucher template {template_id} is sold out")
            raise

        prometheus_metrics.inc_voucher_purchase("issued")
        self.log_operation(
            "purchase_voucher",
            voucher_id=voucher.id,
            template_id=template_id,
            purchaser_id=purchaser_id,
        )
        self.publish(
            VoucherPurchased(
                voucher_id=voucher.id,
                template_id=voucher.template_id,
                code=voucher.code,
                purchased_by_id=purchaser_id,
                original_value=voucher.original_value,
                expires_at=voucher.expires_at,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
                message=message,
            )
        )
        return voucher

    # Redemption

    def lock_usable_voucher(self, code: str, service_id: Optional[str] = None) -> GiftVoucher:
        """
        Lock a voucher by code and check it can be debited.

        Must run inside the caller's transaction. Checks run in order:
        unknown code, expiry, status, treatment match.
        """
        code = normalize_voucher_code(code)
        voucher = self.voucher_repository.get_by_code_for_update(code)
        if voucher is None:
            raise NotFoundException("Gift voucher not found", details={"voucher_code": code})
        if voucher.is_past_expiry(self.now()):
            raise VoucherExpiredException(code)
        if voucher.status != VoucherStatus.ACTIVE.value:
            raise VoucherNotActiveException(code, voucher.status)
        if service_id is not None:
            template = voucher.template
            if (
                template is not None
                and template.type == VoucherType.SERVICE_SPECIFIC.value
                and template.service_id != service_id
            ):
                raise VoucherServiceMismatchException(code, service_id)
        return voucher

    def debit_locked(
        self,
        voucher: GiftVoucher,
        amount: Decimal,
        booking_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> GiftVoucherUsage:
        """Debit a locked voucher and append the usage row."""
        if amount <= 0:
            raise InvalidArgumentException("Redemption amount must be positive")
        remaining = to_money(voucher.remaining_value)
        if amount > remaining:
            raise InsufficientBalanceException(voucher.code, amount, remaining)

        voucher.remaining_value = remaining - amount
        if voucher.remaining_value == 0:
            voucher.status = VoucherStatus.USED.value
        usage = self.usage_repository.create(
            voucher=voucher,
            booking_id=booking_id,
            amount_used=amount,
            used_at=self.now(),
            notes=notes,
        )
        return usage

    def redeemed_event(self, voucher: GiftVoucher, usage: GiftVoucherUsage) -> VoucherRedeemed:
        return VoucherRedeemed(
            voucher_id=voucher.id,
            usage_id=usage.id,
            amount_used=usage.amount_used,
            remaining_value=voucher.remaining_value,
            status=voucher.status,
            used_at=usage.used_at,
            booking_id=usage.booking_id,
        )

    def expire_if_due(self, code: str) -> bool:
        """
        Persist the lazy ACTIVE -> EXPIRED flip in its own short transaction.

        Called after a redemption attempt rolled back on expiry, so the stored
        status stays consistent for later reads.
        """
        code = normalize_voucher_code(code)

        def work() -> bool:
            voucher = self.voucher_repository.get_by_code_for_update(code)
            if (
                voucher is not None
                and voucher.status == VoucherStatus.ACTIVE.value
                and voucher.is_past_expiry(self.now())
            ):
                voucher.status = VoucherStatus.EXPIRED.value
                self.voucher_repository.flush()
                return True
            return False

        flipped = self.run_in_transaction("expire_voucher", work)
        if flipped:
            self.logger.info(f"Gift voucher {code} marked expired")
        return flipped

    def _run_redemption(self, op_name: str, code: str, work: Callable[[], T], on_exhausted: Callable[[], Any]) -> T:
        """Run a redemption unit of work; persist lazy expiry and count outcomes."""
        try:
            result = self.run_in_transaction(op_name, work, on_exhausted=on_exhausted)
        except VoucherExpiredException:
            self.expire_if_due(code)
            prometheus_metrics.inc_voucher_redemption("expired")
            raise
        except VoucherInvalidException as exc:
            prometheus_metrics.inc_voucher_redemption(exc.reason)
            raise
        prometheus_metrics.inc_voucher_redemption("redeemed")
        return result

    @BaseService.measure_operation("redeem_voucher")
    def redeem_voucher(
        self,
        code: str,
        amount: Any,
        booking_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> GiftVoucherUsage:
        """
        Debit ``amount`` from a voucher, optionally against an existing booking.

        Raises:
            NotFoundException: Unknown code or booking
            VoucherExpiredException: Past expiry (status flipped to EXPIRED)
            VoucherNotActiveException: Used, expired or cancelled
            InsufficientBalanceException: Amount exceeds the remaining balance
        """
        code = normalize_voucher_code(code)
        debit = to_money(amount)
        if debit <= 0:
            raise InvalidArgumentException("Redemption amount must be positive", details={"amount": str(amount)})
        booking_repository = RepositoryFactory.create_booking_repository(self.db)

        def work() -> Tuple[GiftVoucher, GiftVoucherUsage]:
            booking = None
            if booking_id is not None:
                booking = booking_repository.get_for_update(booking_id)
                if booking is None:
                    raise NotFoundException("Booking not found", details={"booking_id": booking_id})
                if booking.status == BookingStatus.CANCELLED.value:
                    raise InvalidStateException(
                        "A gift voucher cannot be applied to a cancelled booking",
                        details={"booking_id": booking_id},
                    )
                if self.usage_repository.find_one_by(booking_id=booking_id) is not None:
                    raise InvalidStateException(
                        "A gift voucher has already been applied to this booking",
                        details={"booking_id": booking_id},
                    )
                if debit > to_money(booking.total_price):
                    raise InvalidArgumentException(
                        "Redemption amount exceeds the booking total",
                        details={"amount": str(debit), "total_price": str(booking.total_price)},
                    )
            voucher = self.lock_usable_voucher(
                code, service_id=booking.service_id if booking is not None else None
            )
            usage = self.debit_locked(voucher, debit, booking_id=booking_id, notes=notes)
            if booking is not None:
                booking.voucher_amount_applied = debit
                booking_repository.flush()
            return voucher, usage

        voucher, usage = self._run_redemption(
            "redeem_voucher",
            code,
            work,
            on_exhausted=lambda: InsufficientBalanceException(code, debit, "unknown"),
        )
        self.log_operation(
            "redeem_voucher",
            voucher_id=voucher.id,
            amount=str(debit),
            booking_id=booking_id,
        )
        self.publish(self.redeemed_event(voucher, usage))
        return usage

    # Reads

    def _refresh_expiry(self, vouchers: List[GiftVoucher]) -> None:
        """Flip ACTIVE vouchers that are past expiry; commits only when something changed."""
        now = self.now()
        stale = [
            v for v in vouchers if v.status == VoucherStatus.ACTIVE.value and v.is_past_expiry(now)
        ]
        for voucher in stale:
            # The locked re-read refreshes this same identity-mapped instance
            self.expire_if_due(voucher.code)

    def is_expiring_soon(self, voucher: GiftVoucher) -> bool:
        """ACTIVE and expiring within the configured warning window."""
        if voucher.status != VoucherStatus.ACTIVE.value:
            return False
        now = self.now()
        return now <= voucher.expires_at <= now + timedelta(days=settings.voucher_expiring_soon_days)

    @BaseService.measure_operation("get_voucher_by_code")
    def get_voucher_by_code(self, code: str) -> GiftVoucher:
        """Balance lookup; lazily expires the voucher when due."""
        code = normalize_voucher_code(code)
        voucher = self.voucher_repository.get_by_code(code)
        if voucher is None:
            raise NotFoundException("Gift voucher not found", details={"voucher_code": code})
        self._refresh_expiry([voucher])
        return voucher

    @BaseService.measure_operation("list_my_vouchers")
    def list_user_vouchers(self, user_id: str) -> List[GiftVoucher]:
        vouchers = self.voucher_repository.get_user_vouchers(user_id)
        self._refresh_expiry(vouchers)
        return vouchers

    @BaseService.measure_operation("list_vouchers")
    def list_vouchers(
        self, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[GiftVoucher]:
        if status is not None and status not in {s.value for s in VoucherStatus}:
            raise InvalidArgumentException("Unknown voucher status", details={"status": status})
        vouchers = self.voucher_repository.list_vouchers(status=status, skip=skip, limit=limit)
        self._refresh_expiry(vouchers)
        return vouchers

    @BaseService.measure_operation("list_voucher_usages")
    def list_usages(
        self, voucher_id: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[GiftVoucherUsage]:
        return self.usage_repository.list_usages(voucher_id=voucher_id, skip=skip, limit=limit)

    def get_voucher(self, voucher_id: str, actor_id: Optional[str] = None, is_admin: bool = False) -> GiftVoucher:
        voucher = self.voucher_repository.get_by_id(voucher_id)
        if voucher is None:
            raise NotFoundException("Gift voucher not found", details={"voucher_id": voucher_id})
        if not is_admin and voucher.purchased_by_id != actor_id:
            raise ForbiddenException("You do not have access to this gift voucher")
        return voucher

    # Operator actions

    @BaseService.measure_operation("cancel_voucher")
    def cancel_voucher(self, voucher_id: str) -> GiftVoucher:
        """
        ACTIVE -> CANCELLED.

        Raises:
            NotFoundException: Unknown voucher
            InvalidStateException: Voucher is not ACTIVE
        """

        def work() -> GiftVoucher:
            voucher = self.voucher_repository.get_for_update(voucher_id)
            if voucher is None:
                raise NotFoundException("Gift voucher not found", details={"voucher_id": voucher_id})
            if voucher.status != VoucherStatus.ACTIVE.value:
                raise InvalidStateException(
                    f"Only active vouchers can be cancelled (current status {voucher.status})",
                    details={"voucher_id": voucher_id, "status": voucher.status},
                )
            voucher.status = VoucherStatus.CANCELLED.value
            self.voucher_repository.flush()
            return voucher

        voucher = self.run_in_transaction("cancel_voucher", work)
        self.log_operation("cancel_voucher", voucher_id=voucher_id)
        return voucher

    @BaseService.measure_operation("update_voucher_status")
    def update_voucher_status(self, voucher_id: str, status: str) -> GiftVoucher:
        """
        Operator status override.

        CANCELLED follows the normal cancel rules. ACTIVE is a manual
        reactivation: allowed from any other status as long as the voucher
        still has balance and has not passed its expiry date.
        """
        try:
            target = VoucherStatus(status)
        except ValueError:
            raise InvalidArgumentException("Unknown voucher status", details={"status": status}) from None

        if target == VoucherStatus.CANCELLED:
            return self.cancel_voucher(voucher_id)

        def work() -> GiftVoucher:
            voucher = self.voucher_repository.get_for_update(voucher_id)
            if voucher is None:
                raise NotFoundException("Gift voucher not found", details={"voucher_id": voucher_id})
            if target != VoucherStatus.ACTIVE or voucher.status == VoucherStatus.ACTIVE.value:
                raise InvalidTransitionException(voucher.status, target.value)
            if to_money(voucher.remaining_value) <= 0:
                raise InvalidStateException(
                    "A voucher with no remaining balance cannot be reactivated",
                    details={"voucher_id": voucher_id},
                )
            if voucher.is_past_expiry(self.now()):
                raise InvalidStateException(
                    "An expired voucher cannot be reactivated",
                    details={"voucher_id": voucher_id, "expires_at": voucher.expires_at.isoformat()},
                )
            previous = voucher.status
            voucher.status = VoucherStatus.ACTIVE.value
            self.voucher_repository.flush()
            self.logger.warning(
                f"Gift voucher {voucher_id} manually reactivated from {previous}",
                extra={"voucher_id": voucher_id, "previous_status": previous},
            )
            return voucher

        return self.run_in_transaction("update_voucher_status", work)

# backend/spa_engine/services/booking_service.py
"""
Booking Service for the reservation engine.

Handles all booking-related business logic including:
- Creating bookings with a price snapshot and optional voucher funding
- Cancelling bookings
- Operator-driven status transitions
- Booking lookups for customers and operators

Every write re-validates its precondition inside the transaction that
performs it. The availability answer a client saw earlier is never trusted.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.constants import ADMIN_NOTES_MAX_LENGTH, BOOKING_NOTES_MAX_LENGTH
from ..core.exceptions import (
    ForbiddenException,
    InvalidArgumentException,
    InvalidStateException,
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
    VoucherExpiredException,
    VoucherInvalidException,
    VoucherNotFoundException,
)
from ..core.timezone_utils import ensure_utc
from ..events.booking_events import BookingCreated, BookingStatusChanged
from ..events.voucher_events import VoucherRedeemed
from ..models.booking import (
    Booking,
    BookingStatus,
    is_transition_allowed,
)
from ..models.gift_voucher import GiftVoucherUsage
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .availability_service import (
    AvailabilityService,
    BookingCalendarConfig,
    branch_timezone_name,
    resolve_duration,
    validate_requested_start,
)
from .base import BaseService
from .gift_voucher_service import GiftVoucherService, normalize_voucher_code, to_money

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Slot allocation is serialised per BranchService: the BranchService row is
    locked before the overlap re-check, so two writers targeting the same
    bookable unit cannot both pass the check.
    """

    def __init__(
        self,
        db: Session,
        config: Optional[BookingCalendarConfig] = None,
        availability_service: Optional[AvailabilityService] = None,
        gift_voucher_service: Optional[GiftVoucherService] = None,
        **kwargs: Any,
    ):
        super().__init__(db, **kwargs)
        self.config = config or BookingCalendarConfig.from_settings()
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.catalog_repository = RepositoryFactory.create_catalog_repository(db)
        self.user_repository = RepositoryFactory.create_base_repository(db, User)
        self.availability_service = availability_service or AvailabilityService(
            db, config=self.config, event_publisher=self.event_publisher, clock=self.clock
        )
        self.gift_voucher_service = gift_voucher_service or GiftVoucherService(
            db, event_publisher=self.event_publisher, clock=self.clock
        )

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        user_id: str,
        service_id: str,
        branch_id: str,
        scheduled_at: datetime,
        notes: Optional[str] = None,
        voucher_code: Optional[str] = None,
    ) -> Booking:
        """
        Create a PENDING booking, optionally funded by a gift voucher.

        The booking insert and the voucher debit commit together or not at all.

        Args:
            user_id: Customer making the booking
            service_id: Treatment to book
            branch_id: Branch where the treatment is offered
            scheduled_at: Requested start; naive values are branch-local wall time
            notes: Optional customer notes
            voucher_code: Optional gift voucher to apply

        Returns:
            Created booking instance

        Raises:
            NotFoundException: Unknown user, or treatment unavailable at the branch
            ConfigurationException: Treatment has no valid duration
            InvalidArgumentException: Start outside the business calendar
            SlotConflictException: Interval overlaps an active booking
            VoucherInvalidException: Voucher unknown or could not be applied
        """
        if notes is not None and len(notes) > BOOKING_NOTES_MAX_LENGTH:
            raise InvalidArgumentException(
                f"Notes must be at most {BOOKING_NOTES_MAX_LENGTH} characters"
            )
        code = normalize_voucher_code(voucher_code or "") or None

        self.log_operation(
            "create_booking",
            user_id=user_id,
            branch_id=branch_id,
            service_id=service_id,
            scheduled_at=scheduled_at.isoformat(),
            with_voucher=code is not None,
        )

        def work() -> Tuple[Booking, Optional[GiftVoucherUsage], Optional[VoucherRedeemed]]:
            if self.user_repository.get_by_id(user_id, load_relationships=False) is None:
                raise NotFoundException("User not found", details={"user_id": user_id})

            # 1. Resolve the bookable unit and its own duration
            branch_service = self.availability_service.resolve_bookable(branch_id, service_id)
            duration = resolve_duration(branch_service)
            tz_name = branch_timezone_name(branch_service, self.config)

            # 2. Validate the requested start against the business calendar
            start = ensure_utc(scheduled_at, tz_name)
            validate_requested_start(
                start,
                duration_minutes=duration,
                config=self.config,
                now=self.now(),
                tz_name=tz_name,
            )
            end = start + timedelta(minutes=duration)

            # 3. Serialise writers on this BranchService, then re-check overlaps
            self.catalog_repository.lock_branch_service(branch_service.id)
            conflicts = self.repository.find_overlapping(branch_service.id, start, end)
            if conflicts:
                raise SlotConflictException(
                    details={
                        "branch_service_id": branch_service.id,
                        "scheduled_at": start.isoformat(),
                        "conflicting_booking_ids": [b.id for b in conflicts],
                    }
                )

            # 4. Insert with price and duration snapshots
            total_price = to_money(branch_service.price)
            booking = self.repository.create(
                user_id=user_id,
                service_id=branch_service.service_id,
                branch_id=branch_service.branch_id,
                branch_service_id=branch_service.id,
                scheduled_at=start,
                ends_at=end,
                duration_minutes=duration,
                total_price=total_price,
                voucher_amount_applied=Decimal("0.00"),
                status=BookingStatus.PENDING.value,
                notes=notes,
                created_at=self.now(),
            )

            # 5. Debit the voucher in the same transaction
            usage = None
            redeemed = None
            if code is not None:
                usage, redeemed = self._apply_voucher(booking, code)
            return booking, usage, redeemed

        try:
            booking, usage, redeemed = self.run_in_transaction(
                "create_booking",
                work,
                on_exhausted=lambda: SlotConflictException(
                    "This time slot is being booked by someone else, please choose another"
                ),
            )
        except SlotConflictException:
            prometheus_metrics.inc_booking("slot_conflict")
            raise
        except VoucherExpiredException:
            # The booking rolled back with the voucher; persist the lazy expiry on its own
            self.gift_voucher_service.expire_if_due(code or "")
            prometheus_metrics.inc_booking("voucher_invalid")
            prometheus_metrics.inc_voucher_redemption("expired")
            raise
        except VoucherInvalidException as exc:
            prometheus_metrics.inc_booking("voucher_invalid")
            prometheus_metrics.inc_voucher_redemption(exc.reason)
            raise

        prometheus_metrics.inc_booking("created")
        if redeemed is not None:
            prometheus_metrics.inc_voucher_redemption("redeemed")
        self.logger.info(
            f"Booking {booking.id} created for {booking.scheduled_at.isoformat()}",
            extra={"booking_id": booking.id, "voucher_usage_id": usage.id if usage else None},
        )

        self.publish(
            BookingCreated(
                booking_id=booking.id,
                user_id=booking.user_id,
                branch_service_id=booking.branch_service_id,
                scheduled_at=booking.scheduled_at,
                total_price=booking.total_price,
                voucher_amount_applied=booking.voucher_amount_applied,
                created_at=booking.created_at,
            )
        )
        if redeemed is not None:
            self.publish(redeemed)
        return booking

    def _apply_voucher(
        self, booking: Booking, code: str
    ) -> Tuple[GiftVoucherUsage, VoucherRedeemed]:
        """Debit up to the booking total from the voucher; caller holds the transaction."""
        voucher_service = self.gift_voucher_service
        try:
            voucher = voucher_service.lock_usable_voucher(code, service_id=booking.service_id)
        except NotFoundException:
            raise VoucherNotFoundException(code) from None
        amount = min(to_money(voucher.remaining_value), to_money(booking.total_price))
        if amount <= 0:
            raise VoucherInvalidException(
                "This gift voucher cannot be applied to a free treatment",
                details={"voucher_code": code},
            )
        usage = voucher_service.debit_locked(
            voucher, amount, booking_id=booking.id, notes=f"Applied to booking {booking.id}"
        )
        booking.voucher_amount_applied = amount
        self.repository.flush()
        return usage, voucher_service.redeemed_event(voucher, usage)

    # Lifecycle

    def _status_changed_event(
        self, booking: Booking, old_status: str, actor_id: Optional[str]
    ) -> BookingStatusChanged:
        return BookingStatusChanged(
            booking_id=booking.id,
            user_id=booking.user_id,
            service_name=booking.service.title if booking.service else "",
            branch_name=booking.branch.name if booking.branch else "",
            scheduled_at=booking.scheduled_at,
            old_status=old_status,
            new_status=booking.status,
            changed_at=self.now(),
            admin_notes=booking.admin_notes,
            changed_by=actor_id,
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, actor_id: str, is_admin: bool = False
    ) -> Booking:
        """
        Cancel a PENDING or CONFIRMED booking.

        Voucher redemptions already recorded are not reversed.

        Raises:
            NotFoundException: If booking not found
            ForbiddenException: If the actor is neither the owner nor an operator
            InvalidStateException: If the booking is already terminal
        """

        def work() -> Tuple[Booking, BookingStatusChanged]:
            booking = self.repository.get_for_update(booking_id)
            if booking is None:
                raise NotFoundException("Booking not found", details={"booking_id": booking_id})
            if not is_admin and booking.user_id != actor_id:
                raise ForbiddenException("You don't have permission to cancel this booking")
            if not booking.is_cancellable:
                raise InvalidStateException(
                    f"Booking cannot be cancelled - current status: {booking.status}",
                    details={"booking_id": booking_id, "status": booking.status},
                )
            old_status = booking.status
            booking.transition_to(BookingStatus.CANCELLED.value, actor_id=actor_id, at=self.now())
            self.repository.flush()
            return booking, self._status_changed_event(booking, old_status, actor_id)

        booking, event = self.run_in_transaction("cancel_booking", work)
        prometheus_metrics.inc_status_transition(event.old_status, event.new_status)
        self.log_operation("cancel_booking", booking_id=booking_id, actor_id=actor_id)
        self.publish(event)
        return booking

    @BaseService.measure_operation("update_booking_status")
    def update_status(
        self,
        booking_id: str,
        new_status: str,
        admin_notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Booking:
        """
        Operator status change following the booking state machine.

        Raises:
            InvalidArgumentException: Unknown status value
            NotFoundException: If booking not found
            InvalidTransitionException: Transition not in the allowed table
        """
        try:
            requested = BookingStatus(new_status).value
        except ValueError:
            raise InvalidArgumentException(
                "Unknown booking status", details={"status": new_status}
            ) from None
        if admin_notes is not None and len(admin_notes) > ADMIN_NOTES_MAX_LENGTH:
            raise InvalidArgumentException(
                f"Admin notes must be at most {ADMIN_NOTES_MAX_LENGTH} characters"
            )

        def work() -> Tuple[Booking, BookingStatusChanged]:
            booking = self.repository.get_for_update(booking_id)
            if booking is None:
                raise NotFoundException("Booking not found", details={"booking_id": booking_id})
            old_status = booking.status
            if not is_transition_allowed(old_status, requested):
                raise InvalidTransitionException(old_status, requested)
            if admin_notes is not None:
                booking.admin_notes = admin_notes
            booking.transition_to(requested, actor_id=actor_id, at=self.now())
            self.repository.flush()
            return booking, self._status_changed_event(booking, old_status, actor_id)

        booking, event = self.run_in_transaction("update_booking_status", work)
        prometheus_metrics.inc_status_transition(event.old_status, event.new_status)
        self.log_operation(
            "update_booking_status",
            booking_id=booking_id,
            old_status=event.old_status,
            new_status=event.new_status,
        )
        self.publish(event)
        return booking

    # Reads

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str, actor_id: str, is_admin: bool = False) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        if not is_admin and booking.user_id != actor_id:
            raise ForbiddenException("You don't have permission to view this booking")
        return booking

    @BaseService.measure_operation("list_my_bookings")
    def list_user_bookings(self, user_id: str, status: Optional[str] = None) -> List[Booking]:
        return self.repository.get_user_bookings(user_id, status=self._checked_status(status))

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        status: Optional[str] = None,
        branch_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Booking]:
        return self.repository.list_bookings(
            status=self._checked_status(status), branch_id=branch_id, skip=skip, limit=limit
        )

    @staticmethod
    def _checked_status(status: Optional[str]) -> Optional[str]:
        if status is None:
            return None
        try:
            return BookingStatus(status).value
        except ValueError:
            raise InvalidArgumentException(
                "Unknown booking status", details={"status": status}
            ) from None

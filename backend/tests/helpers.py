"""Seed factories, a frozen clock and a recording dispatcher for tests."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from spa_engine.core.enums import CatalogStatus, RoleName
from spa_engine.core.timezone_utils import local_datetime
from spa_engine.models.booking import Booking
from spa_engine.models.catalog import Branch, BranchService, Service
from spa_engine.models.gift_voucher import GiftVoucherTemplate, VoucherType
from spa_engine.models.user import User

TZ_NAME = "Africa/Nairobi"  # UTC+3, no DST
BOOKING_DAY = date(2025, 6, 2)

# Day before BOOKING_DAY, 09:00 in Nairobi
DEFAULT_NOW = datetime(2025, 6, 1, 6, 0, tzinfo=timezone.utc)


def at_local(day: date, hour: int, minute: int = 0) -> datetime:
    """Branch-local wall time as an aware UTC instant."""
    return local_datetime(day, time(hour, minute), TZ_NAME)


class FrozenClock:
    """Injectable clock; call it for the current instant, ``advance`` to move it."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **delta: Any) -> None:
        self.current = self.current + timedelta(**delta)


class RecordingDispatcher:
    """Captures every notification the publisher fans out."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_type]


@dataclass
class Catalog:
    customer: User
    other_customer: User
    admin: User
    service: Service
    branch: Branch
    branch_service: BranchService


def create_user(db: Session, role: str = RoleName.USER.value, name: str = "Test Customer") -> User:
    user = User(name=name, role=role)
    db.add(user)
    db.commit()
    return user


def create_service(
    db: Session,
    title: str = "Swedish Massage",
    duration: Optional[int] = 60,
    price: str = "100.00",
    status: str = CatalogStatus.ACTIVE.value,
) -> Service:
    service = Service(title=title, duration=duration, price=Decimal(price), status=status)
    db.add(service)
    db.commit()
    return service


def create_branch(
    db: Session, name: str = "Westlands", is_active: bool = True, timezone_name: Optional[str] = TZ_NAME
) -> Branch:
    branch = Branch(name=name, is_active=is_active, timezone=timezone_name)
    db.add(branch)
    db.commit()
    return branch


def create_branch_service(
    db: Session, branch: Branch, service: Service, price: str = "100.00", is_available: bool = True
) -> BranchService:
    offering = BranchService(
        branch_id=branch.id,
        service_id=service.id,
        price=Decimal(price),
        is_available=is_available,
    )
    db.add(offering)
    db.commit()
    return offering


def create_template(
    db: Session,
    *,
    name: str = "Spa Day Gift",
    type: str = VoucherType.FIXED_AMOUNT.value,
    value: str = "100.00",
    price: str = "90.00",
    service_id: Optional[str] = None,
    validity_days: int = 365,
    max_usage_count: Optional[int] = None,
    is_active: bool = True,
) -> GiftVoucherTemplate:
    template = GiftVoucherTemplate(
        name=name,
        type=type,
        value=Decimal(value),
        price=Decimal(price),
        service_id=service_id,
        validity_days=validity_days,
        max_usage_count=max_usage_count,
        current_usage_count=0,
        is_active=is_active,
    )
    db.add(template)
    db.commit()
    return template


def seed_catalog(db: Session) -> Catalog:
    service = create_service(db)
    branch = create_branch(db)
    return Catalog(
        customer=create_user(db),
        other_customer=create_user(db, name="Another Customer"),
        admin=create_user(db, role=RoleName.ADMIN.value, name="Front Desk"),
        service=service,
        branch=branch,
        branch_service=create_branch_service(db, branch, service),
    )


def insert_booking(
    db: Session,
    catalog: Catalog,
    start: datetime,
    duration: int = 60,
    status: str = "CONFIRMED",
    user: Optional[User] = None,
    price: str = "100.00",
) -> Booking:
    """Write a booking row directly, bypassing the booking service checks."""
    booking = Booking(
        user_id=(user or catalog.customer).id,
        service_id=catalog.service.id,
        branch_id=catalog.branch.id,
        branch_service_id=catalog.branch_service.id,
        scheduled_at=start,
        duration_minutes=duration,
        total_price=Decimal(price),
        status=status,
    )
    db.add(booking)
    db.commit()
    return booking


def auth_headers(user: User, role: Optional[str] = None) -> Dict[str, str]:
    """Identity headers the upstream gateway would forward."""
    return {"X-User-Id": user.id, "X-User-Role": role or user.role}

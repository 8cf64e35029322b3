# backend/spa_engine/services/availability_service.py
"""
Availability Service for the reservation engine.

Turns one BranchService and one local calendar day into the list of bookable
start times. Slots are generated fresh from the booking table on every call, so
the calculator can never drift from the ledger. It is read-only and takes no
locks; its answer is advisory and the booking write path re-checks it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import pytz
from sqlalchemy.orm import Session

from ..core.config import Settings, settings
from ..core.exceptions import (
    ConfigurationException,
    InvalidArgumentException,
    NotFoundException,
)
from ..core.timezone_utils import local_day_bounds, local_hour, local_today, to_local
from ..models.catalog import BranchService
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class BookingCalendarConfig:
    """Business-calendar constants used by slot generation and booking validation."""

    opening_hour: int = 9
    closing_hour: int = 21
    slot_interval_minutes: int = 30
    min_lead_time_minutes: int = 120
    booking_lookahead_days: int = 30
    timezone: str = "Africa/Nairobi"

    def __post_init__(self) -> None:
        if not 0 <= self.opening_hour < self.closing_hour <= 24:
            raise ValueError("opening_hour must be before closing_hour (closing_hour <= 24)")
        if self.slot_interval_minutes <= 0:
            raise ValueError("slot_interval_minutes must be positive")
        if self.min_lead_time_minutes < 0:
            raise ValueError("min_lead_time_minutes must not be negative")

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "BookingCalendarConfig":
        s = source or settings
        return cls(
            opening_hour=s.opening_hour,
            closing_hour=s.closing_hour,
            slot_interval_minutes=s.slot_interval_minutes,
            min_lead_time_minutes=s.min_lead_time_minutes,
            booking_lookahead_days=s.booking_lookahead_days,
            timezone=s.business_timezone,
        )


@dataclass
class AvailabilityResult:
    branch_service_id: str
    date: date
    service_duration: int
    slots: List[str] = field(default_factory=list)

    @property
    def is_fully_booked(self) -> bool:
        return not self.slots


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open ``[start, end)`` intersection; touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def generate_slot_starts(
    *,
    open_at: datetime,
    close_at: datetime,
    duration_minutes: int,
    interval_minutes: int,
    lead_threshold: datetime,
    busy: Iterable[Interval] = (),
) -> List[datetime]:
    """
    Walk the slot grid from ``open_at`` and keep every start that can be booked.

    A start is kept when the whole treatment fits before ``close_at``, it is not
    earlier than ``lead_threshold`` and ``[start, start + duration)`` does not
    intersect any busy interval.
    """
    if duration_minutes <= 0:
        raise ConfigurationException(
            "Service duration must be a positive number of minutes",
            details={"duration": duration_minutes},
        )
    if interval_minutes <= 0:
        raise ConfigurationException(
            "Slot interval must be a positive number of minutes",
            details={"slot_interval_minutes": interval_minutes},
        )

    busy_intervals: Sequence[Interval] = sorted(busy)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=interval_minutes)

    starts: List[datetime] = []
    cursor = open_at
    while cursor + duration <= close_at:
        end = cursor + duration
        if cursor >= lead_threshold and not any(
            intervals_overlap(cursor, end, b_start, b_end) for b_start, b_end in busy_intervals
        ):
            starts.append(cursor)
        cursor += step
    return starts


def parse_day(value: Union[str, date]) -> date:
    """Parse a ``YYYY-MM-DD`` calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidArgumentException(
            "Date must be a calendar day in YYYY-MM-DD format", details={"date": str(value)}
        ) from None


def resolve_duration(branch_service: BranchService) -> int:
    """Effective appointment length for a BranchService."""
    duration = branch_service.service.duration if branch_service.service else None
    if duration is None or int(duration) <= 0:
        raise ConfigurationException(
            "Treatment has no valid duration configured",
            details={"service_id": branch_service.service_id, "duration": duration},
        )
    return int(duration)


def branch_timezone_name(branch_service: BranchService, config: BookingCalendarConfig) -> str:
    branch = branch_service.branch
    return (branch.timezone if branch is not None and branch.timezone else None) or config.timezone


def validate_requested_start(
    start: datetime,
    *,
    duration_minutes: int,
    config: BookingCalendarConfig,
    now: datetime,
    tz_name: str,
) -> None:
    """
    Check a requested start against the business calendar.

    Raises:
        InvalidArgumentException: If the start is outside opening hours, off the
            slot grid, inside the lead time or beyond the booking horizon
    """
    local_start = to_local(start, tz_name)
    day = local_start.date()
    open_at = local_hour(day, config.opening_hour, tz_name)
    close_at = local_hour(day, config.closing_hour, tz_name)
    details = {"scheduled_at": start.isoformat()}

    if start < open_at or start + timedelta(minutes=duration_minutes) > close_at:
        raise InvalidArgumentException(
            "Requested time is outside business hours", details=details
        )
    offset = start - open_at
    if offset % timedelta(minutes=config.slot_interval_minutes) != timedelta(0):
        raise InvalidArgumentException(
            f"Bookings start on {config.slot_interval_minutes}-minute boundaries",
            details=details,
        )
    if start < now + timedelta(minutes=config.min_lead_time_minutes):
        raise InvalidArgumentException(
            f"Bookings must be made at least {config.min_lead_time_minutes} minutes in advance",
            details=details,
        )
    if day > local_today(tz_name, now) + timedelta(days=config.booking_lookahead_days):
        raise InvalidArgumentException(
            f"Bookings can be made at most {config.booking_lookahead_days} days ahead",
            details=details,
        )


class AvailabilityService(BaseService):
    """Read-only slot calculator over the booking ledger."""

    def __init__(
        self,
        db: Session,
        config: Optional[BookingCalendarConfig] = None,
        **kwargs,
    ):
        super().__init__(db, **kwargs)
        self.config = config or BookingCalendarConfig.from_settings()
        self.catalog_repository = RepositoryFactory.create_catalog_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def resolve_bookable(self, branch_id: str, service_id: str) -> BranchService:
        """
        Resolve an available BranchService whose service and branch are live.

        Raises:
            NotFoundException: If the treatment is not offered at this branch
        """
        branch_service = self.catalog_repository.get_branch_service(branch_id, service_id)
        if branch_service is None or not branch_service.is_bookable:
            raise NotFoundException(
                "Treatment unavailable at this branch",
                details={"branch_id": branch_id, "service_id": service_id},
            )
        return branch_service

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self, branch_id: str, service_id: str, day: Union[str, date]
    ) -> AvailabilityResult:
        """
        Bookable start times for one BranchService on one local calendar day.

        Raises:
            InvalidArgumentException: Malformed day
            NotFoundException: Treatment not offered at the branch
            ConfigurationException: Treatment has no positive duration
        """
        requested_day = parse_day(day)
        branch_service = self.resolve_bookable(branch_id, service_id)
        duration = resolve_duration(branch_service)
        tz_name = branch_timezone_name(branch_service, self.config)
        now = self.now()

        result = AvailabilityResult(
            branch_service_id=branch_service.id,
            date=requested_day,
            service_duration=duration,
        )

        horizon = local_today(tz_name, now) + timedelta(days=self.config.booking_lookahead_days)
        if requested_day > horizon:
            self.logger.debug(f"Requested day {requested_day} is beyond the booking horizon {horizon}")
            return result

        day_start, day_end = local_day_bounds(requested_day, tz_name)
        bookings = self.booking_repository.get_active_bookings_between(
            branch_service.id, day_start, day_end
        )
        starts = generate_slot_starts(
            open_at=local_hour(requested_day, self.config.opening_hour, tz_name),
            close_at=local_hour(requested_day, self.config.closing_hour, tz_name),
            duration_minutes=duration,
            interval_minutes=self.config.slot_interval_minutes,
            lead_threshold=now + timedelta(minutes=self.config.min_lead_time_minutes),
            busy=[(b.scheduled_at, b.ends_at) for b in bookings],
        )

        tz = pytz.timezone(tz_name)
        result.slots = [start.astimezone(tz).strftime("%H:%M") for start in starts]
        self.log_operation(
            "get_available_slots",
            branch_service_id=branch_service.id,
            date=requested_day.isoformat(),
            slot_count=len(result.slots),
        )
        return result

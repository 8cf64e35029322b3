"""Requested-start checks and calendar configuration."""

from datetime import date, datetime, timedelta

import pytest

from spa_engine.core.exceptions import InvalidArgumentException
from spa_engine.core.timezone_utils import ensure_utc, local_day_bounds, to_local
from spa_engine.services.availability_service import (
    BookingCalendarConfig,
    parse_day,
    validate_requested_start,
)

from ..helpers import BOOKING_DAY, TZ_NAME, at_local

CONFIG = BookingCalendarConfig(timezone=TZ_NAME)
NOW = at_local(BOOKING_DAY - timedelta(days=1), 9)


def _validate(start, duration=60, now=NOW):
    validate_requested_start(start, duration_minutes=duration, config=CONFIG, now=now, tz_name=TZ_NAME)


class TestValidateRequestedStart:
    def test_accepts_grid_aligned_start_inside_hours(self) -> None:
        _validate(at_local(BOOKING_DAY, 10, 30))

    def test_accepts_last_slot_finishing_at_closing(self) -> None:
        _validate(at_local(BOOKING_DAY, 20))

    @pytest.mark.parametrize(
        "hour, minute",
        [(8, 30), (20, 30), (21, 0)],
    )
    def test_rejects_outside_business_hours(self, hour: int, minute: int) -> None:
        with pytest.raises(InvalidArgumentException, match="business hours"):
            _validate(at_local(BOOKING_DAY, hour, minute))

    def test_rejects_off_grid_start(self) -> None:
        with pytest.raises(InvalidArgumentException, match="30-minute"):
            _validate(at_local(BOOKING_DAY, 10, 15))

    def test_rejects_inside_lead_time(self) -> None:
        now = at_local(BOOKING_DAY, 10, 5)

        with pytest.raises(InvalidArgumentException, match="in advance"):
            _validate(at_local(BOOKING_DAY, 12), now=now)
        _validate(at_local(BOOKING_DAY, 12, 30), now=now)

    def test_rejects_beyond_lookahead(self) -> None:
        too_far = NOW.date() + timedelta(days=CONFIG.booking_lookahead_days + 1)

        with pytest.raises(InvalidArgumentException, match="days ahead"):
            _validate(at_local(too_far, 10))

    def test_last_day_of_horizon_is_allowed(self) -> None:
        last_day = to_local(NOW, TZ_NAME).date() + timedelta(days=CONFIG.booking_lookahead_days)

        _validate(at_local(last_day, 10))


class TestParseDay:
    def test_parses_iso_day(self) -> None:
        assert parse_day("2025-06-02") == date(2025, 6, 2)

    def test_passes_dates_through(self) -> None:
        assert parse_day(date(2025, 6, 2)) == date(2025, 6, 2)

    @pytest.mark.parametrize("value", ["02/06/2025", "2025-13-01", "tomorrow", ""])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(InvalidArgumentException):
            parse_day(value)


class TestBookingCalendarConfig:
    def test_defaults(self) -> None:
        config = BookingCalendarConfig()

        assert (config.opening_hour, config.closing_hour) == (9, 21)
        assert config.slot_interval_minutes == 30
        assert config.min_lead_time_minutes == 120

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"opening_hour": 21, "closing_hour": 9},
            {"closing_hour": 25},
            {"slot_interval_minutes": 0},
            {"min_lead_time_minutes": -1},
        ],
    )
    def test_rejects_invalid_combinations(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            BookingCalendarConfig(**kwargs)


class TestTimezoneHelpers:
    def test_naive_values_are_branch_local(self) -> None:
        assert ensure_utc(datetime(2025, 6, 2, 10, 0), TZ_NAME) == at_local(BOOKING_DAY, 10)

    def test_local_day_bounds_span_one_local_day(self) -> None:
        start, end = local_day_bounds(BOOKING_DAY, TZ_NAME)

        assert end - start == timedelta(days=1)
        assert start.hour == 21  # midnight in UTC+3

"""Pure slot generator: grid walk, lead time, closing boundary and busy intervals."""

from datetime import timedelta

import pytest

from spa_engine.core.exceptions import ConfigurationException
from spa_engine.services.availability_service import generate_slot_starts, intervals_overlap

from ..helpers import BOOKING_DAY, at_local


def _local_times(starts):
    return [(s + timedelta(hours=3)).strftime("%H:%M") for s in starts]


def _slots(duration=60, lead_threshold=None, busy=(), interval=30):
    return generate_slot_starts(
        open_at=at_local(BOOKING_DAY, 9),
        close_at=at_local(BOOKING_DAY, 21),
        duration_minutes=duration,
        interval_minutes=interval,
        lead_threshold=lead_threshold or at_local(BOOKING_DAY, 0),
        busy=busy,
    )


class TestGridWalk:
    def test_full_open_day_for_sixty_minute_treatment(self) -> None:
        starts = _slots()

        assert _local_times(starts)[0] == "09:00"
        assert _local_times(starts)[-1] == "20:00"
        assert len(starts) == 23

    def test_last_slot_must_finish_by_closing(self) -> None:
        starts = _local_times(_slots(duration=90))

        assert starts[-1] == "19:30"
        assert "20:00" not in starts

    def test_treatment_longer_than_the_day_yields_nothing(self) -> None:
        assert _slots(duration=13 * 60) == []

    def test_custom_interval(self) -> None:
        starts = _local_times(_slots(interval=60))

        assert starts[:3] == ["09:00", "10:00", "11:00"]
        assert "09:30" not in starts


class TestLeadTime:
    def test_earliest_slot_respects_two_hour_lead(self) -> None:
        # 10:05 + 120 minutes = 12:05, first grid point at or after it is 12:30
        now = at_local(BOOKING_DAY, 10, 5)

        starts = _local_times(_slots(lead_threshold=now + timedelta(minutes=120)))

        assert starts[0] == "12:30"
        assert "12:00" not in starts

    def test_slot_exactly_on_threshold_is_offered(self) -> None:
        starts = _local_times(_slots(lead_threshold=at_local(BOOKING_DAY, 12)))

        assert starts[0] == "12:00"

    def test_lead_past_closing_leaves_day_empty(self) -> None:
        assert _slots(lead_threshold=at_local(BOOKING_DAY, 20, 1)) == []


class TestBusyIntervals:
    def test_adjacent_slots_are_not_conflicts(self) -> None:
        busy = [(at_local(BOOKING_DAY, 14), at_local(BOOKING_DAY, 15))]

        starts = _local_times(_slots(busy=busy))

        assert "13:00" in starts
        assert "15:00" in starts
        assert "13:30" not in starts
        assert "14:00" not in starts
        assert "14:30" not in starts

    def test_busy_interval_uses_its_own_length(self) -> None:
        # A 30-minute booking blocks fewer starts than the 60-minute treatment would
        busy = [(at_local(BOOKING_DAY, 10), at_local(BOOKING_DAY, 10, 30))]

        starts = _local_times(_slots(busy=busy))

        assert "09:00" in starts
        assert "09:30" not in starts
        assert "10:00" not in starts
        assert "10:30" in starts

    def test_unsorted_busy_intervals(self) -> None:
        busy = [
            (at_local(BOOKING_DAY, 18), at_local(BOOKING_DAY, 21)),
            (at_local(BOOKING_DAY, 9), at_local(BOOKING_DAY, 12)),
        ]

        starts = _local_times(_slots(busy=busy))

        assert starts[0] == "12:00"
        assert starts[-1] == "17:00"


class TestValidation:
    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration_is_configuration_error(self, duration: int) -> None:
        with pytest.raises(ConfigurationException) as exc_info:
            _slots(duration=duration)

        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_non_positive_interval_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationException):
            _slots(interval=0)


def test_intervals_overlap_is_half_open() -> None:
    a = at_local(BOOKING_DAY, 14)
    b = at_local(BOOKING_DAY, 15)
    c = at_local(BOOKING_DAY, 16)

    assert intervals_overlap(a, b, a, b)
    assert not intervals_overlap(a, b, b, c)
    assert not intervals_overlap(b, c, a, b)
    assert intervals_overlap(a, c, b, c)

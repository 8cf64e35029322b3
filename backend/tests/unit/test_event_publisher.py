"""Event fan-out to notification dispatchers."""

from datetime import datetime, timezone
from decimal import Decimal
import logging

import pytest

from spa_engine.events.booking_events import BookingCreated
from spa_engine.events.publisher import EventPublisher, serialize_payload

from ..helpers import RecordingDispatcher


class ExplodingDispatcher:
    def notify(self, event_type, payload) -> None:
        raise RuntimeError("smtp unreachable")


def _event() -> BookingCreated:
    return BookingCreated(
        booking_id="b1",
        user_id="u1",
        branch_service_id="bs1",
        scheduled_at=datetime(2025, 6, 2, 7, 0, tzinfo=timezone.utc),
        total_price=Decimal("100.00"),
        voucher_amount_applied=Decimal("0.00"),
        created_at=datetime(2025, 6, 1, 6, 0, tzinfo=timezone.utc),
    )


def test_payload_is_json_friendly() -> None:
    payload = serialize_payload(_event().to_dict())

    assert payload["scheduled_at"] == "2025-06-02T07:00:00+00:00"
    assert payload["total_price"] == "100.00"
    assert payload["booking_id"] == "b1"


def test_publish_reaches_every_dispatcher() -> None:
    first, second = RecordingDispatcher(), RecordingDispatcher()
    publisher = EventPublisher([first])
    publisher.register(second)

    publisher.publish(_event())

    assert [name for name, _ in first.events] == ["BookingCreated"]
    assert [name for name, _ in second.events] == ["BookingCreated"]


def test_failing_dispatcher_is_logged_and_does_not_stop_others(caplog: pytest.LogCaptureFixture) -> None:
    recorder = RecordingDispatcher()
    publisher = EventPublisher([ExplodingDispatcher(), recorder])

    with caplog.at_level(logging.ERROR, logger="spa_engine.events.publisher"):
        publisher.publish(_event())

    assert len(recorder.events) == 1
    assert "ExplodingDispatcher failed for BookingCreated" in caplog.text


def test_default_publisher_logs_events(caplog: pytest.LogCaptureFixture) -> None:
    publisher = EventPublisher()

    with caplog.at_level(logging.INFO, logger="spa_engine.events.publisher"):
        publisher.publish(_event())

    assert "Notification event BookingCreated" in caplog.text

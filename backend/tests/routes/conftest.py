# backend/tests/routes/conftest.py
"""HTTP-level fixtures: the app wired to the test session and frozen-clock services."""

from typing import Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from spa_engine.api.dependencies import (
    get_availability_service,
    get_booking_service,
    get_db,
    get_gift_voucher_service,
)
from spa_engine.main import create_app
from spa_engine.services.availability_service import AvailabilityService
from spa_engine.services.booking_service import BookingService
from spa_engine.services.gift_voucher_service import GiftVoucherService


@pytest.fixture
def client(
    db: Session,
    availability_service: AvailabilityService,
    booking_service: BookingService,
    voucher_service: GiftVoucherService,
) -> Iterator[TestClient]:
    app = create_app()

    def override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_availability_service] = lambda: availability_service
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_gift_voucher_service] = lambda: voucher_service

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


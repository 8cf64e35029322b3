# backend/tests/conftest.py
"""
Shared fixtures for the reservation engine test suite.

Every test gets its own in-memory SQLite database (StaticPool, so all
sessions share the one connection), a frozen clock and seeded catalog.
"""

import os

# Settings are read at import time; configure the test environment first
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from spa_engine.database import create_db_engine, create_session_factory, init_db
from spa_engine.events.publisher import EventPublisher
from spa_engine.services.availability_service import AvailabilityService, BookingCalendarConfig
from spa_engine.services.booking_service import BookingService
from spa_engine.services.gift_voucher_service import GiftVoucherService

from .helpers import TZ_NAME, Catalog, FrozenClock, RecordingDispatcher, seed_catalog


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def catalog(db: Session) -> Catalog:
    return seed_catalog(db)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def calendar_config() -> BookingCalendarConfig:
    return BookingCalendarConfig(timezone=TZ_NAME)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def publisher(dispatcher: RecordingDispatcher) -> EventPublisher:
    return EventPublisher([dispatcher])


@pytest.fixture
def availability_service(
    db: Session, calendar_config: BookingCalendarConfig, clock: FrozenClock, publisher: EventPublisher
) -> AvailabilityService:
    return AvailabilityService(db, config=calendar_config, event_publisher=publisher, clock=clock)


@pytest.fixture
def voucher_service(db: Session, clock: FrozenClock, publisher: EventPublisher) -> GiftVoucherService:
    return GiftVoucherService(db, event_publisher=publisher, clock=clock)


@pytest.fixture
def booking_service(
    db: Session, calendar_config: BookingCalendarConfig, clock: FrozenClock, publisher: EventPublisher
) -> BookingService:
    return BookingService(db, config=calendar_config, event_publisher=publisher, clock=clock)

# backend/tests/integration/test_concurrency.py
"""
Concurrent writers against a shared file-backed SQLite database.

Each worker owns its own session, as request handlers do in production.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path
import threading
from typing import Callable, Iterator, List

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from spa_engine.core.exceptions import InsufficientBalanceException, SlotConflictException, SoldOutException
from spa_engine.database import create_db_engine, create_session_factory, init_db
from spa_engine.events.publisher import EventPublisher
from spa_engine.models.booking import Booking
from spa_engine.models.gift_voucher import GiftVoucher, GiftVoucherTemplate
from spa_engine.repositories.gift_voucher_repository import GiftVoucherUsageRepository
from spa_engine.services.availability_service import AvailabilityService, BookingCalendarConfig
from spa_engine.services.booking_service import BookingService
from spa_engine.services.gift_voucher_service import GiftVoucherService

from ..helpers import BOOKING_DAY, TZ_NAME, Catalog, FrozenClock, at_local, create_template, seed_catalog

WORKERS = 8


@pytest.fixture
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'spa.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine: Engine) -> sessionmaker:
    return create_session_factory(file_engine)


@pytest.fixture
def seeded(session_factory: sessionmaker) -> Catalog:
    session = session_factory()
    try:
        return seed_catalog(session)
    finally:
        session.close()


def run_concurrently(
    session_factory: sessionmaker, count: int, action: Callable[[Session, int], object]
) -> List[str]:
    """Start ``count`` workers together; each returns "ok" or its exception class name."""
    barrier = threading.Barrier(count)

    def worker(index: int) -> str:
        session = session_factory()
        try:
            barrier.wait()
            action(session, index)
            return "ok"
        except Exception as exc:  # collected for assertions
            return type(exc).__name__
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


def _booking_service(session: Session, clock: FrozenClock) -> BookingService:
    return BookingService(
        session,
        config=BookingCalendarConfig(timezone=TZ_NAME),
        event_publisher=EventPublisher([]),
        clock=clock,
    )


def test_same_slot_is_booked_exactly_once(session_factory: sessionmaker, seeded: Catalog) -> None:
    clock = FrozenClock()
    start = at_local(BOOKING_DAY, 14)

    def book(session: Session, _: int) -> object:
        return _booking_service(session, clock).create_booking(
            seeded.customer.id, seeded.service.id, seeded.branch.id, start
        )

    outcomes = run_concurrently(session_factory, WORKERS, book)

    assert outcomes.count("ok") == 1
    assert outcomes.count(SlotConflictException.__name__) == WORKERS - 1

    session = session_factory()
    try:
        assert session.query(Booking).count() == 1
    finally:
        session.close()


def test_overlapping_starts_are_booked_exactly_once(session_factory: sessionmaker, seeded: Catalog) -> None:
    clock = FrozenClock()
    starts = [at_local(BOOKING_DAY, 14), at_local(BOOKING_DAY, 14, 30)]

    def book(session: Session, index: int) -> object:
        return _booking_service(session, clock).create_booking(
            seeded.customer.id, seeded.service.id, seeded.branch.id, starts[index % 2]
        )

    outcomes = run_concurrently(session_factory, WORKERS, book)

    assert outcomes.count("ok") == 1
    assert outcomes.count(SlotConflictException.__name__) == WORKERS - 1

    session = session_factory()
    try:
        assert session.query(Booking).count() == 1
    finally:
        session.close()


def test_open_reader_does_not_block_a_booking(tmp_path: Path) -> None:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'reader.db'}", connect_args={"timeout": 0.2})
    init_db(engine)
    factory = create_session_factory(engine)
    clock = FrozenClock()
    setup = factory()
    try:
        catalog = seed_catalog(setup)
    finally:
        setup.close()

    reader = factory()
    writer = factory()
    try:
        availability = AvailabilityService(
            reader,
            config=BookingCalendarConfig(timezone=TZ_NAME),
            event_publisher=EventPublisher([]),
            clock=clock,
        )
        before = availability.get_available_slots(catalog.branch.id, catalog.service.id, BOOKING_DAY)
        assert "14:00" in before.slots
        assert reader.in_transaction()

        booking = _booking_service(writer, clock).create_booking(
            catalog.customer.id, catalog.service.id, catalog.branch.id, at_local(BOOKING_DAY, 14)
        )

        assert booking.id is not None
        reader.rollback()
        after = availability.get_available_slots(catalog.branch.id, catalog.service.id, BOOKING_DAY)
        assert "14:00" not in after.slots
    finally:
        reader.close()
        writer.close()
        engine.dispose()



def test_concurrent_redemptions_conserve_balance(session_factory: sessionmaker, seeded: Catalog) -> None:
    clock = FrozenClock()
    setup = session_factory()
    try:
        template = create_template(setup, value="100.00")
        voucher = GiftVoucherService(setup, event_publisher=EventPublisher([]), clock=clock).purchase_voucher(
            template.id, seeded.customer.id
        )
        code, voucher_id = voucher.code, voucher.id
    finally:
        setup.close()

    def redeem(session: Session, _: int) -> object:
        service = GiftVoucherService(session, event_publisher=EventPublisher([]), clock=clock)
        return service.redeem_voucher(code, "15.00")

    outcomes = run_concurrently(session_factory, WORKERS, redeem)

    assert outcomes.count("ok") == 6
    assert outcomes.count(InsufficientBalanceException.__name__) == WORKERS - 6

    session = session_factory()
    try:
        stored = session.get(GiftVoucher, voucher_id)
        used = GiftVoucherUsageRepository(session).total_used(voucher_id)
        assert stored.remaining_value == Decimal("10.00")
        assert stored.amount_used == used == Decimal("90.00")
    finally:
        session.close()


def test_issuance_cap_holds_under_contention(session_factory: sessionmaker, seeded: Catalog) -> None:
    clock = FrozenClock()
    setup = session_factory()
    try:
        template_id = create_template(setup, max_usage_count=3).id
    finally:
        setup.close()

    def purchase(session: Session, _: int) -> object:
        service = GiftVoucherService(session, event_publisher=EventPublisher([]), clock=clock)
        return service.purchase_voucher(template_id, seeded.customer.id)

    outcomes = run_concurrently(session_factory, WORKERS, purchase)

    assert outcomes.count("ok") == 3
    assert outcomes.count(SoldOutException.__name__) == WORKERS - 3

    session = session_factory()
    try:
        assert session.get(GiftVoucherTemplate, template_id).current_usage_count == 3
        assert session.query(GiftVoucher).filter_by(template_id=template_id).count() == 3
    finally:
        session.close()

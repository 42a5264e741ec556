# ================================
# DOUBLE BOOKING TESTS (tests/test_concurrency.py)
# ================================

from datetime import date
from decimal import Decimal
import threading
import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.database import build_engine
from app.core.exceptions import DatesOccupiedError
from app.models import Base, Unit, PricingRule, Booking, BookingNight
from app.models.enums import UnitStatus
from app.schemas.booking import BookingCreate
from app.services.availability_service import AvailabilityService, AvailabilityResult
from app.services.booking_service import BookingService


@pytest.fixture
def file_session_factory(tmp_path):
    """File database so every thread gets its own connection, writers serialize on BEGIN IMMEDIATE"""
    engine = build_engine(f"sqlite:///{tmp_path / 'bookings.db'}", sqlite_begin="BEGIN IMMEDIATE")
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def create_unit(session) -> uuid.UUID:
    unit = Unit(owner_id=uuid.uuid4(), title="Studio", status=UnitStatus.PUBLISHED, max_guests=2)
    session.add(unit)
    session.flush()
    session.add(PricingRule(unit_id=unit.id, base_price=Decimal("2500"), service_fee_percent=Decimal("0")))
    session.commit()
    return unit.id


def test_concurrent_overlapping_requests(file_session_factory):
    """Two guests race for overlapping stays, exactly one wins."""
    with file_session_factory() as session:
        unit_id = create_unit(session)

    requests = [
        BookingCreate(unit_id=unit_id, check_in=date(2030, 7, 1), check_out=date(2030, 7, 5), guests=2),
        BookingCreate(unit_id=unit_id, check_in=date(2030, 7, 3), check_out=date(2030, 7, 8), guests=1),
    ]
    barrier = threading.Barrier(len(requests))
    outcomes = []
    lock = threading.Lock()

    def attempt(data):
        session = file_session_factory()
        try:
            barrier.wait()
            booking = BookingService.create_booking(session, data, uuid.uuid4())
            result = ("created", booking.id)
        except DatesOccupiedError as e:
            result = ("occupied", e.conflicting_dates)
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(data,)) for data in requests]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(kind for kind, _ in outcomes) == ["created", "occupied"]
    conflicting = next(value for kind, value in outcomes if kind == "occupied")
    assert conflicting == [date(2030, 7, 3), date(2030, 7, 4)]

    with file_session_factory() as session:
        assert session.query(Booking).count() == 1


def test_night_index_rejects_stale_availability_check(db, unit, make_booking, monkeypatch):
    """An insert that slipped past the overlap query still fails on the booked nights."""
    make_booking(check_in=date(2030, 3, 2), check_out=date(2030, 3, 5))

    original = AvailabilityService.find_conflicts
    calls = []

    def stale_first_check(db, unit_id, check_in, check_out, exclude_booking_id=None):
        calls.append(check_in)
        if len(calls) == 1:
            return AvailabilityResult(True)
        return original(db, unit_id, check_in, check_out, exclude_booking_id)

    monkeypatch.setattr(AvailabilityService, "find_conflicts", staticmethod(stale_first_check))

    with pytest.raises(DatesOccupiedError) as exc_info:
        make_booking(check_in=date(2030, 3, 1), check_out=date(2030, 3, 4))

    assert exc_info.value.conflicting_dates == [date(2030, 3, 2), date(2030, 3, 3)]
    assert len(calls) == 2
    assert db.query(Booking).count() == 1
    assert db.query(BookingNight).count() == 3

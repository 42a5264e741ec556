# ================================
# TEST FIXTURES (tests/conftest.py)
# ================================

from datetime import date
from decimal import Decimal
import uuid

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import build_engine
from app.core.events import event_bus
from app.core.security import CurrentUser
from app.models import Base, Unit, PricingRule, PromoCode
from app.models.enums import UnitStatus, PromoCodeType, UserRole
from app.schemas.booking import BookingCreate
from app.services.booking_service import BookingService
from app.services.calendar_sync_service import CalendarSyncService


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_global_state():
    """Event subscribers and in-flight imports must not leak between tests."""
    yield
    event_bus.clear()
    CalendarSyncService._in_flight.clear()


@pytest.fixture
def owner():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.OWNER)


@pytest.fixture
def guest():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.USER)


@pytest.fixture
def admin():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.ADMIN)


@pytest.fixture
def unit(db, owner):
    """Published unit: 3000/night, cleaning 500, service fee 10%, 2 base guests."""
    unit = Unit(
        owner_id=owner.id,
        title="Sea View Loft",
        status=UnitStatus.PUBLISHED,
        max_guests=4,
        min_nights=1,
        max_nights=60
    )
    db.add(unit)
    db.flush()
    db.add(PricingRule(
        unit_id=unit.id,
        base_price=Decimal("3000"),
        currency="RUB",
        cleaning_fee=Decimal("500"),
        extra_guest_fee=Decimal("1000"),
        base_guests=2,
        service_fee_percent=Decimal("10")
    ))
    db.commit()
    db.refresh(unit)
    return unit


@pytest.fixture
def make_promo(db):
    def _make(code="SUMMER10", discount_type=PromoCodeType.PERCENTAGE, value="10", **kwargs):
        promo = PromoCode(
            code=code,
            discount_type=discount_type,
            value=Decimal(value),
            unit_ids=kwargs.pop("unit_ids", []),
            **kwargs
        )
        db.add(promo)
        db.commit()
        db.refresh(promo)
        return promo
    return _make


@pytest.fixture
def make_booking(db, unit, guest):
    def _make(check_in=date(2030, 3, 2), check_out=date(2030, 3, 5), guests=2, guest_id=None, **kwargs):
        data = BookingCreate(
            unit_id=kwargs.pop("unit_id", unit.id),
            check_in=check_in,
            check_out=check_out,
            guests=guests,
            **kwargs
        )
        return BookingService.create_booking(db, data, guest_id or guest.id)
    return _make


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from app.dependencies import get_db
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan (scheduler, DB check) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()

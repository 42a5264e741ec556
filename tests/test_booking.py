# ================================
# BOOKING SERVICE TESTS (tests/test_booking.py)
# ================================

from datetime import date, timedelta
from decimal import Decimal
import uuid

import pytest

from app.core.events import event_bus, BookingCreated, BookingStatusChanged, AuditRecorded
from app.core.exceptions import (
    NotFoundError, AuthorizationError, DatesOccupiedError, GuestCountExceededError,
    InvalidTransitionError, PromoInvalidError
)
from app.core.security import CurrentUser
from app.models import BookingNight, BookingStatusHistory
from app.models.enums import BookingStatus, PaymentStatus, UserRole
from app.services.booking_service import BookingService

CHECK_IN = date(2030, 3, 2)


def advance(db, booking, *statuses, **kwargs):
    for status in statuses:
        booking = BookingService.update_booking_status(db, booking.id, status, **kwargs)
    return booking


def nights_of(db, booking):
    return [row.night for row in db.query(BookingNight).filter_by(booking_id=booking.id).order_by(BookingNight.night)]


class TestCreateBooking:
    """Pending booking creation."""

    def test_creates_pending_booking_with_price(self, db, unit, guest, make_booking):
        booking = make_booking(contact_name="Anna", contact_phone="+79990000000")

        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.booking_number.startswith("CA-")
        assert booking.guest_id == guest.id
        assert booking.nights == 3
        assert booking.total_price == Decimal("10400")
        assert booking.service_fee == Decimal("900")
        assert booking.contact_name == "Anna"
        assert len(booking.nightly_breakdown) == 3
        assert nights_of(db, booking) == [date(2030, 3, 2), date(2030, 3, 3), date(2030, 3, 4)]

    def test_initial_history_entry(self, db, guest, make_booking):
        booking = make_booking()

        history = BookingService.get_booking_history(db, booking.id, guest)

        assert len(history) == 1
        assert history[0].from_status is None
        assert history[0].to_status == BookingStatus.PENDING
        assert history[0].changed_by == guest.id

    def test_booking_numbers_are_unique(self, make_booking):
        first = make_booking()
        second = make_booking(check_in=date(2030, 4, 1), check_out=date(2030, 4, 3))
        assert first.booking_number != second.booking_number

    def test_promo_usage_is_counted(self, db, make_booking, make_promo):
        promo = make_promo()

        booking = make_booking(promo_code="summer10")

        db.refresh(promo)
        assert promo.usage_count == 1
        assert booking.promo_code_id == promo.id
        assert booking.promo_discount == Decimal("900")
        assert booking.total_price == Decimal("9500")

    def test_exhausted_promo_is_rejected(self, db, make_booking, make_promo):
        make_promo(usage_limit=1, usage_count=1)

        with pytest.raises(PromoInvalidError):
            make_booking(promo_code="SUMMER10")

    def test_unlimited_promo_keeps_counting(self, db, make_booking, make_promo):
        promo = make_promo(usage_limit=0, usage_count=3)

        make_booking(promo_code="SUMMER10")

        db.refresh(promo)
        assert promo.usage_count == 4

    def test_too_many_guests(self, db, make_booking):
        with pytest.raises(GuestCountExceededError) as exc_info:
            make_booking(guests=5)

        assert exc_info.value.payload() == {"max_guests": 4}
        assert db.query(BookingNight).count() == 0

    def test_overlapping_booking_is_rejected(self, db, make_booking):
        make_booking(check_in=date(2030, 3, 2), check_out=date(2030, 3, 5))

        with pytest.raises(DatesOccupiedError) as exc_info:
            make_booking(check_in=date(2030, 3, 1), check_out=date(2030, 3, 4))

        assert exc_info.value.status_code == 409
        assert exc_info.value.conflicting_dates == [date(2030, 3, 2), date(2030, 3, 3)]

    def test_back_to_back_booking_is_accepted(self, make_booking):
        make_booking(check_in=date(2030, 3, 2), check_out=date(2030, 3, 5))
        booking = make_booking(check_in=date(2030, 3, 5), check_out=date(2030, 3, 7))
        assert booking.status == BookingStatus.PENDING

    def test_unknown_unit(self, make_booking):
        with pytest.raises(NotFoundError):
            make_booking(unit_id=uuid.uuid4())

    def test_created_event_is_published(self, make_booking):
        received = []
        event_bus.subscribe(BookingCreated, received.append)

        booking = make_booking()

        assert len(received) == 1
        assert received[0].booking_id == booking.id
        assert received[0].total_price == Decimal("10400")

    def test_audit_fact_is_published(self, guest, make_booking):
        received = []
        event_bus.subscribe(AuditRecorded, received.append)

        booking = make_booking()

        created = [event for event in received if event.action == "BOOKING_CREATED"]
        assert len(created) == 1
        assert created[0].actor_id == guest.id
        assert created[0].entity == "booking"
        assert created[0].entity_id == str(booking.id)


class TestStatusTransitions:
    """Lifecycle changes and their side effects."""

    def test_happy_path(self, db, owner, make_booking):
        booking = make_booking()

        booking = advance(db, booking, BookingStatus.CONFIRMED, BookingStatus.PAID, user_id=owner.id)

        assert booking.status == BookingStatus.PAID
        assert booking.payment_status == PaymentStatus.COMPLETED
        history = db.query(BookingStatusHistory).filter_by(booking_id=booking.id).all()
        assert len(history) == 3
        assert {(h.from_status, h.to_status) for h in history if h.from_status} == {
            (BookingStatus.PENDING, BookingStatus.CONFIRMED),
            (BookingStatus.CONFIRMED, BookingStatus.PAID),
        }

    def test_invalid_transition_changes_nothing(self, db, make_booking):
        booking = make_booking()

        with pytest.raises(InvalidTransitionError):
            BookingService.update_booking_status(db, booking.id, BookingStatus.PAID)

        db.refresh(booking)
        assert booking.status == BookingStatus.PENDING
        assert db.query(BookingStatusHistory).filter_by(booking_id=booking.id).count() == 1

    def test_terminal_booking_cannot_move(self, db, make_booking):
        booking = advance(db, make_booking(), BookingStatus.CANCELED)

        with pytest.raises(InvalidTransitionError):
            BookingService.update_booking_status(db, booking.id, BookingStatus.CONFIRMED)

    def test_unknown_booking(self, db):
        with pytest.raises(NotFoundError):
            BookingService.update_booking_status(db, uuid.uuid4(), BookingStatus.CONFIRMED)

    def test_comment_is_stored(self, db, owner, make_booking):
        booking = make_booking()

        booking = BookingService.update_booking_status(
            db, booking.id, BookingStatus.CONFIRMED, user_id=owner.id, comment="Welcome!"
        )

        assert booking.admin_comment == "Welcome!"
        last = BookingService.get_booking_history(db, booking.id, owner)[-1]
        assert last.comment == "Welcome!"
        assert last.changed_by == owner.id

    def test_status_changed_event(self, db, owner, make_booking):
        received = []
        event_bus.subscribe(BookingStatusChanged, received.append)
        booking = make_booking()

        advance(db, booking, BookingStatus.CONFIRMED, user_id=owner.id)

        assert len(received) == 1
        assert (received[0].from_status, received[0].to_status) == ("pending", "confirmed")
        assert received[0].changed_by == owner.id

    def test_failing_subscriber_does_not_break_transition(self, db, make_booking):
        def broken(event):
            raise RuntimeError("mail server down")
        event_bus.subscribe(BookingStatusChanged, broken)

        booking = advance(db, make_booking(), BookingStatus.CONFIRMED)

        assert booking.status == BookingStatus.CONFIRMED


class TestCancellation:
    """Refund tiers, promo rollback and night release."""

    @pytest.mark.parametrize("days_before,expected", [
        (30, Decimal("10400")),
        (7, Decimal("10400")),
        (6, Decimal("5200")),
        (3, Decimal("5200")),
        (2, Decimal("0")),
        (0, Decimal("0")),
        (-1, Decimal("0")),
    ])
    def test_refund_tiers(self, days_before, expected):
        refund = BookingService.calculate_refund(
            Decimal("10400"), PaymentStatus.COMPLETED, CHECK_IN, today=CHECK_IN - timedelta(days=days_before)
        )
        assert refund == expected

    def test_partial_refund_rounds_half_up(self):
        refund = BookingService.calculate_refund(
            Decimal("1001"), PaymentStatus.COMPLETED, CHECK_IN, today=CHECK_IN - timedelta(days=4)
        )
        assert refund == Decimal("501")

    def test_unpaid_booking_refunds_nothing(self):
        refund = BookingService.calculate_refund(
            Decimal("10400"), PaymentStatus.PENDING, CHECK_IN, today=CHECK_IN - timedelta(days=30)
        )
        assert refund == Decimal("0")

    def test_cancel_paid_booking_a_week_ahead(self, db, owner, make_booking):
        booking = advance(db, make_booking(), BookingStatus.CONFIRMED, BookingStatus.PAID)

        booking = BookingService.update_booking_status(
            db, booking.id, BookingStatus.CANCELED, user_id=owner.id,
            cancel_reason="Guest request", today=CHECK_IN - timedelta(days=7)
        )

        assert booking.status == BookingStatus.CANCELED
        assert booking.refund_amount == Decimal("10400")
        assert booking.payment_status == PaymentStatus.PARTIAL_REFUND
        assert booking.cancel_reason == "Guest request"
        assert booking.canceled_at is not None

    def test_cancel_paid_booking_last_minute(self, db, make_booking):
        booking = advance(db, make_booking(), BookingStatus.CONFIRMED, BookingStatus.PAID)

        booking = BookingService.update_booking_status(
            db, booking.id, BookingStatus.CANCELED, today=CHECK_IN - timedelta(days=2)
        )

        assert booking.refund_amount == Decimal("0")
        assert booking.payment_status == PaymentStatus.COMPLETED

    def test_cancel_returns_promo_usage(self, db, make_booking, make_promo):
        promo = make_promo()
        booking = make_booking(promo_code="SUMMER10")

        advance(db, booking, BookingStatus.CANCELED)

        db.refresh(promo)
        assert promo.usage_count == 0

    def test_cancel_frees_the_dates(self, db, make_booking):
        booking = make_booking()

        advance(db, booking, BookingStatus.CONFIRMED, BookingStatus.CANCELED)

        assert nights_of(db, booking) == []
        rebooked = make_booking()
        assert rebooked.status == BookingStatus.PENDING

    def test_guest_cancels_own_booking(self, db, guest, make_booking):
        booking = make_booking()

        booking = BookingService.cancel_own_booking(db, booking.id, guest, reason="Plans changed")

        assert booking.status == BookingStatus.CANCELED
        assert booking.cancel_reason == "Plans changed"

    def test_guest_cannot_cancel_foreign_booking(self, db, make_booking):
        booking = make_booking()
        other = CurrentUser(id=uuid.uuid4(), role=UserRole.USER)

        with pytest.raises(NotFoundError):
            BookingService.cancel_own_booking(db, booking.id, other)

    def test_refund_after_payment(self, db, make_booking):
        booking = advance(db, make_booking(), BookingStatus.CONFIRMED, BookingStatus.PAID, BookingStatus.REFUNDED)

        assert booking.payment_status == PaymentStatus.REFUNDED
        assert booking.refund_amount == booking.total_price
        assert nights_of(db, booking) == []

    def test_completed_stay_can_still_be_refunded(self, db, make_booking):
        booking = advance(
            db, make_booking(), BookingStatus.CONFIRMED, BookingStatus.PAID, BookingStatus.COMPLETED
        )
        assert nights_of(db, booking) == []

        booking = advance(db, booking, BookingStatus.REFUNDED)

        assert booking.status == BookingStatus.REFUNDED


class TestQueries:
    """Access checks, listings and statistics."""

    def test_guest_sees_own_booking(self, db, guest, make_booking):
        booking = make_booking()
        assert BookingService.get_booking(db, booking.id, guest).id == booking.id

    def test_owner_sees_bookings_on_own_unit(self, db, owner, make_booking):
        booking = make_booking()
        assert BookingService.get_booking(db, booking.id, owner).id == booking.id

    def test_stranger_is_denied(self, db, make_booking):
        booking = make_booking()

        for role in (UserRole.USER, UserRole.OWNER):
            with pytest.raises(AuthorizationError):
                BookingService.get_booking(db, booking.id, CurrentUser(id=uuid.uuid4(), role=role))

    def test_lookup_by_number(self, db, admin, make_booking):
        booking = make_booking()

        found = BookingService.get_booking_by_number(db, booking.booking_number.lower(), admin)

        assert found.id == booking.id

    def test_owner_listing_is_scoped(self, db, owner, make_booking):
        make_booking()
        make_booking(check_in=date(2030, 4, 1), check_out=date(2030, 4, 3), contact_name="Boris")

        items, total = BookingService.list_bookings(db, owner)
        assert total == 2

        items, total = BookingService.list_bookings(db, owner, search="boris")
        assert total == 1

        stranger = CurrentUser(id=uuid.uuid4(), role=UserRole.OWNER)
        assert BookingService.list_bookings(db, stranger) == ([], 0)

    def test_guests_cannot_list_all_bookings(self, db, guest):
        with pytest.raises(AuthorizationError):
            BookingService.list_bookings(db, guest)

    def test_user_bookings_pagination(self, db, guest, make_booking):
        for month in (4, 5, 6):
            make_booking(check_in=date(2030, month, 1), check_out=date(2030, month, 3))

        items, total = BookingService.list_user_bookings(db, guest.id, page=2, page_size=2)

        assert total == 3
        assert len(items) == 1

    def test_stats(self, db, unit, owner, make_booking):
        first = make_booking()
        make_booking(check_in=date(2030, 4, 1), check_out=date(2030, 4, 3))
        advance(db, first, BookingStatus.CONFIRMED)

        stats = BookingService.get_booking_stats(db, owner_id=owner.id)

        assert stats["pending"] == 1
        assert stats["confirmed"] == 1
        assert stats["canceled"] == 0
        assert stats["total"] == 2
        assert BookingService.get_booking_stats(db, owner_id=uuid.uuid4())["total"] == 0

    def test_only_active_bookings_hold_nights(self, db, unit, make_booking):
        booking = make_booking(check_in=date(2030, 3, 2), check_out=date(2030, 3, 4))
        make_booking(check_in=date(2030, 3, 10), check_out=date(2030, 3, 11))
        advance(db, booking, BookingStatus.CANCELED)

        held = db.query(BookingNight.night).filter_by(unit_id=unit.id).order_by(BookingNight.night).all()
        assert [night for (night,) in held] == [date(2030, 3, 10)]

# ================================
# BOOKING SERVICE (services/booking_service.py)
# ================================

from typing import Optional, List, Dict
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging
import uuid

from app.config import settings
from app.models.business import Unit, Booking, BookingNight, BookingStatusHistory, PromoCode
from app.models.enums import BookingStatus, PaymentStatus
from app.schemas.booking import BookingCreate
from app.core.events import event_bus, BookingCreated, BookingStatusChanged
from app.core.exceptions import (
    NotFoundError, AuthorizationError, DatesOccupiedError, GuestCountExceededError,
    InvalidTransitionError, PromoInvalidError
)
from app.core.security import CurrentUser
from app.services.availability_service import AvailabilityService
from app.services.booking_state_machine import BookingStateMachine
from app.services.pricing_service import PricingService
from app.utils.audit import audit_logger
from app.utils.dates import date_range, today_utc
from app.utils.numbering import generate_booking_number

logger = logging.getLogger(__name__)

class BookingService:
    """Service for the booking lifecycle"""

    # Statuses that no longer hold their nights
    RELEASING_STATUSES = (BookingStatus.CANCELED, BookingStatus.REFUNDED, BookingStatus.COMPLETED)

    @staticmethod
    def create_booking(
        db: Session,
        data: BookingCreate,
        guest_id: uuid.UUID
    ) -> Booking:
        """
        Create a pending booking.

        Availability check, pricing, insert, promo usage and the initial
        history row share one transaction. The unique (unit_id, night) index
        on booking_nights rejects a concurrent overlapping insert.
        """
        # Lock the unit row so concurrent creates on one unit serialize (no-op on SQLite)
        unit = db.execute(
            select(Unit).where(Unit.id == data.unit_id).with_for_update()
        ).scalar_one_or_none()
        if not unit:
            raise NotFoundError("Unit not found", "UNIT_NOT_FOUND")

        nights = AvailabilityService.validate_stay(unit, data.check_in, data.check_out)

        availability = AvailabilityService.find_conflicts(db, unit.id, data.check_in, data.check_out)
        if not availability.available:
            db.rollback()
            raise DatesOccupiedError(
                availability.conflicting_dates,
                detail=f"Requested dates are not available: {availability.reason}"
            )

        if data.guests > unit.max_guests:
            db.rollback()
            raise GuestCountExceededError(data.guests, unit.max_guests)

        # Authoritative price, client-side prices are never trusted
        price = PricingService.calculate_price(
            db,
            unit_id=unit.id,
            check_in=data.check_in,
            check_out=data.check_out,
            guests=data.guests,
            promo_code=data.promo_code,
            user_id=guest_id
        )

        booking = Booking(
            booking_number=generate_booking_number(settings.BOOKING_NUMBER_PREFIX),
            unit_id=unit.id,
            guest_id=guest_id,
            check_in=data.check_in,
            check_out=data.check_out,
            nights=nights,
            guests=data.guests,
            status=BookingStateMachine.INITIAL,
            payment_status=PaymentStatus.PENDING,
            base_total=price.base_total,
            accommodation_total=price.accommodation_total,
            cleaning_fee=price.cleaning_fee,
            service_fee=price.service_fee,
            extra_guest_fee=price.extra_guest_fee,
            seasonal_adjustment=price.seasonal_adjustment,
            weekday_adjustment=price.weekday_adjustment,
            discount=price.discount,
            promo_discount=price.promo_discount,
            total_price=price.total_price,
            currency=price.currency,
            nightly_breakdown=[rate.as_dict() for rate in price.nightly_rates],
            promo_code_id=price.promo_code.id if price.promo_code else None,
            contact_name=data.contact_name,
            contact_phone=data.contact_phone,
            contact_email=data.contact_email,
            guest_comment=data.guest_comment
        )
        db.add(booking)
        db.flush()

        try:
            db.add_all([
                BookingNight(booking_id=booking.id, unit_id=unit.id, night=night)
                for night in date_range(data.check_in, data.check_out)
            ])
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info(f"Concurrent booking detected for unit {unit.id} {data.check_in}..{data.check_out}")
            recheck = AvailabilityService.find_conflicts(db, data.unit_id, data.check_in, data.check_out)
            conflicting = recheck.conflicting_dates or list(date_range(data.check_in, data.check_out))
            raise DatesOccupiedError(conflicting, detail="Requested dates were just booked")

        if price.promo_code is not None:
            BookingService._increment_promo_usage(db, price.promo_code.id)

        history = BookingStatusHistory(
            booking_id=booking.id,
            from_status=None,
            to_status=BookingStatus.PENDING,
            changed_by=guest_id,
            comment="Booking created"
        )
        db.add(history)

        db.commit()
        db.refresh(booking)

        logger.info(f"Booking {booking.booking_number} created for unit {unit.id}")

        audit_logger.log_business_event(
            action="BOOKING_CREATED",
            user_id=guest_id,
            resource_type="booking",
            resource_id=booking.id,
            new_values={
                "booking_number": booking.booking_number,
                "unit_id": unit.id,
                "check_in": booking.check_in,
                "check_out": booking.check_out,
                "total_price": booking.total_price,
                "promo_code_id": booking.promo_code_id
            }
        )
        event_bus.publish(BookingCreated(
            booking_id=booking.id,
            booking_number=booking.booking_number,
            unit_id=booking.unit_id,
            guest_id=booking.guest_id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            total_price=booking.total_price,
            currency=booking.currency
        ))

        return booking

    @staticmethod
    def _increment_promo_usage(db: Session, promo_id: uuid.UUID):
        """Atomic usage_count + 1, guarded by usage_limit (0 or None is unlimited)"""
        result = db.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                or_(
                    PromoCode.usage_limit.is_(None),
                    PromoCode.usage_limit == 0,
                    PromoCode.usage_count < PromoCode.usage_limit
                )
            )
            .values(usage_count=PromoCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise PromoInvalidError("Promo code usage limit reached")

    @staticmethod
    def _decrement_promo_usage(db: Session, promo_id: uuid.UUID):
        """Atomic usage_count - 1, never below zero"""
        db.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_id, PromoCode.usage_count > 0)
            .values(usage_count=PromoCode.usage_count - 1)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def calculate_refund(
        total_price,
        payment_status: PaymentStatus,
        check_in: date,
        today: Optional[date] = None
    ) -> Decimal:
        """Tiered refund: full from FULL_REFUND_DAYS out, partial from PARTIAL_REFUND_DAYS, else nothing"""
        if payment_status != PaymentStatus.COMPLETED:
            return Decimal("0")

        today = today or today_utc()
        days_until_check_in = (check_in - today).days
        total = Decimal(str(total_price))

        if days_until_check_in >= settings.FULL_REFUND_DAYS:
            return total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        if days_until_check_in >= settings.PARTIAL_REFUND_DAYS:
            refund = total * Decimal(settings.PARTIAL_REFUND_PERCENT) / Decimal("100")
            return refund.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return Decimal("0")

    @staticmethod
    def update_booking_status(
        db: Session,
        booking_id: uuid.UUID,
        status: BookingStatus,
        user_id: Optional[uuid.UUID] = None,
        comment: Optional[str] = None,
        cancel_reason: Optional[str] = None,
        today: Optional[date] = None
    ) -> Booking:
        """Apply a lifecycle transition with its side effects"""
        booking = db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found", "BOOKING_NOT_FOUND")

        old_status = booking.status
        new_status = BookingStateMachine.transition(old_status, status)

        values = {"status": new_status}
        if comment:
            values["admin_comment"] = comment

        refund_amount = None
        if new_status == BookingStatus.CANCELED:
            refund_amount = BookingService.calculate_refund(
                booking.total_price, booking.payment_status, booking.check_in, today
            )
            values.update(
                canceled_at=datetime.now(timezone.utc),
                cancel_reason=cancel_reason,
                refund_amount=refund_amount
            )
            if refund_amount > 0:
                values["payment_status"] = PaymentStatus.PARTIAL_REFUND
        elif new_status == BookingStatus.PAID:
            values["payment_status"] = PaymentStatus.COMPLETED
        elif new_status == BookingStatus.REFUNDED:
            values["payment_status"] = PaymentStatus.REFUNDED
            if booking.refund_amount is None:
                refund_amount = booking.total_price
                values["refund_amount"] = refund_amount

        # Compare-and-set: a concurrent change of the same booking loses here
        result = db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == old_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise InvalidTransitionError(
                old_status, new_status, "Booking status was changed by another request"
            )

        if new_status in BookingService.RELEASING_STATUSES:
            db.execute(delete(BookingNight).where(BookingNight.booking_id == booking.id))

        if new_status == BookingStatus.CANCELED and booking.promo_code_id:
            BookingService._decrement_promo_usage(db, booking.promo_code_id)

        history_comment = comment or cancel_reason
        db.add(BookingStatusHistory(
            booking_id=booking.id,
            from_status=old_status,
            to_status=new_status,
            changed_by=user_id,
            comment=history_comment
        ))

        db.commit()
        db.refresh(booking)

        logger.info(f"Booking {booking.booking_number} moved {old_status.value} -> {new_status.value}")

        audit_logger.log_business_event(
            action="BOOKING_STATUS_CHANGED",
            user_id=user_id,
            resource_type="booking",
            resource_id=booking.id,
            old_values={"status": old_status},
            new_values={"status": new_status, "refund_amount": refund_amount, "comment": history_comment}
        )
        event_bus.publish(BookingStatusChanged(
            booking_id=booking.id,
            booking_number=booking.booking_number,
            unit_id=booking.unit_id,
            guest_id=booking.guest_id,
            from_status=old_status.value,
            to_status=new_status.value,
            changed_by=user_id,
            comment=history_comment,
            refund_amount=refund_amount
        ))

        return booking

    @staticmethod
    def cancel_own_booking(
        db: Session,
        booking_id: uuid.UUID,
        user: CurrentUser,
        reason: Optional[str] = None
    ) -> Booking:
        """Guest cancels a booking they made"""
        booking = db.get(Booking, booking_id)
        if not booking or booking.guest_id != user.id:
            raise NotFoundError("Booking not found", "BOOKING_NOT_FOUND")

        return BookingService.update_booking_status(
            db,
            booking_id=booking.id,
            status=BookingStatus.CANCELED,
            user_id=user.id,
            cancel_reason=reason
        )

    # ================================
    # QUERIES
    # ================================

    @staticmethod
    def _ensure_can_view(db: Session, booking: Booking, user: CurrentUser):
        if user.is_admin or booking.guest_id == user.id:
            return
        if user.is_owner:
            unit = db.get(Unit, booking.unit_id)
            if unit and unit.owner_id == user.id:
                return
        raise AuthorizationError("You do not have access to this booking")

    @staticmethod
    def get_booking(db: Session, booking_id: uuid.UUID, user: CurrentUser) -> Booking:
        """Get booking by ID with permission check"""
        booking = db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found", "BOOKING_NOT_FOUND")
        BookingService._ensure_can_view(db, booking, user)
        return booking

    @staticmethod
    def get_booking_by_number(db: Session, booking_number: str, user: CurrentUser) -> Booking:
        booking = db.execute(
            select(Booking).where(Booking.booking_number == booking_number.strip().upper())
        ).scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking not found", "BOOKING_NOT_FOUND")
        BookingService._ensure_can_view(db, booking, user)
        return booking

    @staticmethod
    def get_booking_history(db: Session, booking_id: uuid.UUID, user: CurrentUser) -> List[BookingStatusHistory]:
        booking = BookingService.get_booking(db, booking_id, user)
        return list(db.execute(
            select(BookingStatusHistory)
            .where(BookingStatusHistory.booking_id == booking.id)
            .order_by(BookingStatusHistory.changed_at, BookingStatusHistory.created_at)
        ).scalars().all())

    @staticmethod
    def list_user_bookings(
        db: Session,
        user_id: uuid.UUID,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> tuple[List[Booking], int]:
        """A guest's own bookings, newest first"""
        query = select(Booking).where(Booking.guest_id == user_id)
        if status is not None:
            query = query.where(Booking.status == status)

        return BookingService._paginate(db, query, page, page_size)

    @staticmethod
    def list_bookings(
        db: Session,
        user: CurrentUser,
        status: Optional[BookingStatus] = None,
        unit_id: Optional[uuid.UUID] = None,
        check_in_from: Optional[date] = None,
        check_in_to: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20
    ) -> tuple[List[Booking], int]:
        """List bookings with role-based filtering"""
        if not (user.is_admin or user.is_owner):
            raise AuthorizationError("Only owners and admins can list bookings")

        query = select(Booking)

        # Owners only see bookings on their own units
        if not user.is_admin:
            query = query.join(Unit, Unit.id == Booking.unit_id).where(Unit.owner_id == user.id)

        # Apply filters
        if status is not None:
            query = query.where(Booking.status == status)
        if unit_id:
            query = query.where(Booking.unit_id == unit_id)
        if check_in_from:
            query = query.where(Booking.check_in >= check_in_from)
        if check_in_to:
            query = query.where(Booking.check_in <= check_in_to)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Booking.booking_number.ilike(pattern),
                Booking.contact_name.ilike(pattern),
                Booking.contact_email.ilike(pattern),
                Booking.contact_phone.ilike(pattern)
            ))

        return BookingService._paginate(db, query, page, page_size)

    @staticmethod
    def _paginate(db: Session, query, page: int, page_size: int) -> tuple[List[Booking], int]:
        total = db.execute(
            select(func.count()).select_from(query.order_by(None).subquery())
        ).scalar_one()

        items = db.execute(
            query.order_by(Booking.created_at.desc(), Booking.booking_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return list(items), total

    @staticmethod
    def get_booking_stats(
        db: Session,
        unit_id: Optional[uuid.UUID] = None,
        owner_id: Optional[uuid.UUID] = None
    ) -> Dict[str, int]:
        """Booking counts per status, optionally for one unit or one owner's units"""
        query = select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
        if unit_id:
            query = query.where(Booking.unit_id == unit_id)
        if owner_id:
            query = query.join(Unit, Unit.id == Booking.unit_id).where(Unit.owner_id == owner_id)

        counts = {status.value: 0 for status in BookingStatus}
        for status, count in db.execute(query).all():
            counts[BookingStatus(status).value] = count

        counts["total"] = sum(counts.values())
        return counts

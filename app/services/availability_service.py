# ================================
# AVAILABILITY SERVICE (services/availability_service.py)
# ================================

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional, Union
import logging
import uuid

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.business import Unit, Booking, BlockedDate
from app.models.enums import ACTIVE_BOOKING_STATUSES, BlockedDateSource, UnitStatus
from app.core.exceptions import NotFoundError, UnbookableError, InvalidStayLengthError, AuthorizationError
from app.core.security import CurrentUser
from app.services.pricing_service import PricingService
from app.utils.audit import audit_logger
from app.utils.dates import date_range, month_bounds, nights_between, overlapping_dates

logger = logging.getLogger(__name__)

REASON_DATES_OCCUPIED = "dates occupied"
REASON_DATES_BLOCKED = "dates blocked"

@dataclass
class AvailabilityResult:
    available: bool
    reason: Optional[str] = None
    conflicting_dates: List[date] = field(default_factory=list)

@dataclass
class OccupiedDate:
    date: date
    booking_id: Union[uuid.UUID, str]  # "blocked" for blocked dates
    status: str

@dataclass
class CalendarDay:
    date: date
    available: bool
    price: Optional[int] = None

@dataclass
class StayWindow:
    check_in: date
    check_out: date

class AvailabilityService:
    """Service deciding whether a unit can be booked for a date range"""

    @staticmethod
    def get_unit(db: Session, unit_id: uuid.UUID) -> Unit:
        unit = db.get(Unit, unit_id)
        if not unit:
            raise NotFoundError("Unit not found", "UNIT_NOT_FOUND")
        return unit

    @staticmethod
    def get_managed_unit(db: Session, unit_id: uuid.UUID, user: CurrentUser) -> Unit:
        """Unit the caller may manage, owners only reach their own units"""
        unit = AvailabilityService.get_unit(db, unit_id)
        if not user.is_admin and unit.owner_id != user.id:
            raise AuthorizationError("You can only manage your own units")
        return unit

    @staticmethod
    def validate_stay(unit: Unit, check_in: date, check_out: date) -> int:
        """Checks unit status and stay length, returns number of nights"""
        if unit.status != UnitStatus.PUBLISHED:
            raise UnbookableError()

        nights = nights_between(check_in, check_out)
        if nights <= 0:
            raise InvalidStayLengthError(
                "Check-out must be after check-in", unit.min_nights, unit.max_nights
            )
        if nights < unit.min_nights or nights > unit.max_nights:
            raise InvalidStayLengthError(
                f"Stay must be between {unit.min_nights} and {unit.max_nights} nights, got {nights}",
                unit.min_nights,
                unit.max_nights
            )
        return nights

    @staticmethod
    def get_conflicting_bookings(
        db: Session,
        unit_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[uuid.UUID] = None
    ) -> List[Booking]:
        """Active bookings whose [check_in, check_out) overlaps the request"""
        query = select(Booking).where(
            Booking.unit_id == unit_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in
        )
        if exclude_booking_id:
            query = query.where(Booking.id != exclude_booking_id)
        return list(db.execute(query).scalars().all())

    @staticmethod
    def get_blocked_dates_in_range(db: Session, unit_id: uuid.UUID, check_in: date, check_out: date) -> List[date]:
        return list(db.execute(
            select(BlockedDate.date).where(
                BlockedDate.unit_id == unit_id,
                BlockedDate.date >= check_in,
                BlockedDate.date < check_out
            ).order_by(BlockedDate.date)
        ).scalars().all())

    @staticmethod
    def find_conflicts(
        db: Session,
        unit_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[uuid.UUID] = None
    ) -> AvailabilityResult:
        """Overlap check without unit validation"""
        bookings = AvailabilityService.get_conflicting_bookings(
            db, unit_id, check_in, check_out, exclude_booking_id
        )
        if bookings:
            conflicting = set()
            for booking in bookings:
                conflicting.update(overlapping_dates(booking.check_in, booking.check_out, check_in, check_out))
            return AvailabilityResult(False, REASON_DATES_OCCUPIED, sorted(conflicting))

        blocked = AvailabilityService.get_blocked_dates_in_range(db, unit_id, check_in, check_out)
        if blocked:
            return AvailabilityResult(False, REASON_DATES_BLOCKED, blocked)

        return AvailabilityResult(True)

    @staticmethod
    def check_availability(
        db: Session,
        unit_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[uuid.UUID] = None
    ) -> AvailabilityResult:
        """Whether the unit can be booked for [check_in, check_out)"""
        unit = AvailabilityService.get_unit(db, unit_id)
        AvailabilityService.validate_stay(unit, check_in, check_out)
        return AvailabilityService.find_conflicts(db, unit_id, check_in, check_out, exclude_booking_id)

    @staticmethod
    def get_occupied_dates(db: Session, unit_id: uuid.UUID, start: date, end: date) -> List[OccupiedDate]:
        """Every booked or blocked day in the inclusive window [start, end]"""
        AvailabilityService.get_unit(db, unit_id)

        bookings = db.execute(
            select(Booking).where(
                Booking.unit_id == unit_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.check_in <= end,
                Booking.check_out > start
            ).order_by(Booking.check_in)
        ).scalars().all()

        occupied: List[OccupiedDate] = []
        seen = set()
        for booking in bookings:
            for day in date_range(max(booking.check_in, start), min(booking.check_out, end + timedelta(days=1))):
                occupied.append(OccupiedDate(day, booking.id, booking.status.value))
                seen.add(day)

        blocked_rows = db.execute(
            select(BlockedDate).where(
                BlockedDate.unit_id == unit_id,
                BlockedDate.date >= start,
                BlockedDate.date <= end
            ).order_by(BlockedDate.date)
        ).scalars().all()

        for blocked in blocked_rows:
            if blocked.date in seen:
                continue
            occupied.append(OccupiedDate(blocked.date, "blocked", "blocked"))
            seen.add(blocked.date)

        occupied.sort(key=lambda item: item.date)
        return occupied

    @staticmethod
    def get_availability_calendar(db: Session, unit_id: uuid.UUID, year: int, month: int) -> List[CalendarDay]:
        """Availability and nightly price for every day of a month"""
        first, after_last = month_bounds(year, month)
        occupied = {
            item.date for item in AvailabilityService.get_occupied_dates(
                db, unit_id, first, after_last - timedelta(days=1)
            )
        }

        days = list(date_range(first, after_last))
        prices = {}
        try:
            rule = PricingService.get_pricing_rule(db, unit_id)
        except NotFoundError:
            rule = None
            logger.warning(f"Unit {unit_id} has no pricing rule, calendar without prices")

        if rule is not None:
            seasons, weekdays = PricingService.load_adjustments(db, unit_id, first, after_last)
            free_days = [day for day in days if day not in occupied]
            for rate in PricingService.calculate_daily_prices(rule.base_price, free_days, seasons, weekdays):
                prices[rate.date] = int(rate.price)

        return [
            CalendarDay(date=day, available=day not in occupied, price=prices.get(day))
            for day in days
        ]

    @staticmethod
    def find_next_available_dates(
        db: Session,
        unit_id: uuid.UUID,
        preferred_check_in: date,
        nights: int,
        search_days: Optional[int] = None
    ) -> Optional[StayWindow]:
        """First free window of `nights` starting on or after the preferred date"""
        search_days = search_days or settings.AVAILABILITY_SEARCH_DAYS
        unit = AvailabilityService.get_unit(db, unit_id)

        # Stay length and unit status do not change between candidates
        AvailabilityService.validate_stay(unit, preferred_check_in, preferred_check_in + timedelta(days=nights))

        candidate = preferred_check_in
        for _ in range(search_days):
            check_out = candidate + timedelta(days=nights)
            result = AvailabilityService.find_conflicts(db, unit_id, candidate, check_out)
            if result.available:
                return StayWindow(candidate, check_out)
            candidate += timedelta(days=1)

        logger.info(f"No free {nights}-night window for unit {unit_id} within {search_days} days of {preferred_check_in}")
        return None

    # ================================
    # MANUAL BLOCKS
    # ================================

    @staticmethod
    def block_dates(
        db: Session,
        unit_id: uuid.UUID,
        dates: Iterable[date],
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None
    ) -> int:
        """
        Best-effort manual block, returns the number of dates actually blocked.

        A date is skipped (not counted) when an active booking holds it or an
        imported block already covers it. Each date is written in its own
        savepoint so one failure does not undo the others.
        """
        AvailabilityService.get_unit(db, unit_id)
        affected = []

        for day in sorted(set(dates)):
            try:
                with db.begin_nested():
                    if AvailabilityService.get_conflicting_bookings(db, unit_id, day, day + timedelta(days=1)):
                        logger.info(f"Not blocking {day} on unit {unit_id}: held by a booking")
                        continue

                    existing = db.execute(
                        select(BlockedDate).where(
                            BlockedDate.unit_id == unit_id,
                            BlockedDate.date == day
                        )
                    ).scalar_one_or_none()

                    if existing is None:
                        db.add(BlockedDate(
                            unit_id=unit_id,
                            date=day,
                            source=BlockedDateSource.MANUAL,
                            reason=reason
                        ))
                    elif existing.source == BlockedDateSource.MANUAL:
                        existing.reason = reason
                    else:
                        logger.info(f"Not blocking {day} on unit {unit_id}: already blocked by {existing.source.value}")
                        continue

                    db.flush()
                affected.append(day)
            except IntegrityError as e:
                logger.warning(f"Failed to block {day} on unit {unit_id}: {e.orig}")

        db.commit()

        if affected:
            audit_logger.log_business_event(
                action="DATES_BLOCKED",
                user_id=user_id,
                resource_type="unit",
                resource_id=unit_id,
                new_values={"dates": affected, "reason": reason}
            )

        return len(affected)

    @staticmethod
    def unblock_dates(
        db: Session,
        unit_id: uuid.UUID,
        dates: Iterable[date],
        user_id: Optional[uuid.UUID] = None
    ) -> int:
        """Remove manual blocks only, returns the number of dates freed"""
        AvailabilityService.get_unit(db, unit_id)
        days = sorted(set(dates))
        if not days:
            return 0

        result = db.execute(
            delete(BlockedDate).where(
                BlockedDate.unit_id == unit_id,
                BlockedDate.date.in_(days),
                BlockedDate.source == BlockedDateSource.MANUAL
            )
        )
        db.commit()

        removed = result.rowcount or 0
        if removed:
            audit_logger.log_business_event(
                action="DATES_UNBLOCKED",
                user_id=user_id,
                resource_type="unit",
                resource_id=unit_id,
                old_values={"dates": days}
            )

        return removed


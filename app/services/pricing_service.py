"""
Pricing Service

Computes the authoritative price of a stay: nightly rates from the base price
and the season/weekday multipliers, cleaning and extra-guest fees, the
long-stay discount, the service fee and an optional promo code.

Money is rounded to whole currency units (ROUND_HALF_UP) at the point each
amount is computed.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.business import (
    Unit, PricingRule, SeasonalAdjustment, WeekdayAdjustment, PromoCode, Booking
)
from app.models.enums import PromoCodeType, BookingStatus
from app.core.exceptions import NotFoundError, InvalidStayLengthError, PromoInvalidError
from app.utils.dates import date_range, weekday_index, ensure_aware

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

def round_money(value) -> Decimal:
    """Round to the nearest whole currency unit"""
    return Decimal(str(value)).quantize(ONE, rounding=ROUND_HALF_UP)

def _dec(value, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    return Decimal(str(value))

@dataclass
class NightlyRate:
    """Price of one night after multipliers"""
    date: date
    base_price: Decimal
    seasonal_multiplier: Decimal
    weekday_multiplier: Decimal
    price: Decimal
    season_name: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "base_price": str(self.base_price),
            "seasonal_multiplier": str(self.seasonal_multiplier),
            "weekday_multiplier": str(self.weekday_multiplier),
            "price": str(self.price),
            "season_name": self.season_name,
        }

@dataclass
class PromoValidation:
    valid: bool
    message: str
    discount: Optional[Decimal] = None
    promo_code: Optional[PromoCode] = None

@dataclass
class PriceCalculation:
    """Full breakdown of a stay's price"""
    unit_id: UUID
    check_in: date
    check_out: date
    nights: int
    guests: int
    currency: str
    nightly_rates: List[NightlyRate] = field(default_factory=list)
    base_total: Decimal = ZERO
    accommodation_total: Decimal = ZERO
    seasonal_adjustment: Decimal = ZERO
    weekday_adjustment: Decimal = ZERO
    cleaning_fee: Decimal = ZERO
    extra_guest_fee: Decimal = ZERO
    discount: Decimal = ZERO
    discount_type: Optional[str] = None  # "weekly" | "monthly"
    discount_percent: Optional[Decimal] = None
    service_fee: Decimal = ZERO
    promo_code: Optional[PromoCode] = None
    promo_discount: Decimal = ZERO
    total_price: Decimal = ZERO

    @property
    def average_nightly_price(self) -> Decimal:
        if not self.nights:
            return ZERO
        return round_money(self.accommodation_total / self.nights)

class PricingService:
    """Service for stay price calculation and promo code validation"""

    @staticmethod
    def get_pricing_rule(db: Session, unit_id: UUID) -> PricingRule:
        unit = db.get(Unit, unit_id)
        if not unit:
            raise NotFoundError("Unit not found", "UNIT_NOT_FOUND")

        rule = db.execute(
            select(PricingRule).where(PricingRule.unit_id == unit_id)
        ).scalar_one_or_none()
        if not rule:
            raise NotFoundError("Pricing is not configured for this unit", "PRICING_NOT_FOUND")

        return rule

    @staticmethod
    def load_adjustments(
        db: Session,
        unit_id: UUID,
        start: date,
        end: date
    ) -> tuple[List[SeasonalAdjustment], List[WeekdayAdjustment]]:
        """Active seasons touching [start, end) and all weekday multipliers"""
        seasons = db.execute(
            select(SeasonalAdjustment).where(
                SeasonalAdjustment.unit_id == unit_id,
                SeasonalAdjustment.is_active.is_(True),
                SeasonalAdjustment.start_date < end,
                SeasonalAdjustment.end_date >= start
            )
        ).scalars().all()

        weekdays = db.execute(
            select(WeekdayAdjustment).where(WeekdayAdjustment.unit_id == unit_id)
        ).scalars().all()

        return list(seasons), list(weekdays)

    @staticmethod
    def calculate_daily_prices(
        base_price,
        days: Sequence[date],
        seasons: Sequence[SeasonalAdjustment],
        weekdays: Sequence[WeekdayAdjustment]
    ) -> List[NightlyRate]:
        """Per-night price: round(base * max(active season) * weekday)"""
        base = _dec(base_price)
        weekday_multipliers = {item.day_of_week: _dec(item.multiplier, ONE) for item in weekdays}

        rates = []
        for day in days:
            seasonal_multiplier = None
            season_name = None
            for season in seasons:
                if not season.covers(day):
                    continue
                multiplier = _dec(season.multiplier, ONE)
                if seasonal_multiplier is None or multiplier > seasonal_multiplier:
                    seasonal_multiplier = multiplier
                    season_name = season.name

            if seasonal_multiplier is None:
                seasonal_multiplier = ONE

            weekday_multiplier = weekday_multipliers.get(weekday_index(day), ONE)

            rates.append(NightlyRate(
                date=day,
                base_price=base,
                seasonal_multiplier=seasonal_multiplier,
                weekday_multiplier=weekday_multiplier,
                price=round_money(base * seasonal_multiplier * weekday_multiplier),
                season_name=season_name
            ))

        return rates

    @staticmethod
    def calculate_price(
        db: Session,
        unit_id: UUID,
        check_in: date,
        check_out: date,
        guests: int,
        promo_code: Optional[str] = None,
        user_id: Optional[UUID] = None
    ) -> PriceCalculation:
        """Authoritative price for a stay, raises PromoInvalidError for a rejected code"""
        nights = (check_out - check_in).days
        if nights <= 0:
            raise InvalidStayLengthError("Check-out must be after check-in")

        rule = PricingService.get_pricing_rule(db, unit_id)
        seasons, weekdays = PricingService.load_adjustments(db, unit_id, check_in, check_out)

        rates = PricingService.calculate_daily_prices(
            rule.base_price, list(date_range(check_in, check_out)), seasons, weekdays
        )

        base = _dec(rule.base_price)
        calculation = PriceCalculation(
            unit_id=unit_id,
            check_in=check_in,
            check_out=check_out,
            nights=nights,
            guests=guests,
            currency=rule.currency or settings.DEFAULT_CURRENCY,
            nightly_rates=rates
        )

        # Split the multiplier effect into its weekday and seasonal parts
        weekday_only_total = ZERO
        for rate in rates:
            weekday_only_total += round_money(base * rate.weekday_multiplier)

        calculation.accommodation_total = sum((rate.price for rate in rates), ZERO)
        calculation.base_total = round_money(base * nights)
        calculation.weekday_adjustment = weekday_only_total - calculation.base_total
        calculation.seasonal_adjustment = calculation.accommodation_total - weekday_only_total

        calculation.cleaning_fee = round_money(_dec(rule.cleaning_fee))

        extra_guests = max(0, guests - (rule.base_guests or 0))
        calculation.extra_guest_fee = round_money(extra_guests * _dec(rule.extra_guest_fee) * nights)

        # Long-stay discount: monthly takes precedence over weekly, never both
        monthly = _dec(rule.monthly_discount)
        weekly = _dec(rule.weekly_discount)
        if nights >= settings.LONG_STAY_MONTHLY_NIGHTS and monthly > 0:
            calculation.discount_type = "monthly"
            calculation.discount_percent = monthly
        elif nights >= settings.LONG_STAY_WEEKLY_NIGHTS and weekly > 0:
            calculation.discount_type = "weekly"
            calculation.discount_percent = weekly

        if calculation.discount_percent:
            calculation.discount = round_money(
                calculation.accommodation_total * calculation.discount_percent / HUNDRED
            )

        if promo_code:
            validation = PricingService.validate_promo_code(
                db,
                code=promo_code,
                unit_id=unit_id,
                amount=calculation.accommodation_total,
                nights=nights,
                user_id=user_id
            )
            if not validation.valid:
                raise PromoInvalidError(validation.message)

            # promo + long-stay discount never exceed the accommodation total
            headroom = max(ZERO, calculation.accommodation_total - calculation.discount)
            calculation.promo_discount = min(validation.discount, headroom)
            calculation.promo_code = validation.promo_code

        calculation.service_fee = round_money(
            (calculation.accommodation_total - calculation.discount)
            * _dec(rule.service_fee_percent) / HUNDRED
        )

        calculation.total_price = (
            calculation.accommodation_total
            + calculation.cleaning_fee
            + calculation.extra_guest_fee
            + calculation.service_fee
            - calculation.discount
            - calculation.promo_discount
        )

        logger.debug(
            f"Priced unit {unit_id} {check_in}..{check_out} for {guests} guests: "
            f"{calculation.total_price} {calculation.currency}"
        )

        return calculation

    @staticmethod
    def find_promo_code(db: Session, code: str) -> Optional[PromoCode]:
        normalized = (code or "").strip().upper()
        if not normalized:
            return None
        # Rows written around the ORM may still carry mixed case
        return db.execute(
            select(PromoCode).where(func.upper(PromoCode.code) == normalized).order_by(PromoCode.created_at)
        ).scalars().first()

    @staticmethod
    def compute_promo_discount(promo: PromoCode, amount) -> Decimal:
        """Percentage (capped at max_discount) or flat value, never above amount"""
        amount = _dec(amount)
        if promo.discount_type == PromoCodeType.PERCENTAGE:
            discount = round_money(amount * _dec(promo.value) / HUNDRED)
            if promo.max_discount is not None and discount > _dec(promo.max_discount):
                discount = round_money(_dec(promo.max_discount))
        else:
            discount = round_money(_dec(promo.value))

        return max(ZERO, min(discount, round_money(amount)))

    @staticmethod
    def count_user_promo_usage(db: Session, promo_id: UUID, user_id: UUID) -> int:
        return db.execute(
            select(func.count(Booking.id)).where(
                Booking.promo_code_id == promo_id,
                Booking.guest_id == user_id,
                Booking.status.not_in([BookingStatus.CANCELED, BookingStatus.REFUNDED])
            )
        ).scalar_one()

    @staticmethod
    def validate_promo_code(
        db: Session,
        code: str,
        unit_id: UUID,
        amount,
        nights: int,
        user_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> PromoValidation:
        """Run the promo checks in order, the first failing one wins"""
        now = now or datetime.now(timezone.utc)
        amount = _dec(amount)

        promo = PricingService.find_promo_code(db, code)
        if not promo:
            return PromoValidation(False, "Promo code not found")

        if not promo.is_active:
            return PromoValidation(False, "Promo code is not active")

        valid_from = ensure_aware(promo.valid_from)
        valid_until = ensure_aware(promo.valid_until)
        if valid_from and now < valid_from:
            return PromoValidation(False, "Promo code is not valid yet")
        if valid_until and now > valid_until:
            return PromoValidation(False, "Promo code has expired")

        # usage_limit of 0 or None means unlimited, same as per_user_limit
        if promo.usage_limit and promo.usage_count >= promo.usage_limit:
            return PromoValidation(False, "Promo code usage limit reached")

        if promo.min_nights and nights < promo.min_nights:
            return PromoValidation(False, f"Minimum number of nights: {promo.min_nights}")

        if promo.min_amount is not None and amount < _dec(promo.min_amount):
            return PromoValidation(False, f"Minimum order amount: {round_money(promo.min_amount)}")

        if not promo.applies_to_unit(unit_id):
            return PromoValidation(False, "Promo code does not apply to this unit")

        if user_id and promo.per_user_limit:
            used = PricingService.count_user_promo_usage(db, promo.id, user_id)
            if used >= promo.per_user_limit:
                return PromoValidation(False, "You have already used this promo code")

        discount = PricingService.compute_promo_discount(promo, amount)

        if promo.discount_type == PromoCodeType.PERCENTAGE:
            message = f"{_dec(promo.value).normalize():f}% discount"
        else:
            message = f"{round_money(promo.value)} discount"

        return PromoValidation(True, message, discount=discount, promo_code=promo)

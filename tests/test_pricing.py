# ================================
# PRICING SERVICE TESTS (tests/test_pricing.py)
# ================================

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
import uuid

import pytest
from sqlalchemy import update

from app.core.exceptions import NotFoundError, InvalidStayLengthError, PromoInvalidError
from app.models import Unit, PricingRule, SeasonalAdjustment, WeekdayAdjustment, PromoCode
from app.models.enums import PromoCodeType
from app.services.pricing_service import PricingService, round_money


def add_season(db, unit, name, start, end, multiplier, is_active=True):
    season = SeasonalAdjustment(
        unit_id=unit.id, name=name, start_date=start, end_date=end,
        multiplier=Decimal(multiplier), is_active=is_active
    )
    db.add(season)
    db.commit()
    return season


def set_weekday(db, unit, day_of_week, multiplier):
    db.add(WeekdayAdjustment(unit_id=unit.id, day_of_week=day_of_week, multiplier=Decimal(multiplier)))
    db.commit()


def set_long_stay(db, unit, weekly=None, monthly=None):
    rule = PricingService.get_pricing_rule(db, unit.id)
    rule.weekly_discount = Decimal(weekly) if weekly else None
    rule.monthly_discount = Decimal(monthly) if monthly else None
    db.commit()


class TestRounding:
    def test_half_up(self):
        assert round_money(Decimal("10.5")) == Decimal("11")
        assert round_money(Decimal("10.49")) == Decimal("10")
        assert round_money("2.5") == Decimal("3")


class TestCalculatePrice:
    """Price breakdown of a stay."""

    def test_three_nights_without_adjustments(self, db, unit):
        price = PricingService.calculate_price(db, unit.id, date(2026, 3, 1), date(2026, 3, 4), guests=2)

        assert price.nights == 3
        assert price.base_total == Decimal("9000")
        assert price.accommodation_total == Decimal("9000")
        assert price.cleaning_fee == Decimal("500")
        assert price.extra_guest_fee == Decimal("0")
        assert price.service_fee == Decimal("900")
        assert price.discount == Decimal("0")
        assert price.total_price == Decimal("10400")
        assert price.currency == "RUB"
        assert price.average_nightly_price == Decimal("3000")
        assert [rate.date for rate in price.nightly_rates] == [
            date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)
        ]

    def test_season_and_weekday_multipliers_multiply(self, db, unit):
        add_season(db, unit, "High", date(2030, 3, 1), date(2030, 3, 31), "1.5")
        add_season(db, unit, "Peak", date(2030, 3, 9), date(2030, 3, 9), "2.0")
        set_weekday(db, unit, 6, "1.2")  # Saturday

        # Friday 8th and Saturday 9th
        price = PricingService.calculate_price(db, unit.id, date(2030, 3, 8), date(2030, 3, 10), guests=2)

        friday, saturday = price.nightly_rates
        assert friday.price == Decimal("4500")
        assert friday.season_name == "High"
        assert saturday.price == Decimal("7200")
        assert saturday.season_name == "Peak"
        assert saturday.seasonal_multiplier == Decimal("2.0")
        assert saturday.weekday_multiplier == Decimal("1.2")
        assert price.accommodation_total == Decimal("11700")
        assert price.base_total == Decimal("6000")
        assert price.weekday_adjustment == Decimal("600")
        assert price.seasonal_adjustment == Decimal("5100")

    def test_low_season_lowers_price(self, db, unit):
        add_season(db, unit, "Low", date(2030, 11, 1), date(2030, 11, 30), "0.8")

        price = PricingService.calculate_price(db, unit.id, date(2030, 11, 10), date(2030, 11, 11), guests=1)

        assert price.accommodation_total == Decimal("2400")
        assert price.seasonal_adjustment == Decimal("-600")

    def test_inactive_season_is_ignored(self, db, unit):
        add_season(db, unit, "Off", date(2030, 3, 1), date(2030, 3, 31), "3", is_active=False)

        price = PricingService.calculate_price(db, unit.id, date(2030, 3, 10), date(2030, 3, 11), guests=1)

        assert price.accommodation_total == Decimal("3000")
        assert price.nightly_rates[0].season_name is None

    def test_season_end_date_is_inclusive(self, db, unit):
        add_season(db, unit, "Short", date(2030, 3, 10), date(2030, 3, 10), "2")

        price = PricingService.calculate_price(db, unit.id, date(2030, 3, 10), date(2030, 3, 12), guests=1)

        assert [rate.price for rate in price.nightly_rates] == [Decimal("6000"), Decimal("3000")]

    def test_extra_guests_are_charged_per_night(self, db, unit):
        price = PricingService.calculate_price(db, unit.id, date(2030, 3, 1), date(2030, 3, 4), guests=4)

        assert price.extra_guest_fee == Decimal("6000")
        assert price.total_price == Decimal("16400")

    def test_total_never_decreases_with_more_guests(self, db, unit):
        totals = [
            PricingService.calculate_price(db, unit.id, date(2030, 3, 1), date(2030, 3, 4), guests=count).total_price
            for count in range(1, 5)
        ]
        assert totals == sorted(totals)

    def test_weekly_discount(self, db, unit):
        set_long_stay(db, unit, weekly="10", monthly="20")

        price = PricingService.calculate_price(db, unit.id, date(2030, 4, 1), date(2030, 4, 8), guests=2)

        assert price.discount_type == "weekly"
        assert price.discount == Decimal("2100")
        assert price.service_fee == Decimal("1890")

    def test_monthly_discount_replaces_weekly(self, db, unit):
        set_long_stay(db, unit, weekly="10", monthly="20")

        price = PricingService.calculate_price(db, unit.id, date(2030, 4, 1), date(2030, 5, 1), guests=2)

        assert price.nights == 30
        assert price.discount_type == "monthly"
        assert price.discount == Decimal("18000")
        assert price.total_price == Decimal("79700")

    def test_no_discount_below_a_week(self, db, unit):
        set_long_stay(db, unit, weekly="10")

        price = PricingService.calculate_price(db, unit.id, date(2030, 4, 1), date(2030, 4, 7), guests=2)

        assert price.discount == Decimal("0")
        assert price.discount_type is None

    def test_promo_discount_is_subtracted(self, db, unit, make_promo):
        make_promo(code="SUMMER10", value="10")

        price = PricingService.calculate_price(
            db, unit.id, date(2030, 3, 1), date(2030, 3, 4), guests=2, promo_code="summer10"
        )

        assert price.promo_discount == Decimal("900")
        assert price.promo_code.code == "SUMMER10"
        assert price.service_fee == Decimal("900")
        assert price.total_price == Decimal("9500")

    def test_discounts_never_exceed_accommodation(self, db, unit, make_promo):
        set_long_stay(db, unit, weekly="10")
        make_promo(code="HUGE", discount_type=PromoCodeType.FIXED, value="100000")

        price = PricingService.calculate_price(
            db, unit.id, date(2030, 4, 1), date(2030, 4, 8), guests=2, promo_code="HUGE"
        )

        assert price.discount + price.promo_discount == price.accommodation_total
        assert price.total_price == Decimal("2390")

    def test_rejected_promo_raises(self, db, unit):
        with pytest.raises(PromoInvalidError) as exc_info:
            PricingService.calculate_price(
                db, unit.id, date(2030, 3, 1), date(2030, 3, 4), guests=2, promo_code="NOPE"
            )
        assert exc_info.value.detail == "Promo code not found"

    def test_checkout_must_follow_checkin(self, db, unit):
        with pytest.raises(InvalidStayLengthError):
            PricingService.calculate_price(db, unit.id, date(2030, 3, 4), date(2030, 3, 4), guests=2)

    def test_unknown_unit(self, db):
        with pytest.raises(NotFoundError):
            PricingService.calculate_price(db, uuid.uuid4(), date(2030, 3, 1), date(2030, 3, 2), guests=1)

    def test_unit_without_pricing(self, db, owner):
        bare = Unit(owner_id=owner.id, title="Bare")
        db.add(bare)
        db.commit()

        with pytest.raises(NotFoundError) as exc_info:
            PricingService.calculate_price(db, bare.id, date(2030, 3, 1), date(2030, 3, 2), guests=1)
        assert exc_info.value.error_code == "PRICING_NOT_FOUND"


class TestPromoValidation:
    """Promo checks run in a fixed order and the first failure wins."""

    NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)

    def validate(self, db, unit, code="SUMMER10", amount="9000", nights=3, user_id=None):
        return PricingService.validate_promo_code(
            db, code, unit.id, Decimal(amount), nights, user_id=user_id, now=self.NOW
        )

    def test_percentage_promo(self, db, unit, make_promo):
        make_promo(min_nights=2)

        result = self.validate(db, unit)

        assert result.valid
        assert result.discount == Decimal("900")
        assert result.message == "10% discount"

    def test_percentage_capped_by_max_discount(self, db, unit, make_promo):
        make_promo(max_discount=Decimal("500"))
        assert self.validate(db, unit).discount == Decimal("500")

    def test_fixed_promo_capped_by_amount(self, db, unit, make_promo):
        make_promo(code="FLAT", discount_type=PromoCodeType.FIXED, value="2000")

        result = self.validate(db, unit, code="FLAT", amount="1500")

        assert result.discount == Decimal("1500")
        assert result.message == "2000 discount"

    def test_code_lookup_is_case_insensitive(self, db, unit, make_promo):
        make_promo()
        assert self.validate(db, unit, code="  summer10 ").valid

    def test_mixed_case_code_is_stored_upper_case(self, db, unit, make_promo):
        promo = make_promo(code="Summer10")

        assert promo.code == "SUMMER10"
        assert self.validate(db, unit, code="summer10").valid
        assert self.validate(db, unit, code="Summer10").valid

    def test_mixed_case_row_written_without_orm_is_found(self, db, unit, make_promo):
        promo = make_promo()
        db.execute(update(PromoCode.__table__).where(PromoCode.__table__.c.id == promo.id).values(code="Winter5"))
        db.commit()

        assert self.validate(db, unit, code="WINTER5").valid
        assert self.validate(db, unit, code="winter5").valid

    def test_not_found(self, db, unit):
        result = self.validate(db, unit, code="MISSING")
        assert not result.valid
        assert result.message == "Promo code not found"

    def test_inactive(self, db, unit, make_promo):
        make_promo(is_active=False, valid_until=self.NOW - timedelta(days=1))
        assert self.validate(db, unit).message == "Promo code is not active"

    def test_not_valid_yet(self, db, unit, make_promo):
        make_promo(valid_from=self.NOW + timedelta(days=1))
        assert self.validate(db, unit).message == "Promo code is not valid yet"

    def test_expired(self, db, unit, make_promo):
        make_promo(valid_until=self.NOW - timedelta(minutes=1))
        assert self.validate(db, unit).message == "Promo code has expired"

    def test_usage_limit_reached(self, db, unit, make_promo):
        make_promo(usage_limit=5, usage_count=5, min_nights=10)
        assert self.validate(db, unit).message == "Promo code usage limit reached"

    def test_zero_usage_limit_means_unlimited(self, db, unit, make_promo):
        make_promo(usage_limit=0, usage_count=12)
        assert self.validate(db, unit).valid

    def test_min_nights(self, db, unit, make_promo):
        make_promo(min_nights=5, min_amount=Decimal("100000"))
        assert self.validate(db, unit).message == "Minimum number of nights: 5"

    def test_min_amount(self, db, unit, make_promo):
        make_promo(min_amount=Decimal("10000"))
        assert self.validate(db, unit).message == "Minimum order amount: 10000"

    def test_restricted_to_other_units(self, db, unit, make_promo):
        make_promo(unit_ids=[str(uuid.uuid4())])
        assert self.validate(db, unit).message == "Promo code does not apply to this unit"

    def test_allowed_unit(self, db, unit, make_promo):
        make_promo(unit_ids=[str(unit.id)])
        assert self.validate(db, unit).valid

    def test_per_user_limit(self, db, unit, guest, make_promo, make_booking):
        make_promo(per_user_limit=1)
        make_booking(promo_code="SUMMER10")

        result = self.validate(db, unit, user_id=guest.id)

        assert not result.valid
        assert result.message == "You have already used this promo code"
        # Another guest is not affected
        assert self.validate(db, unit, user_id=uuid.uuid4()).valid

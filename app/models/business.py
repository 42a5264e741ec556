# ================================
# BOOKING ENGINE MODELS (models/business.py)
# ================================

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, Date, DateTime, ForeignKey, JSON,
    Numeric, Index, UniqueConstraint, CheckConstraint, Uuid
)
from sqlalchemy.orm import relationship, validates
from app.models.base import Base, OwnerMixin, enum_column
from app.models.enums import (
    UnitStatus, BookingStatus, PaymentStatus, PromoCodeType, BlockedDateSource
)
from datetime import datetime, timezone

class Unit(Base, OwnerMixin):
    """Bookable rental listing"""
    __tablename__ = "units"

    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, unique=True)
    address = Column(String(500), nullable=True)
    status = enum_column(UnitStatus, nullable=False, default=UnitStatus.DRAFT)

    # Stay constraints
    max_guests = Column(Integer, nullable=False, default=2)
    min_nights = Column(Integer, nullable=False, default=1)
    max_nights = Column(Integer, nullable=False, default=30)

    # Relationships
    pricing_rule = relationship("PricingRule", back_populates="unit", uselist=False, cascade="all, delete-orphan")
    seasonal_adjustments = relationship("SeasonalAdjustment", back_populates="unit", cascade="all, delete-orphan")
    weekday_adjustments = relationship("WeekdayAdjustment", back_populates="unit", cascade="all, delete-orphan")
    blocked_dates = relationship("BlockedDate", back_populates="unit", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="unit")

    __table_args__ = (
        Index('idx_units_status', 'status'),
        CheckConstraint('min_nights >= 1', name='ck_units_min_nights'),
        CheckConstraint('max_nights >= min_nights', name='ck_units_max_nights'),
    )

    @property
    def is_bookable(self) -> bool:
        return self.status == UnitStatus.PUBLISHED

    def __repr__(self):
        return f"<Unit(title='{self.title}', status='{self.status}')>"

class PricingRule(Base):
    """Nightly price and fees, one per unit"""
    __tablename__ = "pricing_rules"

    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False, unique=True)

    base_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="RUB")
    cleaning_fee = Column(Numeric(12, 2), nullable=False, default=0)
    extra_guest_fee = Column(Numeric(12, 2), nullable=False, default=0)  # per extra guest per night
    base_guests = Column(Integer, nullable=False, default=2)

    # Percentages, e.g. 10 = 10%
    weekly_discount = Column(Numeric(5, 2), nullable=True)
    monthly_discount = Column(Numeric(5, 2), nullable=True)
    service_fee_percent = Column(Numeric(5, 2), nullable=False, default=0)

    unit = relationship("Unit", back_populates="pricing_rule")

    def __repr__(self):
        return f"<PricingRule(unit='{self.unit_id}', base_price='{self.base_price} {self.currency}')>"

class SeasonalAdjustment(Base):
    """Multiplier for an inclusive date window, the highest active one wins per day"""
    __tablename__ = "seasonal_adjustments"

    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    multiplier = Column(Numeric(6, 3), nullable=False, default=1)
    is_active = Column(Boolean, default=True, nullable=False)

    unit = relationship("Unit", back_populates="seasonal_adjustments")

    __table_args__ = (
        Index('idx_seasonal_adjustments_unit_dates', 'unit_id', 'start_date', 'end_date'),
        CheckConstraint('end_date >= start_date', name='ck_seasonal_adjustments_range'),
    )

    def covers(self, day) -> bool:
        return self.is_active and self.start_date <= day <= self.end_date

    def __repr__(self):
        return f"<SeasonalAdjustment(name='{self.name}', {self.start_date}..{self.end_date}, x{self.multiplier})>"

class WeekdayAdjustment(Base):
    """Multiplier per day of week, Sunday=0 ... Saturday=6"""
    __tablename__ = "weekday_adjustments"

    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    multiplier = Column(Numeric(6, 3), nullable=False, default=1)

    unit = relationship("Unit", back_populates="weekday_adjustments")

    __table_args__ = (
        UniqueConstraint('unit_id', 'day_of_week', name='uq_weekday_adjustments_unit_day'),
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_weekday_adjustments_day'),
    )

    def __repr__(self):
        return f"<WeekdayAdjustment(unit='{self.unit_id}', day={self.day_of_week}, x{self.multiplier})>"

class BlockedDate(Base):
    """A day unavailable independent of bookings (manual hold or external busy period)"""
    __tablename__ = "blocked_dates"

    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    source = enum_column(BlockedDateSource, nullable=False, default=BlockedDateSource.MANUAL)
    external_ref = Column(String(500), nullable=True)  # UID of the imported VEVENT
    reason = Column(Text, nullable=True)
    calendar_sync_id = Column(Uuid, ForeignKey('calendar_syncs.id', ondelete='SET NULL'), nullable=True)

    unit = relationship("Unit", back_populates="blocked_dates")

    __table_args__ = (
        UniqueConstraint('unit_id', 'date', name='uq_blocked_dates_unit_date'),
        Index('idx_blocked_dates_source', 'source'),
        Index('idx_blocked_dates_calendar_sync_id', 'calendar_sync_id'),
    )

    def __repr__(self):
        return f"<BlockedDate(unit='{self.unit_id}', date='{self.date}', source='{self.source}')>"

class PromoCode(Base):
    """Discount code, matched case-insensitively (stored upper case)"""
    __tablename__ = "promo_codes"

    code = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    discount_type = enum_column(PromoCodeType, nullable=False)
    value = Column(Numeric(12, 2), nullable=False)

    # Optional constraints
    min_nights = Column(Integer, nullable=True)
    min_amount = Column(Numeric(12, 2), nullable=True)
    max_discount = Column(Numeric(12, 2), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=True)
    unit_ids = Column(JSON, nullable=False, default=list)  # empty = all units

    is_active = Column(Boolean, default=True, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)

    bookings = relationship("Booking", back_populates="promo_code")

    __table_args__ = (
        CheckConstraint('usage_count >= 0', name='ck_promo_codes_usage_count'),
    )

    @validates("code")
    def normalize_code(self, key, value):
        return value.strip().upper() if value else value

    def applies_to_unit(self, unit_id) -> bool:
        allowed = self.unit_ids or []
        return not allowed or str(unit_id) in {str(item) for item in allowed}

    def __repr__(self):
        return f"<PromoCode(code='{self.code}', type='{self.discount_type}', value='{self.value}')>"

class Booking(Base):
    """A guest's stay on a unit, [check_in, check_out)"""
    __tablename__ = "bookings"

    booking_number = Column(String(50), nullable=False, unique=True)
    unit_id = Column(Uuid, ForeignKey('units.id'), nullable=False)
    guest_id = Column(Uuid, nullable=False)  # user from the auth service

    # Stay
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    nights = Column(Integer, nullable=False)
    guests = Column(Integer, nullable=False, default=1)

    # Status
    status = enum_column(BookingStatus, nullable=False, default=BookingStatus.PENDING)
    payment_status = enum_column(PaymentStatus, nullable=False, default=PaymentStatus.PENDING)

    # Price breakdown (authoritative, computed server-side)
    base_total = Column(Numeric(12, 2), nullable=False)
    accommodation_total = Column(Numeric(12, 2), nullable=False)
    cleaning_fee = Column(Numeric(12, 2), nullable=False, default=0)
    service_fee = Column(Numeric(12, 2), nullable=False, default=0)
    extra_guest_fee = Column(Numeric(12, 2), nullable=False, default=0)
    seasonal_adjustment = Column(Numeric(12, 2), nullable=False, default=0)
    weekday_adjustment = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    promo_discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="RUB")
    nightly_breakdown = Column(JSON, nullable=True)

    promo_code_id = Column(Uuid, ForeignKey('promo_codes.id', ondelete='SET NULL'), nullable=True)

    # Contact
    contact_name = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    contact_email = Column(String(255), nullable=True)
    guest_comment = Column(Text, nullable=True)
    admin_comment = Column(Text, nullable=True)

    # Cancellation
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(12, 2), nullable=True)

    # Relationships
    unit = relationship("Unit", back_populates="bookings")
    promo_code = relationship("PromoCode", back_populates="bookings")
    nights_held = relationship("BookingNight", back_populates="booking", cascade="all, delete-orphan")
    status_history = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingStatusHistory.changed_at"
    )

    __table_args__ = (
        Index('idx_bookings_unit_dates', 'unit_id', 'check_in', 'check_out'),
        Index('idx_bookings_guest_id', 'guest_id'),
        Index('idx_bookings_status', 'status'),
        CheckConstraint('check_out > check_in', name='ck_bookings_dates'),
    )

    def __repr__(self):
        return f"<Booking(number='{self.booking_number}', unit='{self.unit_id}', status='{self.status}')>"

class BookingNight(Base):
    """One row per held night, the unique index rejects double-booking"""
    __tablename__ = "booking_nights"

    booking_id = Column(Uuid, ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False)
    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    night = Column(Date, nullable=False)

    booking = relationship("Booking", back_populates="nights_held")

    __table_args__ = (
        UniqueConstraint('unit_id', 'night', name='uq_booking_nights_unit_night'),
        Index('idx_booking_nights_booking_id', 'booking_id'),
    )

class BookingStatusHistory(Base):
    """Append-only log of booking status changes"""
    __tablename__ = "booking_status_history"

    booking_id = Column(Uuid, ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False)
    changed_by = Column(Uuid, nullable=True)  # None for system changes

    # Status Change Information
    from_status = enum_column(BookingStatus, nullable=True)
    to_status = enum_column(BookingStatus, nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    comment = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="status_history")

    __table_args__ = (
        Index('idx_booking_status_history_booking_id', 'booking_id'),
    )

    def __repr__(self):
        return f"<BookingStatusHistory(booking='{self.booking_id}', from='{self.from_status}', to='{self.to_status}')>"

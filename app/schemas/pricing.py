# ================================
# PRICING SCHEMAS (schemas/pricing.py)
# ================================

from typing import Optional, List
from datetime import date
from decimal import Decimal
from pydantic import Field, field_validator, model_validator
import uuid

from app.schemas.base import BaseSchema

class PriceCalculationRequest(BaseSchema):
    """Schema for a price quote"""
    unit_id: uuid.UUID
    check_in: date
    check_out: date
    guests: int = Field(1, ge=1, le=50)
    promo_code: Optional[str] = Field(None, max_length=50)

    @field_validator('promo_code')
    @classmethod
    def normalize_promo_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.upper() or None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.check_out <= self.check_in:
            raise ValueError('check_out must be after check_in')
        return self

class NightlyRateResponse(BaseSchema):
    date: date
    base_price: Decimal
    seasonal_multiplier: Decimal
    weekday_multiplier: Decimal
    price: Decimal
    season_name: Optional[str] = None

class PriceCalculationResponse(BaseSchema):
    """Full price breakdown of a stay"""
    unit_id: uuid.UUID
    check_in: date
    check_out: date
    nights: int
    guests: int
    currency: str
    nightly_rates: List[NightlyRateResponse]
    base_total: Decimal
    accommodation_total: Decimal
    seasonal_adjustment: Decimal
    weekday_adjustment: Decimal
    average_nightly_price: Decimal
    cleaning_fee: Decimal
    extra_guest_fee: Decimal
    discount: Decimal
    discount_type: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    service_fee: Decimal
    promo_code: Optional[str] = None
    promo_discount: Decimal
    total_price: Decimal

    @field_validator('promo_code', mode='before')
    @classmethod
    def promo_code_string(cls, v):
        # The calculation carries the PromoCode row
        return getattr(v, "code", v)

class PromoValidateRequest(BaseSchema):
    code: str = Field(..., min_length=1, max_length=50)
    unit_id: uuid.UUID
    amount: Decimal = Field(..., ge=0)
    nights: int = Field(..., ge=1)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.upper()

class PromoValidateResponse(BaseSchema):
    valid: bool
    message: str
    discount: Optional[Decimal] = None
    code: Optional[str] = None

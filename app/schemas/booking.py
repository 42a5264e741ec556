# ================================
# BOOKING SCHEMAS (schemas/booking.py)
# ================================

from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field, field_validator
import uuid

from app.models.enums import BookingStatus, PaymentStatus
from app.schemas.base import BaseSchema, BaseResponseSchema, TimestampMixin

class BookingCreate(BaseSchema):
    """Schema for creating a booking, prices are always computed server-side"""
    unit_id: uuid.UUID
    check_in: date
    check_out: date
    guests: int = Field(..., ge=1, le=50)
    promo_code: Optional[str] = Field(None, max_length=50)

    # Contact
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[str] = Field(None, max_length=255)
    guest_comment: Optional[str] = Field(None, max_length=2000)

    @field_validator('promo_code')
    @classmethod
    def normalize_promo_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.upper() or None

class BookingStatusUpdate(BaseSchema):
    """Schema for moving a booking along its lifecycle"""
    status: BookingStatus
    comment: Optional[str] = Field(None, max_length=2000)
    cancel_reason: Optional[str] = Field(None, max_length=2000)

class BookingCancel(BaseSchema):
    """Schema for a guest canceling their own booking"""
    reason: Optional[str] = Field(None, max_length=2000)

class BookingStatusHistoryResponse(BaseResponseSchema):
    """Schema for status history entries"""
    booking_id: uuid.UUID
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    changed_by: Optional[uuid.UUID] = None
    changed_at: datetime
    comment: Optional[str] = None

class BookingResponse(BaseResponseSchema, TimestampMixin):
    """Schema for booking response"""
    booking_number: str
    unit_id: uuid.UUID
    guest_id: uuid.UUID
    check_in: date
    check_out: date
    nights: int
    guests: int
    status: BookingStatus
    payment_status: PaymentStatus

    # Price breakdown
    base_total: Decimal
    accommodation_total: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    extra_guest_fee: Decimal
    seasonal_adjustment: Decimal
    weekday_adjustment: Decimal
    discount: Decimal
    promo_discount: Decimal
    total_price: Decimal
    currency: str
    nightly_breakdown: Optional[List[Dict[str, Any]]] = None
    promo_code_id: Optional[uuid.UUID] = None

    # Contact
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    guest_comment: Optional[str] = None
    admin_comment: Optional[str] = None

    # Cancellation
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None

class BookingListResponse(BaseSchema):
    """Paginated booking list"""
    items: List[BookingResponse]
    total: int
    page: int
    page_size: int

class BookingStatsResponse(BaseSchema):
    """Booking counts by status"""
    total: int
    pending: int
    confirmed: int
    paid: int
    completed: int
    canceled: int
    refunded: int

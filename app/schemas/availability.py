# ================================
# AVAILABILITY SCHEMAS (schemas/availability.py)
# ================================

from typing import Optional, List, Union
from datetime import date
from pydantic import Field, field_validator
import uuid

from app.schemas.base import BaseSchema

class AvailabilityResponse(BaseSchema):
    """Result of an availability check for a stay"""
    unit_id: uuid.UUID
    check_in: date
    check_out: date
    available: bool
    reason: Optional[str] = None
    conflicting_dates: List[date] = []

class OccupiedDateResponse(BaseSchema):
    """A single occupied day, booking_id is "blocked" for blocked dates"""
    date: date
    booking_id: Union[uuid.UUID, str]
    status: str

class CalendarDayResponse(BaseSchema):
    date: date
    available: bool
    price: Optional[int] = None

class AvailabilityCalendarResponse(BaseSchema):
    unit_id: uuid.UUID
    year: int
    month: int
    days: List[CalendarDayResponse]

class NextAvailableResponse(BaseSchema):
    """First free window, both dates are None when nothing was found"""
    unit_id: uuid.UUID
    nights: int
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    found: bool

class BlockDatesRequest(BaseSchema):
    """Schema for manual blocking or unblocking of dates"""
    dates: List[date] = Field(..., min_length=1, max_length=366)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator('dates')
    @classmethod
    def unique_dates(cls, v: List[date]) -> List[date]:
        return sorted(set(v))

class BlockDatesResponse(BaseSchema):
    unit_id: uuid.UUID
    requested: int
    affected: int


# ================================
# SCHEMAS PACKAGE INITIALIZATION (schemas/__init__.py)
# ================================

"""
Pydantic Schemas Package

Zentrale Imports für alle Schemas im System
"""

# Base Schemas
from app.schemas.base import (
    BaseSchema,
    BaseResponseSchema,
    TimestampMixin,
    ErrorResponse
)

# Availability Schemas
from app.schemas.availability import (
    AvailabilityResponse,
    OccupiedDateResponse,
    CalendarDayResponse,
    AvailabilityCalendarResponse,
    NextAvailableResponse,
    BlockDatesRequest,
    BlockDatesResponse
)

# Pricing Schemas
from app.schemas.pricing import (
    PriceCalculationRequest,
    NightlyRateResponse,
    PriceCalculationResponse,
    PromoValidateRequest,
    PromoValidateResponse
)

# Booking Schemas
from app.schemas.booking import (
    BookingCreate,
    BookingStatusUpdate,
    BookingCancel,
    BookingResponse,
    BookingListResponse,
    BookingStatsResponse,
    BookingStatusHistoryResponse
)

# Calendar Sync Schemas
from app.schemas.calendar import (
    CalendarSyncCreate,
    CalendarSyncUpdate,
    CalendarSyncResponse,
    ImportResultResponse,
    SyncRunResponse,
    CalendarEventResponse
)

__all__ = [
    # Base
    "BaseSchema", "BaseResponseSchema", "TimestampMixin", "ErrorResponse",

    # Availability
    "AvailabilityResponse", "OccupiedDateResponse", "CalendarDayResponse",
    "AvailabilityCalendarResponse", "NextAvailableResponse",
    "BlockDatesRequest", "BlockDatesResponse",

    # Pricing
    "PriceCalculationRequest", "NightlyRateResponse", "PriceCalculationResponse",
    "PromoValidateRequest", "PromoValidateResponse",

    # Booking
    "BookingCreate", "BookingStatusUpdate", "BookingCancel", "BookingResponse",
    "BookingListResponse", "BookingStatsResponse", "BookingStatusHistoryResponse",

    # Calendar Sync
    "CalendarSyncCreate", "CalendarSyncUpdate", "CalendarSyncResponse",
    "ImportResultResponse", "SyncRunResponse", "CalendarEventResponse",
]

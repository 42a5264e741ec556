# ================================
# DATABASE INITIALIZATION (models/__init__.py)
# ================================

"""
Database Models Package

Importiert alle Models für Alembic Auto-Generation
"""

from app.models.base import Base

# Import all models for Alembic auto-generation
from app.models.business import (
    Unit, PricingRule, SeasonalAdjustment, WeekdayAdjustment,
    BlockedDate, PromoCode,
    Booking, BookingNight, BookingStatusHistory
)
from app.models.calendar import CalendarSyncConfig, ExternalCalendarEvent

# Export all models
__all__ = [
    "Base",
    "Unit", "PricingRule", "SeasonalAdjustment", "WeekdayAdjustment",
    "BlockedDate", "PromoCode",
    "Booking", "BookingNight", "BookingStatusHistory",
    "CalendarSyncConfig", "ExternalCalendarEvent",
]

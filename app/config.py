# ================================
# CONFIGURATION (config.py)
# ================================

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional
import secrets

load_dotenv()

class settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # Ignore extra fields from .env
    )

    # Database
    DATABASE_URL: str = "sqlite:///./rental_booking.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False

    # Security (tokens are issued by the auth collaborator, we only verify them)
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ALGORITHM: str = "HS256"

    # Bookings
    BOOKING_NUMBER_PREFIX: str = "CA"
    DEFAULT_CURRENCY: str = "RUB"

    # Cancellation refund tiers (days before check-in)
    FULL_REFUND_DAYS: int = 7
    PARTIAL_REFUND_DAYS: int = 3
    PARTIAL_REFUND_PERCENT: int = 50

    # Availability
    AVAILABILITY_SEARCH_DAYS: int = 90

    # Long-stay discount thresholds (nights)
    LONG_STAY_WEEKLY_NIGHTS: int = 7
    LONG_STAY_MONTHLY_NIGHTS: int = 30

    # iCal import / export
    ICAL_FETCH_TIMEOUT: float = 30.0
    ICAL_USER_AGENT: str = "RentalBookingEngine/1.0"
    ICAL_PRODID: str = "-//Rental Booking Engine//Calendar Sync//EN"
    ICAL_CALENDAR_NAME: str = "Rental bookings"
    ICAL_TIMEZONE: str = "Europe/Moscow"
    ICAL_UID_DOMAIN: str = "booking-engine.local"
    ICAL_EXPORT_LOOKBACK_DAYS: int = 365

    # Calendar sync scheduler
    ENABLE_CALENDAR_SYNC: bool = True
    CALENDAR_SYNC_CHECK_SECONDS: int = 300
    DEFAULT_SYNC_INTERVAL_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Rental Booking Engine"
    BASE_URL: str = "http://localhost:8000"
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Public URL of an export feed, handed to the third-party listing site
    def ical_feed_url(self, export_token: Optional[str]) -> Optional[str]:
        if not export_token:
            return None
        return f"{self.BASE_URL}/api/v1/calendar/ical/{export_token}"

settings = settings()

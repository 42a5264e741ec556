# ================================
# DOMAIN ENUMS (models/enums.py)
# ================================

import enum

class UnitStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    HIDDEN = "hidden"
    ARCHIVED = "archived"

class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELED = "canceled"
    COMPLETED = "completed"
    REFUNDED = "refunded"

# Bookings that hold their nights
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.PAID)

# Bookings published to external calendars
EXPORTED_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.PAID, BookingStatus.COMPLETED)

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"

class PromoCodeType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class BlockedDateSource(str, enum.Enum):
    MANUAL = "manual"
    BOOKING = "booking"
    AVITO = "avito"
    BOOKING_COM = "booking_com"
    AIRBNB = "airbnb"
    OTHER = "other"

    @classmethod
    def from_source_name(cls, source_name: str) -> "BlockedDateSource":
        """Provider tag for an import source label"""
        normalized = (source_name or "").strip().lower()
        if normalized in ("avito", "авито"):
            return cls.AVITO
        if normalized in ("booking.com", "booking_com"):
            return cls.BOOKING_COM
        if normalized == "airbnb":
            return cls.AIRBNB
        return cls.OTHER

class CalendarSyncType(str, enum.Enum):
    EXPORT = "export"
    IMPORT = "import"

class CalendarSyncStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"

class UserRole(str, enum.Enum):
    USER = "user"
    OWNER = "owner"
    ADMIN = "admin"

# ================================
# CUSTOM EXCEPTIONS (core/exceptions.py)
# ================================

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

class AppException(Exception):
    """Base Exception für Application-spezifische Fehler"""

    def __init__(self, detail: str, status_code: int = 400, error_code: str = None):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(detail)

    def payload(self) -> Dict[str, Any]:
        """Extra fields rendered next to detail/error_code"""
        return {}

class AuthenticationError(AppException):
    """Authentication-spezifische Fehler"""

    def __init__(self, detail: str = "Authentication failed", error_code: str = "AUTH_FAILED"):
        super().__init__(detail, 401, error_code)

class AuthorizationError(AppException):
    """Authorization-spezifische Fehler"""

    def __init__(self, detail: str = "Access denied", error_code: str = "ACCESS_DENIED"):
        super().__init__(detail, 403, error_code)

class ValidationError(AppException):
    """Validation-spezifische Fehler"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(detail, 422, error_code)

# ================================
# BOOKING ENGINE ERRORS
# ================================

class NotFoundError(AppException):
    """Unit, booking, pricing rule, promo code or sync config missing"""

    def __init__(self, detail: str = "Resource not found", error_code: str = "NOT_FOUND"):
        super().__init__(detail, 404, error_code)

class UnbookableError(AppException):
    """Unit exists but is not published"""

    def __init__(self, detail: str = "Unit is not available for booking", error_code: str = "UNIT_UNBOOKABLE"):
        super().__init__(detail, 409, error_code)

class InvalidStayLengthError(ValidationError):
    """Number of nights outside the unit's min/max"""

    def __init__(self, detail: str, min_nights: int = None, max_nights: int = None):
        super().__init__(detail, "INVALID_STAY_LENGTH")
        self.min_nights = min_nights
        self.max_nights = max_nights

    def payload(self) -> Dict[str, Any]:
        return {"min_nights": self.min_nights, "max_nights": self.max_nights}

class DatesOccupiedError(AppException):
    """Requested stay overlaps bookings or blocked dates"""

    def __init__(self, conflicting_dates: Iterable[date], detail: str = "Dates are occupied"):
        super().__init__(detail, 409, "DATES_OCCUPIED")
        self.conflicting_dates: List[date] = sorted(set(conflicting_dates))

    def payload(self) -> Dict[str, Any]:
        return {"conflicting_dates": [d.isoformat() for d in self.conflicting_dates]}

class GuestCountExceededError(ValidationError):
    """More guests than the unit allows"""

    def __init__(self, guests: int, max_guests: int):
        super().__init__(
            f"Maximum number of guests is {max_guests}, got {guests}",
            "GUEST_COUNT_EXCEEDED"
        )
        self.guests = guests
        self.max_guests = max_guests

    def payload(self) -> Dict[str, Any]:
        return {"max_guests": self.max_guests}

class InvalidTransitionError(AppException):
    """Booking status change not allowed by the state table"""

    def __init__(self, from_status: Any, to_status: Any, detail: Optional[str] = None):
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            detail or f"Cannot change booking status from {from_value} to {to_value}",
            400,
            "INVALID_TRANSITION"
        )
        self.from_status = from_status
        self.to_status = to_status

class PromoInvalidError(ValidationError):
    """Promo code rejected, reason is human readable"""

    def __init__(self, reason: str):
        super().__init__(reason, "PROMO_INVALID")
        self.reason = reason

    def payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}

class InactiveError(AppException):
    """Sync config exists but is paused or of the wrong direction"""

    def __init__(self, detail: str = "Calendar feed is not active", error_code: str = "INACTIVE"):
        super().__init__(detail, 410, error_code)

class SyncFetchError(AppException):
    """Remote iCal feed could not be downloaded"""

    def __init__(self, detail: str, error_code: str = "SYNC_FETCH_ERROR"):
        super().__init__(detail, 502, error_code)

class SyncParseError(AppException):
    """Remote iCal feed could not be parsed"""

    def __init__(self, detail: str, error_code: str = "SYNC_PARSE_ERROR"):
        super().__init__(detail, 422, error_code)

class SyncInProgressError(AppException):
    """Another import of the same sync config is running"""

    def __init__(self, detail: str = "Calendar import already running", error_code: str = "SYNC_IN_PROGRESS"):
        super().__init__(detail, 409, error_code)

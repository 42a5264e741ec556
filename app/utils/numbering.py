# ================================
# BOOKING NUMBERS (utils/numbering.py)
# ================================

from datetime import datetime, timezone
from typing import Optional
import secrets
import string

_BASE36 = string.digits + string.ascii_uppercase

def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("Only non-negative numbers can be encoded")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))

def generate_booking_number(prefix: str, now: Optional[datetime] = None, random_length: int = 4) -> str:
    """Human readable booking number, e.g. CA-MB5X2K1Q-7F3A"""
    now = now or datetime.now(timezone.utc)
    timestamp = to_base36(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(random_length))
    return f"{prefix}-{timestamp}-{suffix}"

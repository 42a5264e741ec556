# ================================
# BOOKING STATE MACHINE (services/booking_state_machine.py)
# ================================

from typing import Dict, FrozenSet, Union

from app.models.enums import BookingStatus
from app.core.exceptions import InvalidTransitionError

class BookingStateMachine:
    """Single place where booking status transitions are decided"""

    TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
        BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELED}),
        BookingStatus.CONFIRMED: frozenset({BookingStatus.PAID, BookingStatus.CANCELED}),
        BookingStatus.PAID: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELED, BookingStatus.REFUNDED}),
        BookingStatus.COMPLETED: frozenset({BookingStatus.REFUNDED}),
        BookingStatus.CANCELED: frozenset(),  # terminal
        BookingStatus.REFUNDED: frozenset(),  # terminal
    }

    INITIAL = BookingStatus.PENDING

    @classmethod
    def allowed_targets(cls, status: Union[BookingStatus, str]) -> FrozenSet[BookingStatus]:
        return cls.TRANSITIONS[BookingStatus(status)]

    @classmethod
    def can_transition(cls, from_status: Union[BookingStatus, str], to_status: Union[BookingStatus, str]) -> bool:
        try:
            return BookingStatus(to_status) in cls.allowed_targets(from_status)
        except ValueError:
            return False

    @classmethod
    def is_terminal(cls, status: Union[BookingStatus, str]) -> bool:
        return not cls.allowed_targets(status)

    @classmethod
    def transition(
        cls,
        from_status: Union[BookingStatus, str],
        to_status: Union[BookingStatus, str]
    ) -> BookingStatus:
        """Validate a status change and return the target status"""
        try:
            source = BookingStatus(from_status)
            target = BookingStatus(to_status)
        except ValueError:
            raise InvalidTransitionError(from_status, to_status, f"Unknown booking status: {to_status!r}")

        if target not in cls.TRANSITIONS[source]:
            raise InvalidTransitionError(source, target)

        return target

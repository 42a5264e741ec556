# ================================
# BOOKING STATE MACHINE TESTS (tests/test_state_machine.py)
# ================================

import itertools

import pytest

from app.core.exceptions import InvalidTransitionError
from app.models.enums import BookingStatus
from app.services.booking_state_machine import BookingStateMachine

ALLOWED = {
    (BookingStatus.PENDING, BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingStatus.CANCELED),
    (BookingStatus.CONFIRMED, BookingStatus.PAID),
    (BookingStatus.CONFIRMED, BookingStatus.CANCELED),
    (BookingStatus.PAID, BookingStatus.COMPLETED),
    (BookingStatus.PAID, BookingStatus.CANCELED),
    (BookingStatus.PAID, BookingStatus.REFUNDED),
    (BookingStatus.COMPLETED, BookingStatus.REFUNDED),
}


@pytest.mark.parametrize(
    "from_status,to_status",
    list(itertools.product(BookingStatus, BookingStatus))
)
def test_every_status_pair(from_status, to_status):
    """Only the pairs of the transition table are accepted."""
    if (from_status, to_status) in ALLOWED:
        assert BookingStateMachine.transition(from_status, to_status) == to_status
    else:
        with pytest.raises(InvalidTransitionError):
            BookingStateMachine.transition(from_status, to_status)


def test_terminal_statuses():
    assert BookingStateMachine.is_terminal(BookingStatus.CANCELED)
    assert BookingStateMachine.is_terminal(BookingStatus.REFUNDED)
    assert not BookingStateMachine.is_terminal(BookingStatus.COMPLETED)


def test_accepts_string_values():
    assert BookingStateMachine.can_transition("pending", "confirmed")
    assert not BookingStateMachine.can_transition("pending", "paid")
    assert not BookingStateMachine.can_transition("pending", "archived")


def test_unknown_target_status():
    with pytest.raises(InvalidTransitionError) as exc_info:
        BookingStateMachine.transition(BookingStatus.PENDING, "archived")
    assert exc_info.value.status_code == 400


def test_error_message_names_both_statuses():
    with pytest.raises(InvalidTransitionError) as exc_info:
        BookingStateMachine.transition(BookingStatus.CANCELED, BookingStatus.CONFIRMED)
    assert "canceled" in exc_info.value.detail
    assert "confirmed" in exc_info.value.detail

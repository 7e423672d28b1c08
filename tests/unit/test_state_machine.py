# tests/unit/test_state_machine.py

import pytest

from booking_core.domain.state_machine import BookingStateMachine, BookingStatus
from booking_core.domain.exceptions import InvalidStateError, InvalidStateTransitionError


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_valid_happy_path():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
    )

    assert BookingStateMachine.can_transition(
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    )


# ---------------------
# INVALID TRANSITIONS
# ---------------------

def test_cannot_cancel_unconfirmed_booking():
    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            BookingStatus.PENDING,
            BookingStatus.CANCELLED,
        )


def test_cannot_reconfirm_confirmed_booking():
    assert not BookingStateMachine.can_transition(
        BookingStatus.CONFIRMED,
        BookingStatus.CONFIRMED,
    )


def test_terminal_state_cancelled():
    assert BookingStateMachine.is_terminal(BookingStatus.CANCELLED)
    assert BookingStateMachine.get_allowed_transitions(BookingStatus.CANCELLED) == set()

    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            BookingStatus.CANCELLED,
            BookingStatus.CONFIRMED,
        )


def test_transition_error_is_invalid_state():
    with pytest.raises(InvalidStateError) as exc_info:
        BookingStateMachine.validate_transition(
            BookingStatus.CANCELLED,
            BookingStatus.CANCELLED,
        )

    assert exc_info.value.code.value == "INVALID_STATE"
    assert exc_info.value.from_state == "cancelled"


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        BookingStateMachine.validate_transition(
            "confirmed",  # invalid type
            BookingStatus.CANCELLED,
        )

"""Booking lifecycle state machine."""
from datetime import date
from types import MappingProxyType
from typing import Optional

from errors import InvalidTransition, OutOfWindow
from models import BookingEvent, BookingStatus, RoomEvent


BOOKING_TRANSITIONS = MappingProxyType({
    (BookingStatus.PENDING, BookingEvent.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, BookingEvent.CHECK_IN): BookingStatus.CHECKED_IN,
    (BookingStatus.CHECKED_IN, BookingEvent.CHECK_OUT): BookingStatus.CHECKED_OUT,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.NO_SHOW): BookingStatus.NO_SHOW,
    (BookingStatus.CANCELLED, BookingEvent.REFUND): BookingStatus.REFUNDED,
    (BookingStatus.CHECKED_OUT, BookingEvent.REFUND): BookingStatus.REFUNDED,
})

# Room side-effect driven by a booking event
ROOM_SIDE_EFFECTS = MappingProxyType({
    BookingEvent.CHECK_IN: RoomEvent.OCCUPY,
    BookingEvent.CHECK_OUT: RoomEvent.VACATE,
})

# Events after which the booking no longer holds its room
RELEASING_EVENTS = frozenset({
    BookingEvent.CHECK_OUT,
    BookingEvent.CANCEL,
    BookingEvent.NO_SHOW,
})

ACTIVE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
})

TERMINAL_STATUSES = frozenset({
    BookingStatus.CHECKED_OUT,
    BookingStatus.CANCELLED,
    BookingStatus.NO_SHOW,
    BookingStatus.REFUNDED,
})


def allowed_events(current: BookingStatus) -> set[BookingEvent]:
    """Events accepted in the given state."""
    return {event for (state, event) in BOOKING_TRANSITIONS if state == current}


def next_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    """Look up the target state, raising InvalidTransition for unknown pairs."""
    target = BOOKING_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition("booking", current.value, event.value)
    return target


def in_stay_window(today: date, check_in: date, check_out: date) -> bool:
    return check_in <= today < check_out


def apply_event(
    current: BookingStatus,
    event: BookingEvent,
    *,
    today: date,
    check_in: date,
    check_out: date,
    override: bool = False,
) -> BookingStatus:
    """
    Validate a booking event against the transition table and its guards.

    Check-in is only accepted while today is within [check_in, check_out)
    unless a staff override is given. A no-show can only be recorded once
    the arrival date has passed.
    """
    target = next_status(current, event)

    if event == BookingEvent.CHECK_IN and not override and not in_stay_window(today, check_in, check_out):
        raise OutOfWindow(
            f"Check-in on {today.isoformat()} is outside the stay window "
            f"[{check_in.isoformat()}, {check_out.isoformat()})"
        )

    if event == BookingEvent.NO_SHOW and not today > check_in:
        raise InvalidTransition(
            "booking", current.value, event.value,
            message=f"No-show cannot be recorded before the arrival date {check_in.isoformat()} has passed",
        )

    return target


def room_side_effect(event: BookingEvent) -> Optional[RoomEvent]:
    return ROOM_SIDE_EFFECTS.get(event)

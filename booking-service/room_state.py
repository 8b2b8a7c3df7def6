"""Room and bed operational state machine."""
from types import MappingProxyType

from errors import InvalidTransition
from models import RoomEvent, RoomStatus


# Staff incident actions accepted from any state
MANUAL_EVENTS = MappingProxyType({
    RoomEvent.MAINTENANCE: RoomStatus.MAINTENANCE,
    RoomEvent.OUT_OF_ORDER: RoomStatus.OUT_OF_ORDER,
})

# Only an occupied unit blocks a check-in
ROOM_TRANSITIONS = MappingProxyType({
    (RoomStatus.AVAILABLE, RoomEvent.OCCUPY): RoomStatus.OCCUPIED,
    (RoomStatus.CLEANING, RoomEvent.OCCUPY): RoomStatus.OCCUPIED,
    (RoomStatus.MAINTENANCE, RoomEvent.OCCUPY): RoomStatus.OCCUPIED,
    (RoomStatus.OUT_OF_ORDER, RoomEvent.OCCUPY): RoomStatus.OCCUPIED,
    (RoomStatus.OCCUPIED, RoomEvent.VACATE): RoomStatus.CLEANING,
    (RoomStatus.CLEANING, RoomEvent.CLEANING_COMPLETE): RoomStatus.AVAILABLE,
    (RoomStatus.MAINTENANCE, RoomEvent.RESOLVE): RoomStatus.AVAILABLE,
    (RoomStatus.OUT_OF_ORDER, RoomEvent.RESOLVE): RoomStatus.AVAILABLE,
})

# Events staff may trigger directly; occupy/vacate only follow bookings
STAFF_EVENTS = frozenset({
    RoomEvent.MAINTENANCE,
    RoomEvent.OUT_OF_ORDER,
    RoomEvent.RESOLVE,
    RoomEvent.CLEANING_COMPLETE,
})


def next_status(current: RoomStatus, event: RoomEvent, *, guest_in_house: bool = False) -> RoomStatus:
    """
    Look up the target room state, raising InvalidTransition when not allowed.

    Resolving an incident while a guest is still checked in returns the
    room to occupied instead of available.
    """
    if event in MANUAL_EVENTS:
        return MANUAL_EVENTS[event]
    target = ROOM_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition("room", current.value, event.value)
    if event == RoomEvent.RESOLVE and guest_in_house:
        return RoomStatus.OCCUPIED
    return target


def accepts_check_in(current: RoomStatus) -> bool:
    return (current, RoomEvent.OCCUPY) in ROOM_TRANSITIONS

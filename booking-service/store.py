import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from errors import NotFound, StaleVersion
from models import Booking, BookingStatus, Room, RoomStatus


class BookingStore:
    """
    In-memory storage for bookings and rooms.

    Every booking and room has its own lock. Writers hold the lock of each
    entity they touch and write through commit(), which rejects records
    whose version no longer matches the stored one.
    """

    def __init__(self, rooms: Iterable[Room] = ()):
        self._bookings: Dict[str, Booking] = {}
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        for room in rooms:
            self._rooms[room.room_id] = room

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def locked(self, *, room_id: Optional[str] = None, booking_id: Optional[str] = None):
        """Hold the booking lock, then the room lock, for the duration of the block."""
        keys = []
        if booking_id is not None:
            keys.append(f"booking:{booking_id}")
        if room_id is not None:
            keys.append(f"room:{room_id}")
        acquired = []
        try:
            for key in keys:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    # Bookings

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking '{booking_id}' not found")
        return booking

    def booking_exists(self, booking_id: str) -> bool:
        return booking_id in self._bookings

    def list_bookings(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        bookings = list(self._bookings.values())
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        return bookings

    # Rooms

    def get_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' not found")
        return room

    def list_rooms(self, status: Optional[RoomStatus] = None) -> List[Room]:
        rooms = list(self._rooms.values())
        if status is not None:
            rooms = [r for r in rooms if r.status == status]
        return rooms

    def commit(self, *, bookings=(), rooms=(), new_bookings=()):
        """
        Write a set of changes all at once.

        bookings and rooms are (record, expected_version) pairs. Every
        version and every new booking id is checked before anything is
        written, so a conflict leaves the store untouched.
        """
        for booking, expected_version in bookings:
            self._check_version("Booking", booking.booking_id, self.get_booking(booking.booking_id).version,
                                expected_version)
        for room, expected_version in rooms:
            self._check_version("Room", room.room_id, self.get_room(room.room_id).version, expected_version)
        for booking in new_bookings:
            if booking.booking_id in self._bookings:
                raise StaleVersion(f"Booking '{booking.booking_id}' already exists")

        saved_bookings = [b.model_copy(update={"version": v + 1}) for b, v in bookings]
        saved_rooms = [r.model_copy(update={"version": v + 1}) for r, v in rooms]
        for booking in list(new_bookings) + saved_bookings:
            self._bookings[booking.booking_id] = booking
        for room in saved_rooms:
            self._rooms[room.room_id] = room
        return saved_bookings, saved_rooms

    @staticmethod
    def _check_version(entity: str, key: str, current: int, expected: int) -> None:
        if current != expected:
            raise StaleVersion(
                f"{entity} '{key}' changed concurrently (expected version {expected}, found {current})"
            )

    def active_bookings_for_room(self, room_id: str) -> List[Booking]:
        room = self.get_room(room_id)
        return [self._bookings[bid] for bid in room.active_booking_ids if bid in self._bookings]

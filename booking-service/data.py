from datetime import date
from decimal import Decimal
import random
import uuid
from models import AccommodationType, Room


# Sample room and bed inventory
ROOMS = [
    Room(room_id="room-101", room_number="101", base_rate=Decimal("120.00")),
    Room(room_id="room-102", room_number="102", base_rate=Decimal("120.00")),
    Room(room_id="room-201", room_number="201", base_rate=Decimal("180.00")),
    Room(room_id="room-202", room_number="202", base_rate=Decimal("180.00")),
    Room(room_id="room-301", room_number="301", base_rate=Decimal("260.00")),
    Room(
        room_id="dorm-1-bed-1",
        room_number="11",
        accommodation_type=AccommodationType.DORMITORY,
        bed_id="bed-1",
        base_rate=Decimal("35.00"),
    ),
    Room(
        room_id="dorm-1-bed-2",
        room_number="12",
        accommodation_type=AccommodationType.DORMITORY,
        bed_id="bed-2",
        base_rate=Decimal("35.00"),
    ),
]


def sample_rooms():
    """Fresh copies of the sample inventory."""
    return [room.model_copy(deep=True) for room in ROOMS]


def generate_booking_id(hotel_id: int, room_number: str, check_in: date):
    """
    Generate a booking ID following the pattern
    BOOK<hotel id><check-in YYYYMMDD><room or bed number><random 4 digits>.
    """
    unit = "".join(ch for ch in room_number if ch.isdigit()) or "0"
    return f"BOOK{hotel_id}{check_in:%Y%m%d}{unit}{random.randint(1000, 9999)}"


def generate_confirmation_number():
    """Generate a confirmation number."""
    return f"CONF-{uuid.uuid4().hex[:6].upper()}"

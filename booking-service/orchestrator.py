import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import booking_state
import pricing
import room_state
from data import generate_booking_id, generate_confirmation_number
from errors import InvalidDateRange, InvalidTransition, NotFound, RoomUnavailable
from flipt_service import FliptService
from models import (
    AvailabilityReport,
    AvailabilitySummary,
    Booking,
    BookingEvent,
    BookingStatus,
    CENT,
    GuestDetails,
    PaymentStatus,
    PricingBreakdown,
    Room,
    RoomAvailability,
    RoomEvent,
    RoomStatus,
    StatusChange,
    StayRequest,
)
from rates import RateTable
from store import BookingStore

logger = logging.getLogger(__name__)

INSTANT_BOOKING_FLAG = "instant-booking"
WEEKEND_AUTO_DETECT_FLAG = "weekend-auto-detect"
MAX_ID_ATTEMPTS = 10

# Bookings whose nights count as occupied in availability reports
OCCUPYING_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
    BookingStatus.CHECKED_OUT,
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dates_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open [start, end) ranges overlap."""
    return start_a < end_b and start_b < end_a


def occupancy_rate(occupied: int, total: int) -> Decimal:
    """Percentage of occupied nights, to two decimals."""
    if not total:
        return Decimal("0.00")
    return (Decimal(occupied) * 100 / total).quantize(CENT)


class BookingOrchestrator:
    """
    Composes pricing and the booking/room state machines.

    Booking requests reserve a room under its lock, so two overlapping
    requests for the same room cannot both succeed. Transitions take the
    booking lock then the room lock and commit both records together.
    """

    def __init__(
        self,
        *,
        store: BookingStore,
        rates: RateTable,
        flags: FliptService,
        hotel_id: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.rates = rates
        self.flags = flags
        self.hotel_id = hotel_id
        self.clock = clock

    def _flags(self, entity_id: str, context: dict = None) -> dict[str, bool]:
        return self.flags.evaluate_batch_boolean(
            flag_keys=[INSTANT_BOOKING_FLAG, WEEKEND_AUTO_DETECT_FLAG],
            entity_id=entity_id,
            context=context,
            defaults={INSTANT_BOOKING_FLAG: False, WEEKEND_AUTO_DETECT_FLAG: False},
        )

    def _prepare_stay(self, stay: StayRequest, flags: dict[str, bool]) -> StayRequest:
        if flags.get(WEEKEND_AUTO_DETECT_FLAG) and not stay.apply_weekend_surcharge:
            if pricing.includes_weekend(stay.check_in, stay.check_out):
                return stay.model_copy(update={"apply_weekend_surcharge": True})
        return stay

    def quote(self, stay: StayRequest, entity_id: str = "anonymous") -> PricingBreakdown:
        """Price a stay without reserving anything."""
        flags = self._flags(entity_id, {"accommodation_type": stay.accommodation_type.value})
        return pricing.compute(self._prepare_stay(stay, flags), self.rates)

    def request_booking(
        self,
        stay: StayRequest,
        room_id: str,
        guest: GuestDetails,
        *,
        bed_id: Optional[str] = None,
        entity_id: str = "anonymous",
    ) -> Booking:
        """
        Price a stay and reserve the room for it.

        The booking starts in pending, or confirmed with a confirmation
        number when instant booking is enabled for the caller.
        """
        flags = self._flags(entity_id, {"accommodation_type": stay.accommodation_type.value})
        breakdown = pricing.compute(self._prepare_stay(stay, flags), self.rates)
        instant = flags.get(INSTANT_BOOKING_FLAG, False)

        with self.store.locked(room_id=room_id):
            room = self.store.get_room(room_id)
            if bed_id is not None and room.bed_id != bed_id:
                raise NotFound(f"Bed '{bed_id}' not found in room '{room_id}'")
            if room.status == RoomStatus.OUT_OF_ORDER:
                raise RoomUnavailable(f"Room '{room_id}' is out of order")

            for other in self.store.active_bookings_for_room(room_id):
                if other.status in booking_state.ACTIVE_STATUSES and dates_overlap(
                    stay.check_in, stay.check_out, other.check_in, other.check_out
                ):
                    raise RoomUnavailable(
                        f"Room '{room_id}' is already booked from {other.check_in.isoformat()} "
                        f"to {other.check_out.isoformat()} ({other.booking_id})"
                    )

            now = self.clock()
            history = [StatusChange(to_status=BookingStatus.PENDING, at=now, actor=guest.email)]
            status = BookingStatus.PENDING
            confirmation = None
            if instant:
                status = BookingStatus.CONFIRMED
                confirmation = generate_confirmation_number()
                history.append(StatusChange(
                    from_status=BookingStatus.PENDING,
                    to_status=BookingStatus.CONFIRMED,
                    at=now,
                    note="instant booking",
                ))

            booking = Booking(
                booking_id=self._new_booking_id(room, stay.check_in),
                room_id=room_id,
                bed_id=room.bed_id,
                guest=guest,
                check_in=stay.check_in,
                check_out=stay.check_out,
                guest_count=stay.guest_count,
                status=status,
                pricing=breakdown,
                confirmation_number=confirmation,
                history=history,
                created_at=now,
                updated_at=now,
            )
            held_room = room.model_copy(update={
                "active_booking_ids": room.active_booking_ids | {booking.booking_id},
            })
            self.store.commit(new_bookings=[booking], rooms=[(held_room, room.version)])

        logger.info(
            f"Booking created: {booking.booking_id}, room={room_id}, "
            f"status={booking.status.value}, total={breakdown.total_amount}"
        )
        return booking

    def _new_booking_id(self, room: Room, check_in: date) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            booking_id = generate_booking_id(self.hotel_id, room.room_number, check_in)
            if not self.store.booking_exists(booking_id):
                return booking_id
        raise RoomUnavailable(f"Could not allocate a booking id for room '{room.room_id}'")

    def _transition(
        self,
        booking: Booking,
        room: Room,
        event: BookingEvent,
        *,
        actor: str,
        override: bool,
        note: str,
    ) -> tuple[Booking, Optional[Room]]:
        """Compute the new booking and room records for an event, without saving them."""
        now = self.clock()
        today = now.date()
        target = booking_state.apply_event(
            booking.status, event,
            today=today,
            check_in=booking.check_in,
            check_out=booking.check_out,
            override=override,
        )

        used_override = (
            event == BookingEvent.CHECK_IN
            and override
            and not booking_state.in_stay_window(today, booking.check_in, booking.check_out)
        )
        if used_override:
            logger.warning(
                f"Check-in window overridden for {booking.booking_id} by {actor} "
                f"on {today.isoformat()} (stay {booking.check_in.isoformat()} to {booking.check_out.isoformat()})"
            )

        updates = {
            "status": target,
            "updated_at": now,
            "history": booking.history + [StatusChange(
                from_status=booking.status,
                to_status=target,
                at=now,
                actor=actor,
                override=used_override,
                note=note,
            )],
        }
        if event == BookingEvent.CONFIRM and not booking.confirmation_number:
            updates["confirmation_number"] = generate_confirmation_number()
        if event == BookingEvent.CANCEL:
            updates["cancel_reason"] = note or None
        if event == BookingEvent.REFUND and booking.payment_status == PaymentStatus.PAID:
            updates["payment_status"] = PaymentStatus.REFUNDED

        room_updates = {}
        room_event = booking_state.room_side_effect(event)
        if room_event == RoomEvent.OCCUPY:
            if not room_state.accepts_check_in(room.status):
                raise RoomUnavailable(f"Room '{room.room_id}' is {room.status.value}")
            room_updates["status"] = room_state.next_status(room.status, room_event)
        elif room_event == RoomEvent.VACATE:
            if room.status == RoomStatus.OCCUPIED:
                room_updates["status"] = room_state.next_status(room.status, room_event)
            else:
                logger.info(
                    f"Room {room.room_id} is {room.status.value} at check-out of "
                    f"{booking.booking_id}, keeping its status"
                )
        if event in booking_state.RELEASING_EVENTS:
            room_updates["active_booking_ids"] = room.active_booking_ids - {booking.booking_id}

        new_room = room.model_copy(update=room_updates) if room_updates else None
        return booking.model_copy(update=updates), new_room

    def _commit(self, booking: Booking, updated: Booking, room: Room, new_room: Optional[Room]) -> Booking:
        rooms = [(new_room, room.version)] if new_room is not None else []
        saved, _ = self.store.commit(bookings=[(updated, booking.version)], rooms=rooms)
        return saved[0]

    def advance(
        self,
        booking_id: str,
        event: BookingEvent,
        *,
        actor: str = "staff",
        override: bool = False,
        note: str = "",
    ) -> Booking:
        """
        Apply one booking transition and its room side-effect.

        Both records are validated before either is written; a rejected
        transition leaves booking and room unchanged.
        """
        room_id = self.store.get_booking(booking_id).room_id
        with self.store.locked(booking_id=booking_id, room_id=room_id):
            booking = self.store.get_booking(booking_id)
            room = self.store.get_room(room_id)
            updated, new_room = self._transition(booking, room, event, actor=actor, override=override, note=note)
            saved = self._commit(booking, updated, room, new_room)

        logger.info(
            f"Booking {booking_id} {booking.status.value} -> {saved.status.value} "
            f"(event={event.value}, actor={actor})"
        )
        return saved

    def record_payment(self, booking_id: str, payment_status: PaymentStatus, *, actor: str = "payments") -> Booking:
        """Update the payment axis; a payment authorization confirms a pending booking."""
        room_id = self.store.get_booking(booking_id).room_id
        with self.store.locked(booking_id=booking_id, room_id=room_id):
            booking = self.store.get_booking(booking_id)
            room = self.store.get_room(room_id)
            updated, new_room = booking, None
            if payment_status == PaymentStatus.PAID and booking.status == BookingStatus.PENDING:
                updated, new_room = self._transition(
                    booking, room, BookingEvent.CONFIRM, actor=actor, override=False, note="payment authorized"
                )
            updated = updated.model_copy(update={"payment_status": payment_status, "updated_at": self.clock()})
            saved = self._commit(booking, updated, room, new_room)

        logger.info(f"Booking {booking_id} payment {booking.payment_status.value} -> {payment_status.value}")
        return saved

    def room_action(self, room_id: str, event: RoomEvent, *, actor: str = "staff") -> Room:
        """Apply a manual staff action to a room."""
        if event not in room_state.STAFF_EVENTS:
            raise InvalidTransition("room", "any", event.value,
                                    message=f"'{event.value}' is driven by bookings and cannot be applied by staff")
        with self.store.locked(room_id=room_id):
            room = self.store.get_room(room_id)
            guest_in_house = any(
                b.status == BookingStatus.CHECKED_IN for b in self.store.active_bookings_for_room(room_id)
            )
            target = room_state.next_status(room.status, event, guest_in_house=guest_in_house)
            _, saved = self.store.commit(rooms=[(room.model_copy(update={"status": target}), room.version)])

        logger.info(f"Room {room_id} {room.status.value} -> {target.value} (event={event.value}, actor={actor})")
        return saved[0]

    def get_booking(self, booking_id: str) -> Booking:
        return self.store.get_booking(booking_id)

    def list_bookings(self, status: Optional[BookingStatus] = None) -> list[Booking]:
        return self.store.list_bookings(status)

    def get_room(self, room_id: str) -> Room:
        return self.store.get_room(room_id)

    def list_rooms(self, status: Optional[RoomStatus] = None) -> list[Room]:
        return self.store.list_rooms(status)

    def booking_stats(self) -> dict:
        """Counts per status plus revenue from bookings that were not cancelled or refunded."""
        bookings = self.store.list_bookings()
        counts = {status.value: 0 for status in BookingStatus}
        for booking in bookings:
            counts[booking.status.value] += 1

        revenue = sum(
            (b.pricing.total_amount for b in bookings
             if b.status not in (BookingStatus.CANCELLED, BookingStatus.REFUNDED)),
            Decimal("0"),
        )
        average = revenue / len(bookings) if bookings else Decimal("0")
        return {
            "total_bookings": len(bookings),
            "by_status": counts,
            "total_revenue": revenue.quantize(CENT),
            "average_rate": average.quantize(CENT),
            "currency": self.rates.currency,
        }

    def availability_report(self, start: date, end: date) -> AvailabilityReport:
        """
        Occupied and available nights per room over [start, end).

        Stays are clipped to the range; confirmed, checked-in and
        checked-out bookings count as occupied.
        """
        if end <= start:
            raise InvalidDateRange(f"end ({end.isoformat()}) must be after start ({start.isoformat()})")

        total_nights = (end - start).days
        bookings = [b for b in self.store.list_bookings() if b.status in OCCUPYING_STATUSES]

        rooms = []
        for room in self.store.list_rooms():
            nights = set()
            booking_ids = []
            for booking in bookings:
                if booking.room_id != room.room_id:
                    continue
                if not dates_overlap(start, end, booking.check_in, booking.check_out):
                    continue
                first = max(booking.check_in, start)
                last = min(booking.check_out, end)
                nights.update(first + timedelta(days=n) for n in range((last - first).days))
                booking_ids.append(booking.booking_id)

            rooms.append(RoomAvailability(
                room_id=room.room_id,
                room_number=room.room_number,
                accommodation_type=room.accommodation_type,
                status=room.status,
                total_nights=total_nights,
                occupied_nights=len(nights),
                available_nights=total_nights - len(nights),
                occupancy_rate=occupancy_rate(len(nights), total_nights),
                bookings=sorted(booking_ids),
            ))

        all_nights = total_nights * len(rooms)
        occupied_nights = sum(r.occupied_nights for r in rooms)
        return AvailabilityReport(
            start=start,
            end=end,
            rooms=rooms,
            summary=AvailabilitySummary(
                total_rooms=len(rooms),
                total_nights=all_nights,
                occupied_nights=occupied_nights,
                available_nights=all_nights - occupied_nights,
                occupancy_rate=occupancy_rate(occupied_nights, all_nights),
            ),
        )

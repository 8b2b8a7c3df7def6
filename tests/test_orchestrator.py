from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest

from conftest import make_stay
from errors import InvalidDateRange, InvalidTransition, NotFound, OutOfWindow, RoomUnavailable
from models import BookingEvent, BookingStatus, GuestDetails, PaymentStatus, RoomEvent, RoomStatus


def book(orchestrator, guest, room_id="room-101", **stay_fields):
    return orchestrator.request_booking(make_stay(**stay_fields), room_id, guest)


class TestRequestBooking:
    def test_creates_pending_booking_with_pricing(self, orchestrator, guest):
        booking = book(orchestrator, guest)

        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.confirmation_number is None
        assert booking.pricing.nights == 3
        assert booking.pricing.total_amount == Decimal("345")
        assert booking.version == 1
        assert booking.booking_id in orchestrator.get_room("room-101").active_booking_ids
        assert orchestrator.get_booking(booking.booking_id) == booking

    def test_booking_id_format(self, orchestrator, guest):
        room_booking = book(orchestrator, guest)
        bed_booking = orchestrator.request_booking(make_stay(), "dorm-1-bed-2", guest)

        # BOOK + hotel id + check-in date + room or bed number + 4 random digits
        assert re.fullmatch(r"BOOK120260310101\d{4}", room_booking.booking_id)
        assert re.fullmatch(r"BOOK12026031012\d{4}", bed_booking.booking_id)

    def test_invalid_dates_reserve_nothing(self, orchestrator, guest):
        with pytest.raises(InvalidDateRange):
            book(orchestrator, guest, check_in=date(2026, 3, 10), check_out=date(2026, 3, 10))
        assert orchestrator.list_bookings() == []
        assert orchestrator.get_room("room-101").active_booking_ids == set()

    def test_overlapping_request_is_rejected(self, orchestrator, guest):
        book(orchestrator, guest, check_in=date(2026, 3, 10), check_out=date(2026, 3, 13))

        with pytest.raises(RoomUnavailable):
            book(orchestrator, guest, check_in=date(2026, 3, 12), check_out=date(2026, 3, 15))
        assert len(orchestrator.list_bookings()) == 1

    def test_back_to_back_stays_do_not_overlap(self, orchestrator, guest):
        book(orchestrator, guest, check_in=date(2026, 3, 10), check_out=date(2026, 3, 13))
        second = book(orchestrator, guest, check_in=date(2026, 3, 13), check_out=date(2026, 3, 15))

        assert second.status == BookingStatus.PENDING

    def test_other_rooms_are_independent(self, orchestrator, guest):
        book(orchestrator, guest, room_id="room-101")
        assert book(orchestrator, guest, room_id="room-102").room_id == "room-102"

    def test_cancelled_booking_frees_the_dates(self, orchestrator, guest):
        first = book(orchestrator, guest)
        orchestrator.advance(first.booking_id, BookingEvent.CANCEL, note="plans changed")

        second = book(orchestrator, guest)
        assert second.status == BookingStatus.PENDING

    def test_out_of_order_room_is_not_bookable(self, orchestrator, guest):
        orchestrator.room_action("room-101", RoomEvent.OUT_OF_ORDER)
        with pytest.raises(RoomUnavailable):
            book(orchestrator, guest)

    def test_unknown_room_and_bed(self, orchestrator, guest):
        with pytest.raises(NotFound):
            book(orchestrator, guest, room_id="room-999")
        with pytest.raises(NotFound):
            orchestrator.request_booking(make_stay(), "dorm-1-bed-1", guest, bed_id="bed-2")

    def test_dormitory_bed_booking(self, orchestrator, guest):
        booking = orchestrator.request_booking(make_stay(), "dorm-1-bed-1", guest, bed_id="bed-1")
        assert booking.bed_id == "bed-1"

    def test_concurrent_overlapping_requests(self, orchestrator):
        barrier = threading.Barrier(8)

        def attempt(i):
            guest = GuestDetails(name=f"Guest {i}", email=f"guest{i}@example.com")
            barrier.wait()
            try:
                return orchestrator.request_booking(
                    make_stay(check_in=date(2026, 3, 10 + i % 2), check_out=date(2026, 3, 14)),
                    "room-201",
                    guest,
                )
            except RoomUnavailable:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))

        assert len([r for r in results if r is not None]) == 1
        assert len(orchestrator.get_room("room-201").active_booking_ids) == 1


class TestInstantBooking:
    @pytest.fixture
    def flag_values(self):
        return {"instant-booking": True}

    def test_instant_booking_confirms_immediately(self, orchestrator, guest):
        booking = book(orchestrator, guest)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.confirmation_number.startswith("CONF-")
        assert [h.to_status for h in booking.history] == [BookingStatus.PENDING, BookingStatus.CONFIRMED]

    def test_flags_evaluated_for_the_caller(self, orchestrator, flags, guest):
        orchestrator.request_booking(make_stay(), "room-101", guest, entity_id="user-42")

        requests = flags.client.evaluation.requests
        assert {r.flag_key for r in requests} == {"instant-booking", "weekend-auto-detect"}
        assert {r.entity_id for r in requests} == {"user-42"}
        assert all(r.context == {"accommodation_type": "hotel"} for r in requests)


class TestWeekendAutoDetect:
    @pytest.fixture
    def flag_values(self):
        return {"weekend-auto-detect": True}

    def test_weekend_surcharge_applied_from_dates(self, orchestrator):
        # 2026-03-13 is a Friday, so the stay includes Saturday night
        quote = orchestrator.quote(make_stay(check_in=date(2026, 3, 13), check_out=date(2026, 3, 15)))
        assert quote.weekend_surcharge_amount == Decimal("40")

    def test_weekday_stay_has_no_surcharge(self, orchestrator):
        quote = orchestrator.quote(make_stay(check_in=date(2026, 3, 9), check_out=date(2026, 3, 12)))
        assert quote.weekend_surcharge_amount == 0


class TestLifecycle:
    def test_full_stay(self, orchestrator, guest, clock):
        booking = book(orchestrator, guest)

        confirmed = orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.confirmation_number is not None

        checked_in = orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN, actor="front-desk")
        assert checked_in.status == BookingStatus.CHECKED_IN
        assert orchestrator.get_room("room-101").status == RoomStatus.OCCUPIED

        clock.set_date(date(2026, 3, 13))
        checked_out = orchestrator.advance(booking.booking_id, BookingEvent.CHECK_OUT)
        room = orchestrator.get_room("room-101")
        assert checked_out.status == BookingStatus.CHECKED_OUT
        assert room.status == RoomStatus.CLEANING
        assert booking.booking_id not in room.active_booking_ids

        assert orchestrator.room_action("room-101", RoomEvent.CLEANING_COMPLETE).status == RoomStatus.AVAILABLE
        assert [h.to_status for h in checked_out.history] == [
            BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT,
        ]
        assert checked_out.version == 4

    def test_pending_booking_cannot_check_in(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        with pytest.raises(InvalidTransition):
            orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)
        assert orchestrator.get_room("room-101").status == RoomStatus.AVAILABLE

    def test_early_check_in_requires_override(self, orchestrator, guest, clock, caplog):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        clock.set_date(date(2026, 3, 9))

        with pytest.raises(OutOfWindow):
            orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)

        with caplog.at_level(logging.WARNING, logger="orchestrator"):
            checked_in = orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN,
                                              actor="manager", override=True, note="early arrival")
        assert checked_in.status == BookingStatus.CHECKED_IN
        assert checked_in.history[-1].override is True
        assert checked_in.history[-1].actor == "manager"
        assert "overridden" in caplog.text

    def test_failed_room_side_effect_leaves_booking_unchanged(self, orchestrator, guest, clock):
        staying = book(orchestrator, guest, check_in=date(2026, 3, 10), check_out=date(2026, 3, 13))
        orchestrator.advance(staying.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(staying.booking_id, BookingEvent.CHECK_IN)
        arriving = book(orchestrator, guest, check_in=date(2026, 3, 13), check_out=date(2026, 3, 15))
        confirmed = orchestrator.advance(arriving.booking_id, BookingEvent.CONFIRM)

        # The previous guest has not checked out yet
        clock.set_date(date(2026, 3, 13))
        with pytest.raises(RoomUnavailable):
            orchestrator.advance(arriving.booking_id, BookingEvent.CHECK_IN)

        assert orchestrator.get_booking(arriving.booking_id) == confirmed
        assert orchestrator.get_booking(staying.booking_id).status == BookingStatus.CHECKED_IN
        assert orchestrator.get_room("room-101").status == RoomStatus.OCCUPIED

    def test_back_to_back_check_in_while_cleaning(self, orchestrator, guest, clock):
        leaving = book(orchestrator, guest, check_in=date(2026, 3, 10), check_out=date(2026, 3, 13))
        orchestrator.advance(leaving.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(leaving.booking_id, BookingEvent.CHECK_IN)
        arriving = book(orchestrator, guest, check_in=date(2026, 3, 13), check_out=date(2026, 3, 15))
        orchestrator.advance(arriving.booking_id, BookingEvent.CONFIRM)

        clock.set_date(date(2026, 3, 13))
        orchestrator.advance(leaving.booking_id, BookingEvent.CHECK_OUT)
        assert orchestrator.get_room("room-101").status == RoomStatus.CLEANING

        checked_in = orchestrator.advance(arriving.booking_id, BookingEvent.CHECK_IN)
        assert checked_in.status == BookingStatus.CHECKED_IN
        assert orchestrator.get_room("room-101").status == RoomStatus.OCCUPIED

    @pytest.mark.parametrize("incident", [RoomEvent.MAINTENANCE, RoomEvent.OUT_OF_ORDER])
    def test_check_in_into_room_with_open_incident(self, orchestrator, guest, incident):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        orchestrator.room_action("room-101", incident)

        checked_in = orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)
        assert checked_in.status == BookingStatus.CHECKED_IN
        assert orchestrator.get_room("room-101").status == RoomStatus.OCCUPIED

    def test_resolving_incident_during_stay_returns_room_to_occupied(self, orchestrator, guest, clock):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)

        assert orchestrator.room_action("room-101", RoomEvent.MAINTENANCE).status == RoomStatus.MAINTENANCE
        assert orchestrator.room_action("room-101", RoomEvent.RESOLVE).status == RoomStatus.OCCUPIED

        clock.set_date(date(2026, 3, 13))
        orchestrator.advance(booking.booking_id, BookingEvent.CHECK_OUT)
        assert orchestrator.get_room("room-101").status == RoomStatus.CLEANING

    def test_resolving_incident_with_only_future_bookings(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)

        orchestrator.room_action("room-101", RoomEvent.OUT_OF_ORDER)
        assert orchestrator.room_action("room-101", RoomEvent.RESOLVE).status == RoomStatus.AVAILABLE

    def test_check_out_keeps_incident_status(self, orchestrator, guest, clock):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)
        orchestrator.room_action("room-101", RoomEvent.OUT_OF_ORDER)

        checked_out = orchestrator.advance(booking.booking_id, BookingEvent.CHECK_OUT)
        assert checked_out.status == BookingStatus.CHECKED_OUT
        assert orchestrator.get_room("room-101").status == RoomStatus.OUT_OF_ORDER

    def test_cancel_records_reason_and_releases_room(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        cancelled = orchestrator.advance(booking.booking_id, BookingEvent.CANCEL, note="guest request")

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancel_reason == "guest request"
        assert orchestrator.get_room("room-101").active_booking_ids == set()
        with pytest.raises(InvalidTransition):
            orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)

    def test_no_show_after_arrival_date(self, orchestrator, guest, clock):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)

        with pytest.raises(InvalidTransition):
            orchestrator.advance(booking.booking_id, BookingEvent.NO_SHOW)

        clock.set_date(date(2026, 3, 11))
        no_show = orchestrator.advance(booking.booking_id, BookingEvent.NO_SHOW)
        assert no_show.status == BookingStatus.NO_SHOW
        assert orchestrator.get_room("room-101").active_booking_ids == set()

    def test_unknown_booking(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.advance("BOOK-missing", BookingEvent.CONFIRM)


class TestPayments:
    def test_payment_authorization_confirms_pending_booking(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        paid = orchestrator.record_payment(booking.booking_id, PaymentStatus.PAID)

        assert paid.payment_status == PaymentStatus.PAID
        assert paid.status == BookingStatus.CONFIRMED
        assert paid.confirmation_number is not None

    def test_failed_payment_keeps_booking_pending(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        failed = orchestrator.record_payment(booking.booking_id, PaymentStatus.FAILED)

        assert failed.payment_status == PaymentStatus.FAILED
        assert failed.status == BookingStatus.PENDING

    def test_refund_after_cancellation(self, orchestrator, guest):
        booking = book(orchestrator, guest)
        orchestrator.record_payment(booking.booking_id, PaymentStatus.PAID)
        orchestrator.advance(booking.booking_id, BookingEvent.CANCEL)

        refunded = orchestrator.advance(booking.booking_id, BookingEvent.REFUND)
        assert refunded.status == BookingStatus.REFUNDED
        assert refunded.payment_status == PaymentStatus.REFUNDED


class TestRoomsAndStats:
    def test_booking_driven_room_events_are_not_staff_actions(self, orchestrator):
        with pytest.raises(InvalidTransition):
            orchestrator.room_action("room-101", RoomEvent.OCCUPY)

    def test_maintenance_round_trip(self, orchestrator):
        assert orchestrator.room_action("room-102", RoomEvent.MAINTENANCE).status == RoomStatus.MAINTENANCE
        assert [r.room_id for r in orchestrator.list_rooms(RoomStatus.MAINTENANCE)] == ["room-102"]
        assert orchestrator.room_action("room-102", RoomEvent.RESOLVE).status == RoomStatus.AVAILABLE

    def test_booking_stats(self, orchestrator, guest):
        kept = book(orchestrator, guest, room_id="room-101")
        dropped = book(orchestrator, guest, room_id="room-102")
        orchestrator.advance(kept.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(dropped.booking_id, BookingEvent.CANCEL)

        stats = orchestrator.booking_stats()

        assert stats["total_bookings"] == 2
        assert stats["by_status"]["confirmed"] == 1
        assert stats["by_status"]["cancelled"] == 1
        assert stats["total_revenue"] == Decimal("345.00")
        assert stats["average_rate"] == Decimal("172.50")
        assert stats["currency"] == "USD"


class TestAvailabilityReport:
    def test_stays_are_clipped_to_the_range(self, orchestrator, guest):
        before = book(orchestrator, guest, check_in=date(2026, 3, 7), check_out=date(2026, 3, 12))
        after = book(orchestrator, guest, check_in=date(2026, 3, 14), check_out=date(2026, 3, 20))
        for booking in (before, after):
            orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)

        report = orchestrator.availability_report(date(2026, 3, 10), date(2026, 3, 15))
        room = next(r for r in report.rooms if r.room_id == "room-101")

        # 10th and 11th from the first stay, 14th from the second
        assert room.total_nights == 5
        assert room.occupied_nights == 3
        assert room.available_nights == 2
        assert room.occupancy_rate == Decimal("60.00")
        assert room.bookings == sorted([before.booking_id, after.booking_id])

    def test_summary_across_rooms(self, orchestrator, guest):
        counted = book(orchestrator, guest, room_id="room-101")
        orchestrator.advance(counted.booking_id, BookingEvent.CONFIRM)
        book(orchestrator, guest, room_id="room-102")
        cancelled = book(orchestrator, guest, room_id="room-201")
        orchestrator.advance(cancelled.booking_id, BookingEvent.CANCEL)

        report = orchestrator.availability_report(date(2026, 3, 10), date(2026, 3, 15))

        assert report.summary.total_rooms == 7
        assert report.summary.total_nights == 35
        assert report.summary.occupied_nights == 3
        assert report.summary.available_nights == 32
        assert report.summary.occupancy_rate == Decimal("8.57")
        by_room = {r.room_id: r for r in report.rooms}
        assert by_room["room-102"].occupied_nights == 0
        assert by_room["room-201"].bookings == []

    def test_checked_out_stay_still_counts(self, orchestrator, guest, clock):
        booking = book(orchestrator, guest)
        orchestrator.advance(booking.booking_id, BookingEvent.CONFIRM)
        orchestrator.advance(booking.booking_id, BookingEvent.CHECK_IN)
        clock.set_date(date(2026, 3, 13))
        orchestrator.advance(booking.booking_id, BookingEvent.CHECK_OUT)

        report = orchestrator.availability_report(date(2026, 3, 1), date(2026, 4, 1))
        room = next(r for r in report.rooms if r.room_id == "room-101")

        assert room.occupied_nights == 3
        assert room.status == RoomStatus.CLEANING

    def test_range_must_not_be_empty(self, orchestrator):
        with pytest.raises(InvalidDateRange):
            orchestrator.availability_report(date(2026, 3, 10), date(2026, 3, 10))

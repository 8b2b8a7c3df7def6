from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


CENT = Decimal("0.01")


class MealPlan(str, Enum):
    NONE = "none"
    BREAKFAST = "breakfast"
    HALF_BOARD = "half_board"
    FULL_BOARD = "full_board"


class SeasonalTier(str, Enum):
    LOW = "low"
    REGULAR = "regular"
    HIGH = "high"
    PEAK = "peak"


class AccommodationType(str, Enum):
    HOTEL = "hotel"
    DORMITORY = "dormitory"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    REFUNDED = "refunded"


class BookingEvent(str, Enum):
    CONFIRM = "confirm"
    CHECK_IN = "checkin"
    CHECK_OUT = "checkout"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
    REFUND = "refund"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    OUT_OF_ORDER = "out_of_order"


class RoomEvent(str, Enum):
    OCCUPY = "occupy"
    VACATE = "vacate"
    CLEANING_COMPLETE = "cleaning_complete"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"
    RESOLVE = "resolve"


class StayRequest(BaseModel):
    """Parameters of a stay to be priced."""
    model_config = ConfigDict(frozen=True)

    base_rate: Decimal = Field(ge=0)
    check_in: date
    check_out: date
    guest_count: int = Field(1, ge=1)
    meal_plan: MealPlan = MealPlan.NONE
    seasonal_tier: SeasonalTier = SeasonalTier.REGULAR
    accommodation_type: AccommodationType = AccommodationType.HOTEL
    apply_weekend_surcharge: bool = False
    apply_holiday_surcharge: bool = False
    manual_discount: Decimal = Field(Decimal("0"), ge=0)
    tax_rate_pct: Decimal = Field(Decimal("10"), ge=0, le=100)
    service_charge_rate_pct: Decimal = Field(Decimal("5"), ge=0, le=100)


class PricingBreakdown(BaseModel):
    """Itemized price of a stay. Amounts are unrounded until quantized()."""
    model_config = ConfigDict(frozen=True)

    nights: int
    base_amount: Decimal
    meal_amount: Decimal
    weekend_surcharge_amount: Decimal
    holiday_surcharge_amount: Decimal
    subtotal: Decimal
    long_stay_discount_amount: Decimal
    manual_discount_amount: Decimal
    discounted_amount: Decimal
    tax_amount: Decimal
    service_charge_amount: Decimal
    total_amount: Decimal
    currency: str = "USD"

    def quantized(self) -> "PricingBreakdown":
        """
        Return a display copy rounded to cents.

        The line items are rounded and the subtotal, discounted amount and
        total are summed again from them, so the rounded copy still adds up.
        """
        parts = {
            name: getattr(self, name).quantize(CENT, rounding=ROUND_HALF_UP)
            for name in (
                "base_amount",
                "meal_amount",
                "weekend_surcharge_amount",
                "holiday_surcharge_amount",
                "long_stay_discount_amount",
                "manual_discount_amount",
                "tax_amount",
                "service_charge_amount",
            )
        }
        subtotal = (
            parts["base_amount"]
            + parts["meal_amount"]
            + parts["weekend_surcharge_amount"]
            + parts["holiday_surcharge_amount"]
        )
        discounted = subtotal - parts["long_stay_discount_amount"] - parts["manual_discount_amount"]
        total = discounted + parts["tax_amount"] + parts["service_charge_amount"]
        return self.model_copy(update={
            **parts,
            "subtotal": subtotal,
            "discounted_amount": discounted,
            "total_amount": total,
        })


class GuestDetails(BaseModel):
    """Guest contact details."""
    name: str = Field(min_length=1)
    email: str
    phone: str = ""
    special_requests: str = ""


class StatusChange(BaseModel):
    """One entry of a booking's status history."""
    model_config = ConfigDict(frozen=True)

    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    at: datetime
    actor: str = "system"
    override: bool = False
    note: str = ""


class Booking(BaseModel):
    """Booking record."""
    booking_id: str
    room_id: str
    bed_id: Optional[str] = None
    guest: GuestDetails
    check_in: date
    check_out: date
    guest_count: int
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    pricing: PricingBreakdown
    confirmation_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    history: list[StatusChange] = []
    version: int = 1
    created_at: datetime
    updated_at: datetime


class Room(BaseModel):
    """A sellable unit: a hotel room or a dormitory bed."""
    room_id: str
    room_number: str
    accommodation_type: AccommodationType = AccommodationType.HOTEL
    bed_id: Optional[str] = None
    base_rate: Decimal
    status: RoomStatus = RoomStatus.AVAILABLE
    active_booking_ids: set[str] = set()
    version: int = 1


class BookingRequest(BaseModel):
    """Booking request."""
    room_id: str
    bed_id: Optional[str] = None
    guest: GuestDetails
    stay: StayRequest


class BookingActionRequest(BaseModel):
    """Optional body for PATCH /api/bookings/{id}/{action}."""
    actor: str = Field("staff", description="Who triggered the transition")
    override: bool = Field(False, description="Staff override of the check-in window")
    reason: str = Field("", description="Free-text note, used as the cancel reason")


class PaymentUpdateRequest(BaseModel):
    """Payment status update for PATCH /api/bookings/{id}/payment."""
    payment_status: PaymentStatus


class BookingResponse(BaseModel):
    """Booking response."""
    booking_id: str
    room_id: str
    bed_id: Optional[str] = None
    status: BookingStatus
    payment_status: PaymentStatus
    confirmation_number: Optional[str] = None
    check_in: date
    check_out: date
    pricing: PricingBreakdown
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            room_id=booking.room_id,
            bed_id=booking.bed_id,
            status=booking.status,
            payment_status=booking.payment_status,
            confirmation_number=booking.confirmation_number,
            check_in=booking.check_in,
            check_out=booking.check_out,
            pricing=booking.pricing.quantized(),
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class RoomResponse(BaseModel):
    """Room status response."""
    room_id: str
    room_number: str
    accommodation_type: AccommodationType
    bed_id: Optional[str] = None
    status: RoomStatus
    active_bookings: int


class RoomAvailability(BaseModel):
    """Occupancy of one room or bed over a report range."""
    room_id: str
    room_number: str
    accommodation_type: AccommodationType
    status: RoomStatus
    total_nights: int
    occupied_nights: int
    available_nights: int
    occupancy_rate: Decimal
    bookings: list[str] = []


class AvailabilitySummary(BaseModel):
    total_rooms: int
    total_nights: int
    occupied_nights: int
    available_nights: int
    occupancy_rate: Decimal


class AvailabilityReport(BaseModel):
    """Room availability report for GET /api/rooms/availability."""
    start: date
    end: date
    rooms: list[RoomAvailability]
    summary: AvailabilitySummary

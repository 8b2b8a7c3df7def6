import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings
from errors import BookingServiceError
from registry import ServiceRegistry, build_registry
from telemetry import setup_telemetry
from models import (
    AvailabilityReport,
    BookingActionRequest,
    BookingEvent,
    BookingRequest,
    BookingResponse,
    BookingStatus,
    PaymentUpdateRequest,
    PricingBreakdown,
    Room,
    RoomEvent,
    RoomResponse,
    RoomStatus,
    StayRequest,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def room_response(room: Room) -> RoomResponse:
    return RoomResponse(
        room_id=room.room_id,
        room_number=room.room_number,
        accommodation_type=room.accommodation_type,
        bed_id=room.bed_id,
        status=room.status,
        active_bookings=len(room.active_booking_ids),
    )


def create_app(settings: Optional[Settings] = None, registry: Optional[ServiceRegistry] = None) -> FastAPI:
    """Build the FastAPI application and its collaborators."""
    if registry is None:
        registry = build_registry(settings or Settings())
    settings = registry.settings
    orchestrator = registry.orchestrator

    app = FastAPI(
        title="Booking Service API",
        description="Room pricing and booking lifecycle service with Flipt feature flags",
        version=settings.service_version,
        docs_url="/",
        redoc_url=None,
    )
    app.state.registry = registry

    # Setup CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup OpenTelemetry
    tracer, meter = setup_telemetry(app, settings)

    # Create custom metrics
    pricing_counter = meter.create_counter(
        name="pricing_calculations_total",
        description="Total number of price calculations",
        unit="1",
    )

    booking_counter = meter.create_counter(
        name="bookings_created_total",
        description="Total number of bookings",
        unit="1",
    )

    transition_counter = meter.create_counter(
        name="booking_transitions_total",
        description="Total number of booking status transitions",
        unit="1",
    )

    room_transition_counter = meter.create_counter(
        name="room_transitions_total",
        description="Total number of manual room status changes",
        unit="1",
    )

    error_counter = meter.create_counter(
        name="booking_errors_total",
        description="Total number of rejected requests by error kind",
        unit="1",
    )

    booking_amount_histogram = meter.create_histogram(
        name="booking_total_amount",
        description="Total amount of created bookings",
        unit=settings.currency,
    )

    @app.exception_handler(BookingServiceError)
    async def booking_error_handler(request: Request, exc: BookingServiceError):
        error_counter.add(1, {"kind": exc.kind})
        logger.info(f"Request {request.method} {request.url.path} rejected: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "flipt_connected": registry.flags.client is not None,
        }

    @app.post("/api/pricing/calculate", response_model=PricingBreakdown)
    async def calculate_pricing(
        stay: StayRequest,
        entity_id: str = Query("anonymous", description="User/entity ID for feature flags"),
    ):
        """Price a stay without creating a booking."""
        with tracer.start_as_current_span("calculate_pricing") as span:
            span.set_attribute("seasonal_tier", stay.seasonal_tier.value)
            span.set_attribute("meal_plan", stay.meal_plan.value)
            span.set_attribute("entity_id", entity_id)

            breakdown = orchestrator.quote(stay, entity_id=entity_id)

            pricing_counter.add(1, {
                "seasonal_tier": stay.seasonal_tier.value,
                "accommodation_type": stay.accommodation_type.value,
            })
            span.set_attribute("nights", breakdown.nights)
            return breakdown.quantized()

    @app.post("/api/bookings", response_model=BookingResponse, status_code=201)
    async def create_booking(
        request: BookingRequest,
        entity_id: str = Query("anonymous", description="User/entity ID for feature flags"),
    ):
        """Price a stay and reserve a room for it."""
        with tracer.start_as_current_span("create_booking") as span:
            span.set_attribute("room_id", request.room_id)
            span.set_attribute("entity_id", entity_id)

            booking = orchestrator.request_booking(
                request.stay,
                request.room_id,
                request.guest,
                bed_id=request.bed_id,
                entity_id=entity_id,
            )

            span.set_attribute("booking_id", booking.booking_id)
            span.set_attribute("booking.status", booking.status.value)
            booking_counter.add(1, {"room_id": booking.room_id, "status": booking.status.value})
            booking_amount_histogram.record(float(booking.pricing.total_amount), {
                "accommodation_type": request.stay.accommodation_type.value,
            })
            return BookingResponse.from_booking(booking)

    @app.get("/api/bookings")
    async def get_bookings(
        status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    ):
        """Get all bookings, optionally filtered by status."""
        with tracer.start_as_current_span("get_bookings") as span:
            span.set_attribute("status", status.value if status else "all")

            bookings = [BookingResponse.from_booking(b) for b in orchestrator.list_bookings(status)]

            logger.info(f"Retrieved {len(bookings)} bookings with status={status.value if status else 'all'}")
            return {
                "bookings": bookings,
                "total": len(bookings),
                "status": status.value if status else "all",
            }

    @app.get("/api/bookings/stats")
    async def get_booking_stats():
        """Booking counts per status and revenue."""
        with tracer.start_as_current_span("get_booking_stats"):
            return orchestrator.booking_stats()

    @app.get("/api/bookings/{booking_id}", response_model=BookingResponse)
    async def get_booking(booking_id: str):
        """Get a specific booking by ID."""
        with tracer.start_as_current_span("get_booking") as span:
            span.set_attribute("booking_id", booking_id)
            booking = orchestrator.get_booking(booking_id)
            span.set_attribute("booking.status", booking.status.value)
            return BookingResponse.from_booking(booking)

    @app.patch("/api/bookings/{booking_id}/payment", response_model=BookingResponse)
    async def update_payment(booking_id: str, update_request: PaymentUpdateRequest):
        """Record a payment status change for a booking."""
        with tracer.start_as_current_span("update_payment") as span:
            span.set_attribute("booking_id", booking_id)
            span.set_attribute("payment_status", update_request.payment_status.value)
            booking = orchestrator.record_payment(booking_id, update_request.payment_status)
            return BookingResponse.from_booking(booking)

    @app.patch("/api/bookings/{booking_id}/{action}", response_model=BookingResponse)
    async def advance_booking(
        booking_id: str,
        action: BookingEvent,
        body: Optional[BookingActionRequest] = None,
    ):
        """Apply one lifecycle transition (confirm, checkin, checkout, cancel, no_show, refund)."""
        body = body or BookingActionRequest()
        with tracer.start_as_current_span("advance_booking") as span:
            span.set_attribute("booking_id", booking_id)
            span.set_attribute("action", action.value)
            span.set_attribute("override", body.override)

            booking = orchestrator.advance(
                booking_id,
                action,
                actor=body.actor,
                override=body.override,
                note=body.reason,
            )

            transition_counter.add(1, {"action": action.value, "status": booking.status.value})
            return BookingResponse.from_booking(booking)

    @app.get("/api/rooms")
    async def get_rooms(
        status: Optional[RoomStatus] = Query(None, description="Filter by room status"),
    ):
        """List rooms and beds with their operational status."""
        with tracer.start_as_current_span("get_rooms") as span:
            span.set_attribute("status", status.value if status else "all")
            rooms = [room_response(r) for r in orchestrator.list_rooms(status)]
            return {"rooms": rooms, "total": len(rooms)}

    @app.get("/api/rooms/availability", response_model=AvailabilityReport)
    async def get_room_availability(
        start: date = Query(..., description="First night of the report range"),
        end: date = Query(..., description="Day after the last night of the report range"),
    ):
        """Occupied and available nights per room over a date range."""
        with tracer.start_as_current_span("get_room_availability") as span:
            span.set_attribute("start", start.isoformat())
            span.set_attribute("end", end.isoformat())
            report = orchestrator.availability_report(start, end)
            span.set_attribute("occupancy_rate", str(report.summary.occupancy_rate))
            return report

    @app.get("/api/rooms/{room_id}", response_model=RoomResponse)
    async def get_room(room_id: str):
        """Get the operational status of one room or bed."""
        with tracer.start_as_current_span("get_room") as span:
            span.set_attribute("room_id", room_id)
            return room_response(orchestrator.get_room(room_id))

    @app.patch("/api/rooms/{room_id}/{action}", response_model=RoomResponse)
    async def update_room(room_id: str, action: RoomEvent):
        """Apply a staff action (maintenance, out_of_order, resolve, cleaning_complete)."""
        with tracer.start_as_current_span("update_room") as span:
            span.set_attribute("room_id", room_id)
            span.set_attribute("action", action.value)
            room = orchestrator.room_action(room_id, action)
            room_transition_counter.add(1, {"action": action.value, "status": room.status.value})
            return room_response(room)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)

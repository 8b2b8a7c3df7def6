class BookingServiceError(Exception):
    """Base error reported to callers as a structured (kind, message) pair."""

    kind = "booking_service_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InvalidDateRange(BookingServiceError):
    kind = "invalid_date_range"
    status_code = 422


class NegativeAmount(BookingServiceError):
    kind = "negative_amount"
    status_code = 422


class InvalidTransition(BookingServiceError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, entity: str, current: str, event: str, message: str = None):
        super().__init__(message or f"Invalid {entity} transition: cannot apply '{event}' in state '{current}'")
        self.entity = entity
        self.current = current
        self.event = event


class OutOfWindow(BookingServiceError):
    kind = "out_of_window"
    status_code = 409


class RoomUnavailable(BookingServiceError):
    kind = "room_unavailable"
    status_code = 409


class StaleVersion(BookingServiceError):
    kind = "stale_version"
    status_code = 409


class NotFound(BookingServiceError):
    kind = "not_found"
    status_code = 404

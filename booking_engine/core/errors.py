"""Errors raised by the scheduling engine.

Services raise these; the API layer maps them onto HTTP responses in one place
(see ``booking_engine.main``).
"""


class BookingEngineError(Exception):
    http_status: int = 400
    default_message: str = "Booking request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(BookingEngineError):
    """Inactive or missing booking type, invalid timezone, missing schedule."""

    http_status = 400
    default_message = "Booking configuration is invalid"


class ScheduleIntegrityError(BookingEngineError):
    """Stored schedule data is malformed or overlapping."""

    http_status = 500
    default_message = "Stored availability data is corrupted"


class SlotConflictError(BookingEngineError):
    """The requested slot was taken by another booking; the guest must pick again."""

    http_status = 409
    default_message = "That time was just taken, please choose another"


class SlotUnavailableError(SlotConflictError):
    """The requested start is no longer inside the host's open availability."""

    default_message = "That time is no longer available, please choose another"


class ValidationError(BookingEngineError):
    http_status = 422
    default_message = "Invalid booking request"


class InvalidTransitionError(ValidationError):
    default_message = "Appointment status change is not allowed"


class NotFoundError(BookingEngineError):
    http_status = 404
    default_message = "Not found"

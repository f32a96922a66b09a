"""Error taxonomy shared by the booking services.

Every rejection carries a machine-readable ``code``, a human-readable
``message`` and optional ``details``; ``app.py`` renders them as JSON with
``http_status``.
"""


class BookingError(Exception):
    http_status = 400
    default_code = "BOOKING_ERROR"

    def __init__(self, message: str, code: str = None, **details):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(BookingError):
    """Malformed input: time format, ordering, duration, dates."""
    default_code = "VALIDATION_ERROR"


class NotFoundError(BookingError):
    http_status = 404
    default_code = "NOT_FOUND"


class PolicyError(BookingError):
    """Request is well-formed but a business rule forbids it."""
    default_code = "POLICY_VIOLATION"


class InvalidStateError(PolicyError):
    """Booking lifecycle transition not allowed from the current status."""
    http_status = 409
    default_code = "INVALID_STATE"


class ConflictError(BookingError):
    """Requested range overlaps an active booking or a blocked slot."""
    http_status = 409
    default_code = "SLOT_UNAVAILABLE"


class ConcurrencyError(ConflictError):
    """Lost the admission race; callers treat it exactly like a conflict."""
    default_code = "CONCURRENT_ADMISSION"


class GatewayError(BookingError):
    http_status = 502
    default_code = "GATEWAY_ERROR"


class RefundError(GatewayError):
    default_code = "REFUND_FAILED"


class ConfigurationError(BookingError):
    http_status = 500
    default_code = "CONFIGURATION_ERROR"

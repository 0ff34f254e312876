"""Domain errors raised by the lifecycle and entitlement engines.

Each error carries the HTTP status the API layer answers with, so the
routes never translate errors by hand.
"""


class CityFixError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CityFixError):
    """Missing or malformed input."""
    status_code = 400


class NotFound(CityFixError):
    status_code = 404


class InvalidTransition(CityFixError):
    """The issue's current status does not allow the requested action."""
    status_code = 400


class Forbidden(CityFixError):
    status_code = 403


class Conflict(CityFixError):
    status_code = 409


class AlreadyEntitled(CityFixError):
    status_code = 400


class QuotaExceeded(CityFixError):
    status_code = 400


class UpstreamFailure(CityFixError):
    """The payment gateway or the store failed; the caller owns retries."""
    status_code = 502

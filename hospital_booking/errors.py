"""Error taxonomy shared by the booking core and the HTTP layer.

Domain code raises these; `api_main` turns them into `{"message": ...}`
responses with the matching status code. Anything that is not a
`BookingError` is an internal failure and never reaches the client verbatim.
"""
from __future__ import annotations


class BookingError(Exception):
    status_code = 500
    default_message = "Something went wrong, please try again later"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingError):
    """Missing or malformed input, or a slot the schedule does not allow."""
    status_code = 400
    default_message = "Fill in all fields"


class AuthenticationError(BookingError):
    """Missing, expired or invalid credentials."""
    status_code = 401
    default_message = "Invalid token"


class AuthorizationError(BookingError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(BookingError):
    status_code = 404
    default_message = "Not found"


class ConflictError(BookingError):
    """The (service, date) slot already holds a live appointment."""
    status_code = 400
    default_message = "slot taken"


class InternalError(BookingError):
    status_code = 500

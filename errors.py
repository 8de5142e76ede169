"""
Error taxonomy

Every core operation raises one of these on failure. The HTTP layer maps
``status_code`` and ``message`` straight onto the response.
"""

from typing import Optional


class RideHailingError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RideHailingError):
    status_code = 400
    default_message = "Invalid input"


class NotFound(RideHailingError):
    status_code = 404
    default_message = "Not found"


class Conflict(RideHailingError):
    status_code = 400
    default_message = "Conflict"


class InvalidState(RideHailingError):
    status_code = 400
    default_message = "Action not allowed in current state"


class InternalFailure(RideHailingError):
    status_code = 500


class Unauthorized(RideHailingError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(RideHailingError):
    status_code = 403
    default_message = "Forbidden"

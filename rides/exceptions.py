"""Error taxonomy for ride operations.

Every error carries a stable ``code`` that the boundary layer maps onto its own
transport (HTTP status, websocket error frame, ...).
"""


class RideError(Exception):
    """Base class for all errors raised by the ride engine."""

    code = "ride_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(RideError):
    """Raised when input is malformed or out of range."""

    code = "validation_error"


class NotFoundError(RideError):
    """Raised when a ride, driver, rider, wallet or estimate does not exist."""

    code = "not_found"


class AuthorizationError(RideError):
    """Raised when the caller is not the ride's rider or assigned driver."""

    code = "forbidden"


class ConflictError(RideError):
    """Raised when the ride was already resolved, a race was lost, or a tip/rating is a duplicate."""

    code = "conflict"


class InsufficientFundsError(RideError):
    """Raised when a wallet cannot cover a debit."""

    code = "insufficient_funds"


class StateError(RideError):
    """Raised when a status transition is not allowed from the current status."""

    code = "invalid_state"


class ExternalServiceError(RideError):
    """Raised when the payment gateway cannot be reached or answers with an error."""

    code = "external_service_error"

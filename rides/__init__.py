"""
Rides domain package.

Public API:
- Domain models: Ride, RideStatus, Location, FareBreakdown, VehicleClass,
  PaymentMethod, PaymentStatus, DispatchMode, Actor, Role, RideRating
- Errors: RideError and its subclasses
- Boundary helpers: RideResult, capture

The operation surface lives in rides.service (RideService); it is not
re-exported here because it pulls in every other package.
"""
from .exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InsufficientFundsError,
    NotFoundError,
    RideError,
    StateError,
    ValidationError,
)
from .models import (
    DISPATCH_ELIGIBLE_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    DispatchMode,
    FareBreakdown,
    Location,
    PaymentMethod,
    PaymentStatus,
    Ride,
    Rider,
    RideRating,
    RideStatus,
    Role,
    VehicleClass,
    utc_now,
)
from .results import RideResult, capture

__all__ = [
    "RideError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "ConflictError",
    "InsufficientFundsError",
    "StateError",
    "ExternalServiceError",
    "DISPATCH_ELIGIBLE_STATUSES",
    "TERMINAL_STATUSES",
    "Actor",
    "DispatchMode",
    "FareBreakdown",
    "Location",
    "PaymentMethod",
    "PaymentStatus",
    "Ride",
    "Rider",
    "RideRating",
    "RideStatus",
    "Role",
    "VehicleClass",
    "utc_now",
    "RideResult",
    "capture",
]

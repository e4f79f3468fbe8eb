#Drivers domain: models, availability policy and the availability index.

from .models import ApprovalStatus, Driver, DriverLocationPing, DriverStatus
from .policy import AvailabilityPolicy, default_availability_policy
from .selection import AvailabilityIndex, Candidate, average_eta

__all__ = [
    "ApprovalStatus",
    "Driver",
    "DriverLocationPing",
    "DriverStatus",
    "AvailabilityPolicy",
    "default_availability_policy",
    "AvailabilityIndex",
    "Candidate",
    "average_eta",
]

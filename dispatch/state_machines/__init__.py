#Ride and driver state transitions.
#ride_state: legal ride status edges + who may drive them
#driver_state: online <-> busy around an accepted ride

from .driver_state import DriverStateException, handle_driver_acceptance, handle_driver_release
from .ride_state import ALLOWED_TRANSITIONS, can_transition, check_transition, sources_for

__all__ = [
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "check_transition",
    "sources_for",
    "DriverStateException",
    "handle_driver_acceptance",
    "handle_driver_release",
]

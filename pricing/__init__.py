"""
Pricing package (fare engine + estimates).

Public API:
- compute_fare, calculate_surge_multiplier, current_fare, round_half_up
- FarePolicy, VehicleRates, default_fare_policy
- Quote, FareEstimate, DriverAvailability, PersistedQuote, EphemeralQuote, FareSource
"""

from .estimates import (
    DriverAvailability,
    EphemeralQuote,
    FareEstimate,
    FareSource,
    PersistedQuote,
    Quote,
    generate_estimate_id,
    issue_estimate,
)
from .fare_engine import calculate_surge_multiplier, compute_fare, current_fare, round_half_up
from .policy import FarePolicy, VehicleRates, default_fare_policy

__all__ = [
    "compute_fare",
    "calculate_surge_multiplier",
    "current_fare",
    "round_half_up",
    "FarePolicy",
    "VehicleRates",
    "default_fare_policy",
    "Quote",
    "FareEstimate",
    "DriverAvailability",
    "PersistedQuote",
    "EphemeralQuote",
    "FareSource",
    "generate_estimate_id",
    "issue_estimate",
]

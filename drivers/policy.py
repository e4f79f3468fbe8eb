"""
Purpose: Central configuration for driver availability search.
What it does:

Stores all tunable thresholds/caps for finding drivers near a pickup:

PING_FRESHNESS_SECONDS = 300
MATCHING_RADIUS_KM = 10
DEFAULT_SPEED_KMH = 30
QUOTE_SAMPLE_SIZE = 3, DEFAULT_PICKUP_ETA_MINUTES = 15

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass

from routing.eta_service import DEFAULT_SPEED_KMH
from routing.geofence import MATCHING_RADIUS_KM


@dataclass(frozen=True)
class AvailabilityPolicy:
    """
    Central configuration for the availability index.
    """

    # --- Freshness ---
    # A ping older than this is treated as if the driver had gone dark.
    ping_freshness_seconds: int = 300

    # --- Geofencing Radius ---
    # Straight-line distance from the pickup beyond which a driver is never matched.
    matching_radius_km: float = MATCHING_RADIUS_KM

    # Used when the ping carries no usable speed.
    default_speed_kmh: float = DEFAULT_SPEED_KMH

    # --- Quoting ---
    # The pickup estimate shown with a fare is the average ETA of the closest N drivers.
    quote_sample_size: int = 3
    default_pickup_eta_minutes: int = 15

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.ping_freshness_seconds <= 0:
            raise ValueError("ping_freshness_seconds must be > 0")

        if self.matching_radius_km <= 0:
            raise ValueError("matching_radius_km must be > 0")

        if self.default_speed_kmh <= 0:
            raise ValueError("default_speed_kmh must be > 0")

        if self.quote_sample_size < 1:
            raise ValueError("quote_sample_size must be >= 1")

def default_availability_policy() -> AvailabilityPolicy:
    """
    Convenience factory for the default policy.
    """
    p = AvailabilityPolicy()
    p.validate()
    return p

"""
Purpose: Fare estimates and the fare source consumed by booking.
What it does:
- Quote: the priced trip (pickup, dropoff, vehicle class, breakdown)
- FareEstimate: a persisted, single-use Quote with a 10 minute expiry and the
  driver availability snapshot shown to the rider
- FareSource: what a booking is priced from, either
    PersistedQuote(estimate_id) - an estimate the rider fetched earlier, or
    EphemeralQuote(quote)       - a quote computed on the spot and never stored
  Booking resolves both to a Quote and treats them the same from there on.

Rule: consumption (the `used` flip) happens in the store, atomically.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from rides.models import FareBreakdown, Location, VehicleClass

from .policy import FarePolicy, default_fare_policy


@dataclass(frozen=True)
class Quote:
    pickup: Location
    dropoff: Location
    vehicle_class: VehicleClass
    breakdown: FareBreakdown


@dataclass(frozen=True)
class DriverAvailability:
    count: int
    estimated_pickup_minutes: int

    @property
    def message(self) -> str:
        if self.count <= 0:
            return "No drivers available right now"
        return f"{self.count} driver{'s' if self.count > 1 else ''} available"


@dataclass
class FareEstimate:
    id: str
    rider_id: str
    quote: Quote
    availability: DriverAvailability
    created_at: datetime
    expires_at: datetime
    used: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class PersistedQuote:
    estimate_id: str


@dataclass(frozen=True)
class EphemeralQuote:
    quote: Quote


FareSource = Union[PersistedQuote, EphemeralQuote]


def generate_estimate_id() -> str:
    return "est_" + secrets.token_hex(8)


def issue_estimate(
    rider_id: str,
    quote: Quote,
    availability: DriverAvailability,
    now: datetime,
    policy: Optional[FarePolicy] = None,
) -> FareEstimate:
    policy = policy or default_fare_policy()
    return FareEstimate(
        id=generate_estimate_id(),
        rider_id=rider_id,
        quote=quote,
        availability=availability,
        created_at=now,
        expires_at=now + timedelta(seconds=policy.estimate_ttl_seconds),
    )

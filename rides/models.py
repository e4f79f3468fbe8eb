"""
Purpose: Domain models for the Rides capability.
What it does:
- Defines core data structures:
- Location (lat, lng, address)
- FareBreakdown (base, distance, time, surge, subtotal, tax, total)
- Ride (rider, driver, status, pickup/dropoff, fares, lifecycle timestamps,
  cancellation, earnings, payment, rating)
- Actor (who is calling: rider, driver or the system itself)
- Rider (id + average rating received from drivers)

Defines enums/constants:
- RideStatus = SEARCHING | SCHEDULED | REQUESTED | ASSIGNED | ACCEPTED | ARRIVED | IN_PROGRESS | COMPLETED | CANCELLED
- VehicleClass = sedan | SUV | electric
- PaymentMethod = cash | card | wallet
- PaymentStatus = pending | paid | failed | refunded

Rule: No store access, no pricing or dispatch logic. Models only.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from .exceptions import ValidationError


class RideStatus(str, Enum):
    SEARCHING = "searching"
    SCHEDULED = "scheduled"
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

# Statuses a ride can be matched from.
DISPATCH_ELIGIBLE_STATUSES = frozenset({RideStatus.SEARCHING, RideStatus.REQUESTED, RideStatus.SCHEDULED})

# Statuses in which a driver reference must be present.
DRIVER_BOUND_STATUSES = frozenset(
    {RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.ARRIVED, RideStatus.IN_PROGRESS, RideStatus.COMPLETED}
)


class VehicleClass(str, Enum):
    SEDAN = "sedan"
    SUV = "SUV"
    ELECTRIC = "electric"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    WALLET = "wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DispatchMode(str, Enum):
    TARGETED = "targeted"
    BROADCAST = "broadcast"


class Role(str, Enum):
    RIDER = "rider"
    DRIVER = "driver"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """The identity an operation runs on behalf of."""

    user_id: str
    role: Role

    @classmethod
    def rider(cls, rider_id: str) -> Actor:
        return cls(user_id=rider_id, role=Role.RIDER)

    @classmethod
    def driver(cls, driver_id: str) -> Actor:
        return cls(user_id=driver_id, role=Role.DRIVER)

    @classmethod
    def system(cls) -> Actor:
        return cls(user_id="system", role=Role.SYSTEM)


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    address: str = ""

    def __post_init__(self):
        for name, value, limit in (("lat", self.lat, 90.0), ("lng", self.lng, 180.0)):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ValidationError(f"{name} must be a number")
            if not math.isfinite(value) or abs(value) > limit:
                raise ValidationError(f"{name} must be within [-{limit:g}, {limit:g}]")

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class FareBreakdown:
    """
    Output of the fare engine. Money is rounded to 2 decimals,
    distance and duration to 1 decimal.
    """

    base_fare: float
    distance_fare: float
    time_fare: float
    surge_multiplier: float
    subtotal: float
    tax: float
    total: float
    distance_km: float
    distance_miles: float
    duration_minutes: float
    currency: str = "GBP"


@dataclass
class RideRating:
    # given by the rider, about the driver
    driver_score: Optional[float] = None
    driver_comment: Optional[str] = None
    # given by the driver, about the rider
    rider_score: Optional[float] = None
    rider_comment: Optional[str] = None


@dataclass
class Ride:
    """
    The transactional record spanning booking through completion or cancellation.
    """

    id: str
    rider_id: str
    pickup: Location
    dropoff: Location
    vehicle_class: VehicleClass
    status: RideStatus
    payment_method: PaymentMethod = PaymentMethod.CASH

    driver_id: Optional[str] = None
    dispatch_mode: Optional[DispatchMode] = None

    estimated_fare: Optional[FareBreakdown] = None
    actual_fare: Optional[FareBreakdown] = None
    fare: float = 0.0
    estimated_distance_km: Optional[float] = None
    estimated_duration_min: Optional[float] = None
    actual_distance_km: Optional[float] = None
    actual_duration_min: Optional[float] = None

    scheduled_time: Optional[datetime] = None
    special_instructions: Optional[str] = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[Role] = None
    cancellation_fee: float = 0.0
    refund_amount: float = 0.0
    amount_charged: float = 0.0

    tips: float = 0.0
    bonuses: float = 0.0
    driver_earnings: float = 0.0
    platform_commission: float = 0.0
    payment_status: PaymentStatus = PaymentStatus.PENDING

    rating: RideRating = field(default_factory=RideRating)

    @staticmethod
    def new_id() -> str:
        return f"ride_{uuid.uuid4().hex[:12]}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class Rider:
    id: str
    rating: float = 5.0


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC."""
    return datetime.now(timezone.utc)

"""
Purpose: The fare engine (pure pricing function).
What it does:
Turns a trip (pickup, dropoff, vehicle class, duration) plus market conditions
(wall-clock time, live driver count) into a FareBreakdown:

- distance: haversine km, priced in miles
- subtotal = (base + distance fare + time fare) * surge
- tax = tax_rate * subtotal
- total = max(subtotal + tax, class minimum)

Rule: no clock reads, no store access. Callers inject `now` and driver counts,
so the same inputs always price the same.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from rides.exceptions import ValidationError
from rides.models import FareBreakdown, Location, Ride, VehicleClass
from routing.distance import distance_km as straight_line_km, km_to_miles

from .policy import FarePolicy, default_fare_policy


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a till does: 0.125 -> 0.13, not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_surge_multiplier(
    now: datetime,
    available_driver_count: int,
    requested_count: int = 1,
    policy: Optional[FarePolicy] = None,
) -> float:
    """
    Peak-hour surge on weekdays, compounded by a demand surge when fewer
    drivers are available than `demand_ratio` times the requested count.
    Rounded to one decimal.
    """
    policy = policy or default_fare_policy()
    multiplier = 1.0

    is_peak_day = now.weekday() in policy.peak_weekdays
    is_peak_hour = any(start <= now.hour <= end for start, end in policy.peak_hour_windows)
    if is_peak_day and is_peak_hour:
        multiplier *= policy.peak_multiplier

    if available_driver_count < requested_count * policy.demand_ratio:
        multiplier *= policy.demand_multiplier

    return round_half_up(multiplier, 1)


def _resolve_vehicle_class(vehicle_class) -> VehicleClass:
    try:
        return VehicleClass(vehicle_class)
    except ValueError:
        allowed = ", ".join(v.value for v in VehicleClass)
        raise ValidationError(f"Invalid vehicle class '{vehicle_class}'. Must be one of: {allowed}") from None


def compute_fare(
    pickup: Location,
    dropoff: Location,
    vehicle_class: VehicleClass,
    duration_minutes: float,
    now: datetime,
    available_driver_count: int,
    requested_count: int = 1,
    *,
    distance_km: Optional[float] = None,
    surge_multiplier: Optional[float] = None,
    policy: Optional[FarePolicy] = None,
) -> FareBreakdown:
    """
    Price a trip.

    Parameters
    ----------
    distance_km:
        Actual trip distance. When omitted the straight-line distance between
        pickup and dropoff is used.
    surge_multiplier:
        Fixed multiplier (e.g. the one quoted at booking). When omitted it is
        derived from `now` and the driver counts.
    """
    policy = policy or default_fare_policy()
    vehicle_class = _resolve_vehicle_class(vehicle_class)

    if duration_minutes is None or duration_minutes < 0:
        raise ValidationError("duration_minutes must be >= 0")
    if distance_km is not None and distance_km < 0:
        raise ValidationError("distance_km must be >= 0")

    rates = policy.rates_for(vehicle_class)

    kilometers = straight_line_km(pickup.coordinates, dropoff.coordinates) if distance_km is None else distance_km
    miles = km_to_miles(kilometers)

    base_fare = rates.base_fare
    distance_fare = miles * rates.per_mile
    time_fare = duration_minutes * rates.per_minute

    if surge_multiplier is None:
        surge_multiplier = calculate_surge_multiplier(now, available_driver_count, requested_count, policy)

    subtotal = (base_fare + distance_fare + time_fare) * surge_multiplier
    tax = subtotal * policy.tax_rate
    total = max(subtotal + tax, rates.minimum_fare)

    return FareBreakdown(
        base_fare=round_half_up(base_fare),
        distance_fare=round_half_up(distance_fare),
        time_fare=round_half_up(time_fare),
        surge_multiplier=surge_multiplier,
        subtotal=round_half_up(subtotal),
        tax=round_half_up(tax),
        total=round_half_up(total),
        distance_km=round_half_up(kilometers, 1),
        distance_miles=round_half_up(miles, 1),
        duration_minutes=round_half_up(duration_minutes, 1),
        currency=policy.currency,
    )


def current_fare(ride: Ride, now: datetime, policy: Optional[FarePolicy] = None) -> Optional[FareBreakdown]:
    """
    Running fare for an in-progress ride: elapsed minutes since start, the
    best known distance, and the surge the rider was quoted.
    """
    if ride.start_time is None:
        return None

    elapsed_minutes = max(0.0, (now - ride.start_time).total_seconds() / 60)
    distance = ride.actual_distance_km if ride.actual_distance_km is not None else ride.estimated_distance_km
    surge = ride.estimated_fare.surge_multiplier if ride.estimated_fare else 1.0

    return compute_fare(
        ride.pickup,
        ride.dropoff,
        ride.vehicle_class,
        elapsed_minutes,
        now,
        available_driver_count=0,
        distance_km=distance,
        surge_multiplier=surge,
        policy=policy,
    )

"""
Purpose: Central configuration for fare computation (single source of truth).
What it does:

Stores the per-vehicle-class rate table and the surge/tax knobs:

BASE_FARE = sedan 3.00, SUV 4.00, electric 3.50

PER_MILE = sedan 1.50, SUV 2.00, electric 1.75

PER_MINUTE = sedan 0.25, SUV 0.35, electric 0.30

MINIMUM_FARE = sedan 8.00, SUV 10.00, electric 9.00

TAX_RATE = 0.20

PEAK_SURGE = 1.3, DEMAND_SURGE = 1.2

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from rides.models import VehicleClass


@dataclass(frozen=True)
class VehicleRates:
    base_fare: float
    per_mile: float
    per_minute: float
    minimum_fare: float


def _default_rates() -> Dict[VehicleClass, VehicleRates]:
    return {
        VehicleClass.SEDAN: VehicleRates(base_fare=3.0, per_mile=1.5, per_minute=0.25, minimum_fare=8.0),
        VehicleClass.SUV: VehicleRates(base_fare=4.0, per_mile=2.0, per_minute=0.35, minimum_fare=10.0),
        VehicleClass.ELECTRIC: VehicleRates(base_fare=3.5, per_mile=1.75, per_minute=0.3, minimum_fare=9.0),
    }


@dataclass(frozen=True)
class FarePolicy:
    """
    Central configuration for pricing.

    Notes:
    - peak windows are whole hours, inclusive at both ends: (7, 9) covers
      07:00 through 09:59.
    - demand surge kicks in when available drivers < demand_ratio * requested.
    """

    rates: Dict[VehicleClass, VehicleRates] = field(default_factory=_default_rates)

    tax_rate: float = 0.20
    currency: str = "GBP"

    # --- Surge ---
    peak_multiplier: float = 1.3
    peak_hour_windows: Tuple[Tuple[int, int], ...] = ((7, 9), (17, 19))
    # Monday=0 ... Friday=4
    peak_weekdays: Tuple[int, ...] = (0, 1, 2, 3, 4)
    demand_multiplier: float = 1.2
    demand_ratio: float = 2.0

    # --- Defaults used when the caller has no trip duration yet ---
    default_duration_minutes: float = 15.0

    # --- Estimates ---
    estimate_ttl_seconds: int = 600  # 10 minutes

    def rates_for(self, vehicle_class: VehicleClass) -> VehicleRates:
        return self.rates[VehicleClass(vehicle_class)]

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        missing = [vehicle_class for vehicle_class in VehicleClass if vehicle_class not in self.rates]
        if missing:
            raise ValueError(f"missing rates for vehicle classes: {missing}")

        for vehicle_class, rates in self.rates.items():
            if min(rates.base_fare, rates.per_mile, rates.per_minute, rates.minimum_fare) < 0:
                raise ValueError(f"rates for {vehicle_class.value} must be >= 0")

        if not 0 <= self.tax_rate < 1:
            raise ValueError("tax_rate must be in [0, 1)")

        if self.peak_multiplier < 1.0 or self.demand_multiplier < 1.0:
            raise ValueError("surge multipliers must be >= 1.0")

        if self.estimate_ttl_seconds <= 0:
            raise ValueError("estimate_ttl_seconds must be > 0")


def default_fare_policy() -> FarePolicy:
    """
    Convenience factory for the default policy.
    """
    p = FarePolicy()
    p.validate()
    return p

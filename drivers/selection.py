"""
Purpose: Business rules and distance math for finding drivers who can take a pickup.
What it does:
Reads the latest ping per driver from the store, filters out ineligible
drivers, and ranks the remaining ones (closest first, then quickest ETA).

Filters, in order:
1) ping fresh (age <= ping_freshness_seconds)
2) driver online
3) driver approved
4) vehicle class matches
5) ping inside the operating area (geofence strategy)
6) straight-line distance to pickup <= matching_radius_km
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

from rides.models import Location, VehicleClass
from routing.distance import distance_km
from routing.eta_service import eta_minutes
from routing.geofence import Geofence, default_geofence

from .models import ApprovalStatus, Driver, DriverLocationPing, DriverStatus
from .policy import AvailabilityPolicy, default_availability_policy

if TYPE_CHECKING:
    from adapters.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    driver: Driver
    ping: DriverLocationPing
    distance_km: float
    eta_min: int

    @property
    def driver_id(self) -> str:
        return self.driver.id


def average_eta(candidates: List[Candidate], n: int = 3, default: int = 15) -> int:
    """Rounded mean ETA of the first `n` candidates, `default` when there are none."""
    closest = candidates[:n]
    if not closest:
        return default
    return int(sum(c.eta_min for c in closest) / len(closest) + 0.5)


def driver_rejection_reason(driver: Optional[Driver], vehicle_class: VehicleClass) -> Optional[str]:
    """Record-level checks (online, approved, vehicle class), independent of location."""
    if driver is None or driver.status != DriverStatus.ONLINE:
        return "not_online"
    if driver.approval != ApprovalStatus.APPROVED:
        return "not_approved"
    if driver.vehicle_class != vehicle_class:
        return "vehicle_class"
    return None


class AvailabilityIndex:
    """
    Geofenced search over live driver locations.
    """

    def __init__(
        self,
        store: "Store",
        geofence: Optional[Geofence] = None,
        policy: Optional[AvailabilityPolicy] = None,
    ):
        self.store = store
        self.geofence = geofence or default_geofence()
        self.policy = policy or default_availability_policy()

    def _rejection_reason(
        self,
        pickup: Location,
        vehicle_class: VehicleClass,
        ping: DriverLocationPing,
        driver: Optional[Driver],
        now: datetime,
    ) -> Optional[str]:
        if ping.age_seconds(now) > self.policy.ping_freshness_seconds:
            return "stale_ping"
        reason = driver_rejection_reason(driver, vehicle_class)
        if reason:
            return reason
        if not self.geofence.contains(ping.location):
            return "outside_area"
        if distance_km(ping.location, pickup.coordinates) > self.policy.matching_radius_km:
            return "out_of_range"
        return None

    async def find_candidates(
        self,
        pickup: Location,
        vehicle_class: VehicleClass,
        now: datetime,
    ) -> List[Candidate]:
        """
        Returns eligible drivers sorted by distance, then ETA.
        """
        vehicle_class = VehicleClass(vehicle_class)
        since = now - timedelta(seconds=self.policy.ping_freshness_seconds)
        rows = await self.store.recent_pings(since)

        rejected: Counter = Counter()
        candidates: List[Candidate] = []

        for ping, driver in rows:
            reason = self._rejection_reason(pickup, vehicle_class, ping, driver, now)
            if reason:
                rejected[reason] += 1
                continue

            km = distance_km(ping.location, pickup.coordinates)
            speed = ping.speed if ping.speed and ping.speed > 0 else self.policy.default_speed_kmh
            candidates.append(Candidate(driver=driver, ping=ping, distance_km=km, eta_min=eta_minutes(km, speed)))

        candidates.sort(key=lambda c: (c.distance_km, c.eta_min))

        logger.debug(
            "Availability search near %s for %s: %d fresh pings, %d eligible, rejected=%s",
            pickup.coordinates,
            vehicle_class.value,
            len(rows),
            len(candidates),
            dict(rejected),
        )
        return candidates

    async def count(self, pickup: Location, vehicle_class: VehicleClass, now: datetime) -> int:
        return len(await self.find_candidates(pickup, vehicle_class, now))

    async def average_closest_eta(
        self,
        pickup: Location,
        vehicle_class: VehicleClass,
        now: datetime,
        n: Optional[int] = None,
        default: Optional[int] = None,
    ) -> int:
        """
        Average ETA of the closest `n` drivers, rounded. Falls back to
        `default` minutes when nobody is around.
        """
        n = n or self.policy.quote_sample_size
        default = self.policy.default_pickup_eta_minutes if default is None else default

        return average_eta(await self.find_candidates(pickup, vehicle_class, now), n, default)

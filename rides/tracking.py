"""
Purpose: Live ride tracking view.
What it does:
Combines a ride with its driver's latest ping into what the rider's map shows:
- before pickup: driver position, distance and ETA to the pickup
- in progress: running fare, remaining distance and ETA to the dropoff
- a straight-line route polyline towards whichever point is next

Rule: pure function of (ride, ping, now). Loading happens in the service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from drivers.models import DriverLocationPing
from pricing.fare_engine import current_fare, round_half_up
from pricing.policy import FarePolicy
from routing.distance import LatLng, distance_km
from routing.eta_service import DEFAULT_SPEED_KMH, eta_minutes
from routing.route_service import RouteResult, straight_line_route

from .models import FareBreakdown, Ride, RideStatus

_EN_ROUTE_TO_PICKUP = frozenset({RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.ARRIVED})


@dataclass
class RideStatusView:
    ride: Ride
    driver_location: Optional[LatLng] = None
    distance_to_target_km: Optional[float] = None
    eta_minutes: Optional[int] = None
    route: Optional[RouteResult] = None
    live_fare: Optional[FareBreakdown] = None

    @property
    def target(self) -> Optional[str]:
        if self.ride.status in _EN_ROUTE_TO_PICKUP:
            return "pickup"
        if self.ride.status == RideStatus.IN_PROGRESS:
            return "dropoff"
        return None


def build_status_view(
    ride: Ride,
    ping: Optional[DriverLocationPing],
    now: datetime,
    fare_policy: Optional[FarePolicy] = None,
) -> RideStatusView:
    view = RideStatusView(ride=ride)

    if ride.status == RideStatus.IN_PROGRESS:
        view.live_fare = current_fare(ride, now, fare_policy)

    target = view.target
    if target is None:
        return view

    destination = ride.pickup.coordinates if target == "pickup" else ride.dropoff.coordinates
    origin = ping.location if ping is not None else ride.pickup.coordinates
    if ping is not None:
        view.driver_location = ping.location

    km = distance_km(origin, destination)
    speed = ping.speed if ping is not None and ping.speed > 0 else DEFAULT_SPEED_KMH
    view.distance_to_target_km = round_half_up(km, 1)
    view.eta_minutes = eta_minutes(km, speed)
    view.route = straight_line_route(origin, destination)
    return view

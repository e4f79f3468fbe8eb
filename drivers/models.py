"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the structure of a Driver, their availability/approval status and the
location pings they stream, without relying on any persistence layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from rides.models import VehicleClass

LatLng = Tuple[float, float]


class DriverStatus(str, Enum):
    """
    Standardizes the availability state a driver can be in.
    Only ONLINE drivers are offered rides.
    """
    ONLINE = "online"
    BUSY = "busy"
    OFFLINE = "offline"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Driver:
    """
    A purely stateless representation of a Driver at a specific point in time.
    Transitions return new instances (see dispatch.state_machines.driver_state).
    """
    id: str
    status: DriverStatus
    vehicle_class: Optional[VehicleClass]
    approval: ApprovalStatus = ApprovalStatus.PENDING

    rating: float = 5.0
    total_earnings: float = 0.0

    @classmethod
    def new(
        cls,
        driver_id: str,
        vehicle_class: str | VehicleClass | None,
        status: str | DriverStatus = DriverStatus.OFFLINE,
        approval: str | ApprovalStatus = ApprovalStatus.APPROVED,
        rating: float = 5.0,
    ) -> Driver:
        if isinstance(status, str):
            status = DriverStatus(status)
        if isinstance(approval, str):
            approval = ApprovalStatus(approval)
        if isinstance(vehicle_class, str):
            vehicle_class = VehicleClass(vehicle_class)

        return cls(
            id=driver_id,
            status=status,
            vehicle_class=vehicle_class,
            approval=approval,
            rating=rating,
        )


@dataclass(frozen=True)
class DriverLocationPing:
    """
    One GPS report from a driver's device. Freshness is judged at query time
    against the ping timestamp; it is never stored on the ping itself.
    """
    driver_id: str
    lat: float
    lng: float
    timestamp: datetime
    heading: float = 0.0
    speed: float = 0.0  # km/h

    @property
    def location(self) -> LatLng:
        return (self.lat, self.lng)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.timestamp).total_seconds()

    @classmethod
    def new(
        cls,
        driver_id: str,
        lat: float,
        lng: float,
        timestamp: datetime | None = None,
        heading: float = 0.0,
        speed: float = 0.0,
    ) -> DriverLocationPing:
        return cls(
            driver_id=driver_id,
            lat=lat,
            lng=lng,
            timestamp=timestamp or datetime.now(timezone.utc),
            heading=heading,
            speed=speed,
        )

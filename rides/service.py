"""
Purpose: The operation surface of the ride engine.
What it does:
Wires the components together and exposes one coroutine per operation:

quote / get_fare_estimate -> book_ride -> accept_ride | reject_ride
-> mark_arrived -> start_ride -> complete_ride -> add_tip / rate_driver / rate_rider
cancel_ride at any non-terminal point, ride_status for live tracking,
record_ping for driver location updates.

Each operation takes ride/actor identity plus a minimal payload and returns
the updated Ride, or raises a RideError. Wrap calls in rides.results.capture()
to get a RideResult instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from adapters.notifier import Notifier, best_effort
from adapters.payment_gateway import PaymentGateway
from adapters.store import Store
from dispatch.dispatcher import DispatchCoordinator, Offer, RecoveryReport
from dispatch.policy import DispatchPolicy
from dispatch.recovery import ReconciliationSweep
from dispatch.state_machines.ride_state import check_transition, sources_for
from drivers.models import DriverLocationPing
from drivers.policy import AvailabilityPolicy
from drivers.selection import AvailabilityIndex, average_eta, driver_rejection_reason
from pricing.estimates import (
    DriverAvailability,
    EphemeralQuote,
    FareEstimate,
    FareSource,
    PersistedQuote,
    Quote,
    issue_estimate,
)
from pricing.fare_engine import compute_fare
from pricing.policy import FarePolicy, default_fare_policy
from routing.geofence import Geofence
from settlement.engine import SettlementEngine
from settlement.models import RideGuard
from settlement.policy import SettlementPolicy
from settlement.ratings import RatingService

from .exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import (
    Actor,
    DispatchMode,
    Location,
    PaymentMethod,
    Ride,
    RideStatus,
    Role,
    VehicleClass,
    utc_now,
)
from .tracking import RideStatusView, build_status_view

logger = logging.getLogger(__name__)

MAX_SCHEDULE_AHEAD = timedelta(days=7)


def _vehicle_class(value) -> VehicleClass:
    try:
        return VehicleClass(value)
    except ValueError:
        allowed = ", ".join(v.value for v in VehicleClass)
        raise ValidationError(f"Invalid vehicle class '{value}'. Must be one of: {allowed}") from None


def _payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Invalid payment method '{value}'. Must be one of: {allowed}") from None


class RideService:
    """
    Ride engine facade.

    Collaborators (store, notifier, payment gateway) are injected; everything
    else is built from them. Without a gateway, an HTTP one is configured
    from the environment the first time a card payment is checked. `clock` must return timezone-aware datetimes.
    """

    def __init__(
        self,
        store: Store,
        notifier: Optional[Notifier] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        *,
        geofence: Optional[Geofence] = None,
        fare_policy: Optional[FarePolicy] = None,
        availability_policy: Optional[AvailabilityPolicy] = None,
        dispatch_policy: Optional[DispatchPolicy] = None,
        settlement_policy: Optional[SettlementPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = best_effort(notifier)
        self.fare_policy = fare_policy or default_fare_policy()
        self.clock = clock

        self.availability = AvailabilityIndex(store, geofence, availability_policy)
        self.dispatcher = DispatchCoordinator(store, self.notifier, dispatch_policy, clock)
        self.settlement = SettlementEngine(
            store, self.notifier, payment_gateway, settlement_policy, self.fare_policy, clock
        )
        self.ratings = RatingService(store, self.notifier, settlement_policy)
        self.sweep = ReconciliationSweep(store, self.dispatcher, self.availability, clock)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> RecoveryReport:
        """Pick dispatch back up after a restart."""
        return await self.dispatcher.recover(self.clock())

    async def shutdown(self) -> None:
        await self.dispatcher.shutdown()

    # ------------------------------------------------------------------
    # pricing
    # ------------------------------------------------------------------
    async def quote(
        self,
        pickup: Location,
        dropoff: Location,
        vehicle_class,
        duration_minutes: Optional[float] = None,
    ) -> Quote:
        """Price a trip without storing anything."""
        vehicle_class = _vehicle_class(vehicle_class)
        now = self.clock()
        available = await self.availability.count(pickup, vehicle_class, now)
        return self._price(pickup, dropoff, vehicle_class, duration_minutes, now, available)

    def _price(self, pickup, dropoff, vehicle_class, duration_minutes, now, available) -> Quote:
        duration = self.fare_policy.default_duration_minutes if duration_minutes is None else duration_minutes
        breakdown = compute_fare(pickup, dropoff, vehicle_class, duration, now, available, policy=self.fare_policy)
        return Quote(pickup=pickup, dropoff=dropoff, vehicle_class=vehicle_class, breakdown=breakdown)

    async def get_fare_estimate(
        self,
        rider_id: str,
        pickup: Location,
        dropoff: Location,
        vehicle_class,
        duration_minutes: Optional[float] = None,
    ) -> FareEstimate:
        """
        Price a trip and keep the quote for 10 minutes so booking can
        consume it. Also reports how many drivers are around and how soon
        the closest few could be at the pickup.
        """
        vehicle_class = _vehicle_class(vehicle_class)
        now = self.clock()

        candidates = await self.availability.find_candidates(pickup, vehicle_class, now)
        policy = self.availability.policy
        availability = DriverAvailability(
            count=len(candidates),
            estimated_pickup_minutes=average_eta(
                candidates, policy.quote_sample_size, policy.default_pickup_eta_minutes
            ),
        )

        quote = self._price(pickup, dropoff, vehicle_class, duration_minutes, now, len(candidates))
        estimate = issue_estimate(rider_id, quote, availability, now, self.fare_policy)
        await self.store.save_estimate(estimate)

        logger.info(
            "Fare estimate %s for rider %s: %.2f %s (%d drivers)",
            estimate.id,
            rider_id,
            quote.breakdown.total,
            quote.breakdown.currency,
            availability.count,
        )
        return estimate

    # ------------------------------------------------------------------
    # booking + dispatch
    # ------------------------------------------------------------------
    def _validate_schedule(self, scheduled_time: Optional[datetime], now: datetime) -> None:
        if scheduled_time is None:
            return
        if scheduled_time.tzinfo is None:
            raise ValidationError("Scheduled time must include a timezone")
        if scheduled_time <= now:
            raise ValidationError("Scheduled time must be in the future")
        if scheduled_time > now + MAX_SCHEDULE_AHEAD:
            raise ValidationError("Rides can only be scheduled up to 7 days in advance")

    async def _resolve_source(self, rider_id: str, source: FareSource, now: datetime) -> Quote:
        if isinstance(source, PersistedQuote):
            estimate = await self.store.consume_estimate(source.estimate_id, rider_id, now)
            return estimate.quote
        if isinstance(source, EphemeralQuote):
            return source.quote
        raise ValidationError("Unknown fare source")

    async def _source_vehicle_class(self, source: FareSource) -> VehicleClass:
        # reads the estimate without consuming it
        if isinstance(source, PersistedQuote):
            estimate = await self.store.get_estimate(source.estimate_id)
            if estimate is None:
                raise NotFoundError("Fare estimate not found or expired")
            return estimate.quote.vehicle_class
        if isinstance(source, EphemeralQuote):
            return source.quote.vehicle_class
        raise ValidationError("Unknown fare source")

    async def _check_targeted_driver(self, driver_id: str, vehicle_class: VehicleClass) -> None:
        driver = await self.store.get_driver(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found")

        reason = driver_rejection_reason(driver, vehicle_class)
        if reason == "not_online":
            raise ConflictError(f"Driver {driver_id} is not available right now")
        if reason:
            raise ValidationError(f"Driver {driver_id} cannot take this ride ({reason})")

    async def book_ride(
        self,
        rider_id: str,
        source: FareSource,
        *,
        payment_method=PaymentMethod.CASH,
        driver_id: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        special_instructions: Optional[str] = None,
    ) -> Ride:
        """
        Create a ride from a fare source.

        - scheduled_time -> status scheduled, dispatched later by the sweep
        - driver_id      -> targeted offer to that driver (status requested)
        - otherwise      -> broadcast to every nearby candidate (status searching)
        """
        now = self.clock()
        payment_method = _payment_method(payment_method)
        self._validate_schedule(scheduled_time, now)

        if scheduled_time is not None and driver_id:
            raise ValidationError("A scheduled ride cannot be offered to a specific driver")

        if driver_id:
            await self._check_targeted_driver(driver_id, await self._source_vehicle_class(source))

        quote = await self._resolve_source(rider_id, source, now)
        breakdown = quote.breakdown

        if scheduled_time is not None:
            status, mode = RideStatus.SCHEDULED, None
        elif driver_id:
            status, mode = RideStatus.REQUESTED, DispatchMode.TARGETED
        else:
            status, mode = RideStatus.SEARCHING, DispatchMode.BROADCAST

        ride = Ride(
            id=Ride.new_id(),
            rider_id=rider_id,
            pickup=quote.pickup,
            dropoff=quote.dropoff,
            vehicle_class=quote.vehicle_class,
            status=status,
            payment_method=payment_method,
            dispatch_mode=mode,
            estimated_fare=breakdown,
            estimated_distance_km=breakdown.distance_km,
            estimated_duration_min=breakdown.duration_minutes,
            scheduled_time=scheduled_time,
            special_instructions=special_instructions,
            created_at=now,
        )
        ride = await self.store.create_ride(ride)
        logger.info("Ride %s booked by rider %s (%s)", ride.id, rider_id, status.value)

        await self.notifier.notify_user(
            rider_id,
            "ride_booked",
            {"ride_id": ride.id, "status": status.value, "estimated_fare": breakdown.total},
        )

        if status == RideStatus.SCHEDULED:
            return ride
        if mode == DispatchMode.TARGETED:
            return await self.dispatcher.start_targeted(ride, driver_id)

        candidates = await self.availability.find_candidates(ride.pickup, ride.vehicle_class, now)
        return await self.dispatcher.start_broadcast(ride, [c.driver_id for c in candidates])

    async def accept_ride(self, ride_id: str, driver_id: str) -> Ride:
        return await self.dispatcher.accept(ride_id, driver_id)

    async def reject_ride(self, ride_id: str, driver_id: str) -> Ride:
        return await self.dispatcher.reject(ride_id, driver_id)

    def active_offers(self, driver_id: str) -> List[Offer]:
        return self.dispatcher.active_offers_for(driver_id, self.clock())

    # ------------------------------------------------------------------
    # trip progress
    # ------------------------------------------------------------------
    async def _advance(self, ride_id: str, actor: Actor, target: RideStatus, changes: dict) -> Ride:
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")
        check_transition(ride, target, actor)

        try:
            return await self.store.update_ride(
                ride_id,
                RideGuard(statuses=sources_for(target), fields={"driver_id": ride.driver_id}),
                {"status": target, **changes},
            )
        except ConflictError:
            raise ConflictError("Ride status changed, please refresh") from None

    async def mark_arrived(self, ride_id: str, driver_id: str) -> Ride:
        ride = await self._advance(ride_id, Actor.driver(driver_id), RideStatus.ARRIVED, {"arrived_at": self.clock()})
        logger.info("Driver %s arrived for ride %s", driver_id, ride_id)
        await self.notifier.notify_user(ride.rider_id, "driver_arrived", {"ride_id": ride_id, "driver_id": driver_id})
        await self.notifier.notify_ride(ride_id, "driver_arrived", {"driver_id": driver_id})
        return ride

    async def start_ride(self, ride_id: str, driver_id: str) -> Ride:
        ride = await self._advance(ride_id, Actor.driver(driver_id), RideStatus.IN_PROGRESS, {"start_time": self.clock()})
        logger.info("Ride %s started", ride_id)
        await self.notifier.notify_user(ride.rider_id, "ride_started", {"ride_id": ride_id})
        await self.notifier.notify_ride(ride_id, "ride_started", {"driver_id": driver_id})
        return ride

    async def complete_ride(
        self,
        ride_id: str,
        driver_id: str,
        actual_distance_km: Optional[float] = None,
        actual_duration_min: Optional[float] = None,
    ) -> Ride:
        return await self.settlement.complete(
            ride_id, Actor.driver(driver_id), actual_distance_km, actual_duration_min
        )

    async def cancel_ride(self, ride_id: str, actor: Actor, reason: Optional[str] = None) -> Ride:
        ride = await self.settlement.cancel(ride_id, actor, reason)
        await self.dispatcher.withdraw(ride_id)
        return ride

    # ------------------------------------------------------------------
    # after the trip
    # ------------------------------------------------------------------
    async def add_tip(self, ride_id: str, rider_id: str, amount: float) -> Ride:
        return await self.settlement.add_tip(ride_id, Actor.rider(rider_id), amount)

    async def rate_driver(self, ride_id: str, rider_id: str, score: float, comment: Optional[str] = None) -> Ride:
        return await self.ratings.rate_driver(ride_id, Actor.rider(rider_id), score, comment)

    async def rate_rider(self, ride_id: str, driver_id: str, score: float, comment: Optional[str] = None) -> Ride:
        return await self.ratings.rate_rider(ride_id, Actor.driver(driver_id), score, comment)

    # ------------------------------------------------------------------
    # tracking
    # ------------------------------------------------------------------
    async def ride_status(self, ride_id: str, actor: Actor) -> RideStatusView:
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")

        allowed = (
            actor.role == Role.SYSTEM
            or (actor.role == Role.RIDER and actor.user_id == ride.rider_id)
            or (actor.role == Role.DRIVER and ride.driver_id is not None and actor.user_id == ride.driver_id)
        )
        if not allowed:
            raise AuthorizationError("You are not part of this ride")

        ping = await self.store.latest_ping(ride.driver_id) if ride.driver_id else None
        return build_status_view(ride, ping, self.clock(), self.fare_policy)

    async def record_ping(
        self,
        driver_id: str,
        lat: float,
        lng: float,
        heading: float = 0.0,
        speed: float = 0.0,
        timestamp: Optional[datetime] = None,
    ) -> DriverLocationPing:
        Location(lat, lng)  # range check
        if speed is not None and speed < 0:
            raise ValidationError("speed must be >= 0")
        if await self.store.get_driver(driver_id) is None:
            raise NotFoundError("Driver not found")

        ping = DriverLocationPing.new(
            driver_id, lat, lng, timestamp=timestamp or self.clock(), heading=heading, speed=speed or 0.0
        )
        await self.store.record_ping(ping)
        return ping

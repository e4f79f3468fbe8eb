"""
Purpose: Post-trip ratings.
What it does:
Lets each side rate the other once per completed ride, then refreshes the
recipient's average from every completed ride they were rated on.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, List, Optional

from pricing.fare_engine import round_half_up
from rides.exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from rides.models import Actor, Ride, Rider, RideStatus, Role

from .models import RideGuard
from .policy import SettlementPolicy, default_settlement_policy

if TYPE_CHECKING:
    from adapters.notifier import Notifier
    from adapters.store import Store

logger = logging.getLogger(__name__)


def average_rating(scores: List[float], default: float = 5.0) -> float:
    if not scores:
        return default
    return round_half_up(sum(scores) / len(scores), 1)


class RatingService:
    def __init__(self, store: "Store", notifier: "Notifier", policy: Optional[SettlementPolicy] = None):
        self.store = store
        self.notifier = notifier
        self.policy = policy or default_settlement_policy()

    def _validate_score(self, score) -> float:
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValidationError("Rating must be a number")
        if not self.policy.min_rating <= score <= self.policy.max_rating:
            raise ValidationError(
                f"Rating must be between {self.policy.min_rating:g} and {self.policy.max_rating:g}"
            )
        return float(score)

    async def _rateable_ride(self, ride_id: str) -> Ride:
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")
        if ride.status != RideStatus.COMPLETED:
            raise StateError("Only completed rides can be rated")
        return ride

    async def rate_driver(self, ride_id: str, actor: Actor, score: float, comment: Optional[str] = None) -> Ride:
        """The rider rates the driver."""
        score = self._validate_score(score)
        ride = await self._rateable_ride(ride_id)
        if actor.role != Role.RIDER or actor.user_id != ride.rider_id:
            raise AuthorizationError("Only the rider of this ride can rate the driver")
        if ride.rating.driver_score is not None:
            raise ConflictError("Driver has already been rated for this ride")

        try:
            rated = await self.store.update_ride(
                ride_id,
                RideGuard.status_in(RideStatus.COMPLETED, **{"rating.driver_score": None}),
                {"rating.driver_score": score, "rating.driver_comment": comment},
            )
        except ConflictError:
            raise ConflictError("Driver has already been rated for this ride") from None

        rides = await self.store.list_rides(driver_id=rated.driver_id, statuses=[RideStatus.COMPLETED])
        average = average_rating(
            [r.rating.driver_score for r in rides if r.rating.driver_score is not None],
            self.policy.default_rating,
        )
        try:
            await self.store.update_driver(rated.driver_id, lambda driver: replace(driver, rating=average))
        except NotFoundError:
            logger.warning("Rated driver %s has no driver record", rated.driver_id)

        logger.info("Driver %s rated %.1f on ride %s (average %.1f)", rated.driver_id, score, ride_id, average)
        await self.notifier.notify_user(rated.driver_id, "rating_received", {"ride_id": ride_id, "rating": score})
        return rated

    async def rate_rider(self, ride_id: str, actor: Actor, score: float, comment: Optional[str] = None) -> Ride:
        """The driver rates the rider."""
        score = self._validate_score(score)
        ride = await self._rateable_ride(ride_id)
        if actor.role != Role.DRIVER or actor.user_id != ride.driver_id:
            raise AuthorizationError("Only the driver of this ride can rate the rider")
        if ride.rating.rider_score is not None:
            raise ConflictError("Rider has already been rated for this ride")

        try:
            rated = await self.store.update_ride(
                ride_id,
                RideGuard.status_in(RideStatus.COMPLETED, **{"rating.rider_score": None}),
                {"rating.rider_score": score, "rating.rider_comment": comment},
            )
        except ConflictError:
            raise ConflictError("Rider has already been rated for this ride") from None

        rides = await self.store.list_rides(rider_id=rated.rider_id, statuses=[RideStatus.COMPLETED])
        average = average_rating(
            [r.rating.rider_score for r in rides if r.rating.rider_score is not None],
            self.policy.default_rating,
        )
        rider = await self.store.get_rider(rated.rider_id) or Rider(id=rated.rider_id)
        rider.rating = average
        await self.store.save_rider(rider)

        logger.info("Rider %s rated %.1f on ride %s (average %.1f)", rated.rider_id, score, ride_id, average)
        await self.notifier.notify_user(rated.rider_id, "rating_received", {"ride_id": ride_id, "rating": score})
        return rated

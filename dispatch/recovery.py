"""
Purpose: Periodic reconciliation between stored rides and live dispatch.
What it does:
1) scheduled rides whose time has come are released into broadcast dispatch
2) dispatchable rides with no live session, well past the deadline they would
   have had, are cancelled ("No driver available")

Sessions only live in memory; this sweep is what keeps a ride from waiting
forever when the process that owned its timer went away.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from rides.exceptions import ConflictError, RideError
from rides.models import DispatchMode, Ride, RideStatus, utc_now
from settlement.models import RideGuard

from .dispatcher import DispatchCoordinator

if TYPE_CHECKING:
    from adapters.store import Store
    from drivers.selection import AvailabilityIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
    released: int = 0
    expired: int = 0


class ReconciliationSweep:
    def __init__(
        self,
        store: "Store",
        coordinator: DispatchCoordinator,
        availability: "AvailabilityIndex",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.coordinator = coordinator
        self.availability = availability
        self.clock = clock

    def _dispatch_anchor(self, ride: Ride) -> datetime:
        if ride.scheduled_time is not None and ride.scheduled_time > ride.created_at:
            return ride.scheduled_time
        return ride.created_at

    async def _release_scheduled(self, ride: Ride, now: datetime) -> bool:
        try:
            ride = await self.store.update_ride(
                ride.id,
                RideGuard.status_in(RideStatus.SCHEDULED, dispatch_mode=ride.dispatch_mode),
                {"dispatch_mode": DispatchMode.BROADCAST},
            )
        except ConflictError:
            return False

        candidates = await self.availability.find_candidates(ride.pickup, ride.vehicle_class, now)
        logger.info("Releasing scheduled ride %s to %d candidate(s)", ride.id, len(candidates))
        await self.coordinator.start_broadcast(ride, [c.driver_id for c in candidates])
        return True

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock()
        policy = self.coordinator.policy
        grace = timedelta(seconds=policy.reconciliation_grace_seconds)
        released = expired = 0

        for ride in await self.store.list_rides(statuses=[RideStatus.SCHEDULED]):
            if ride.id in self.coordinator.sessions or ride.dispatch_mode is not None:
                continue
            if ride.scheduled_time is not None and ride.scheduled_time <= now:
                if await self._release_scheduled(ride, now):
                    released += 1

        stuck_statuses = [RideStatus.SEARCHING, RideStatus.REQUESTED, RideStatus.SCHEDULED]
        for ride in await self.store.list_rides(statuses=stuck_statuses):
            if ride.id in self.coordinator.sessions:
                continue
            if ride.status == RideStatus.SCHEDULED and ride.dispatch_mode is None:
                continue

            mode = ride.dispatch_mode or DispatchMode.BROADCAST
            deadline = self._dispatch_anchor(ride) + timedelta(seconds=policy.timeout_for(mode)) + grace
            if now < deadline:
                continue

            logger.warning("Ride %s has no dispatch session past its deadline", ride.id)
            if await self.coordinator.cancel_unmatched(ride.id, policy.expiry_reason(mode), []):
                expired += 1

        report = SweepReport(released=released, expired=expired)
        if released or expired:
            logger.info("Reconciliation sweep: %s", report)
        return report

    async def run_forever(self, interval_seconds: float = 30.0) -> None:
        while True:
            try:
                await self.run()
            except RideError as error:
                logger.warning("Reconciliation sweep stopped early: %s", error.message)
            await asyncio.sleep(interval_seconds)

"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Takes a booked ride plus its ranked candidates, offers it to them and
resolves the race between acceptances, rejections and the deadline.

- Broadcast: every candidate is notified at once, one shared deadline.
  First accept wins, the rest get `ride_taken`. A reject drops that driver;
  an empty queue or the deadline cancels the ride ("No driver available").
- Targeted: one pre-selected driver with a longer deadline. A reject or
  silence cancels the ride.

Exactly one outcome per ride: the status-guarded write from a dispatchable
status is what decides the winner, not the in-memory session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from rides.exceptions import AuthorizationError, ConflictError, NotFoundError
from rides.models import (
    DISPATCH_ELIGIBLE_STATUSES,
    Actor,
    DispatchMode,
    Ride,
    RideStatus,
    Role,
    utc_now,
)
from settlement.models import RideGuard

from .policy import DispatchPolicy, default_dispatch_policy
from .session import DispatchSession, SessionRegistry
from .state_machines.driver_state import DriverStateException, handle_driver_acceptance, handle_driver_release
from .state_machines.ride_state import check_transition

if TYPE_CHECKING:
    from adapters.notifier import Notifier
    from adapters.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Offer:
    """An open offer as a driver's app would show it."""
    ride_id: str
    mode: DispatchMode
    seconds_left: float
    position: int
    queue_size: int


@dataclass(frozen=True)
class RecoveryReport:
    rearmed: int = 0
    expired: int = 0
    dropped: int = 0


def _offer_payload(ride: Ride, seconds: float, mode: DispatchMode) -> Dict[str, Any]:
    return {
        "ride_id": ride.id,
        "mode": mode.value,
        "pickup": {"lat": ride.pickup.lat, "lng": ride.pickup.lng, "address": ride.pickup.address},
        "dropoff": {"lat": ride.dropoff.lat, "lng": ride.dropoff.lng, "address": ride.dropoff.address},
        "vehicle_class": ride.vehicle_class.value,
        "estimated_fare": ride.estimated_fare.total if ride.estimated_fare else None,
        "expires_in": seconds,
    }


class DispatchCoordinator:
    """
    Offers rides to drivers under a fixed deadline.

    Collaborators are injected: `store` for guarded ride writes and dispatch
    records, `notifier` (best-effort) for offers and outcomes.
    """

    def __init__(
        self,
        store: "Store",
        notifier: "Notifier",
        policy: Optional[DispatchPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier
        self.policy = policy or default_dispatch_policy()
        self.clock = clock
        self.sessions = SessionRegistry()

    # ------------------------------------------------------------------
    # starting
    # ------------------------------------------------------------------
    async def start_broadcast(self, ride: Ride, candidate_ids: List[str]) -> Ride:
        return await self._start(ride, DispatchMode.BROADCAST, candidate_ids)

    async def start_targeted(self, ride: Ride, driver_id: str) -> Ride:
        return await self._start(ride, DispatchMode.TARGETED, [driver_id])

    async def _start(self, ride: Ride, mode: DispatchMode, candidate_ids: List[str]) -> Ride:
        if ride.id in self.sessions:
            raise ConflictError(f"Ride {ride.id} is already being dispatched")

        # de-duplicate while keeping rank order
        queue = list(dict.fromkeys(candidate_ids))

        if not queue:
            logger.info("No candidates for ride %s, cancelling", ride.id)
            cancelled = await self.cancel_unmatched(ride.id, self.policy.no_driver_reason, [])
            return cancelled or ride

        now = self.clock()
        timeout = self.policy.timeout_for(mode)
        session = DispatchSession(
            ride_id=ride.id,
            mode=mode,
            queue=queue,
            deadline=now + timedelta(seconds=timeout),
            started_at=now,
        )

        await self.store.save_dispatch_record(session.to_record())
        self._arm(session, timeout)

        logger.info("Dispatching ride %s (%s) to %d driver(s), deadline %ss", ride.id, mode.value, len(queue), timeout)

        payload = _offer_payload(ride, timeout, mode)
        await asyncio.gather(*(self.notifier.notify_user(driver_id, "ride_request", payload) for driver_id in queue))
        return ride

    def _arm(self, session: DispatchSession, delay: float) -> None:
        self.sessions.open(session)
        session.timer = asyncio.get_running_loop().create_task(
            self._expire_after(session.ride_id, delay),
            name=f"dispatch-deadline-{session.ride_id}",
        )

    async def _expire_after(self, ride_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._on_deadline(ride_id)

    async def _on_deadline(self, ride_id: str) -> None:
        session = self.sessions.release(ride_id)
        if session is None:
            return
        logger.info("Dispatch deadline reached for ride %s", ride_id)
        await self.cancel_unmatched(ride_id, self.policy.expiry_reason(session.mode), session.queue)

    # ------------------------------------------------------------------
    # driver responses
    # ------------------------------------------------------------------
    async def accept(self, ride_id: str, driver_id: str) -> Ride:
        """
        Race resolver: exactly one acceptance per ride succeeds. Losers,
        latecomers and drivers outside the queue change nothing.
        """
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")

        session = self.sessions.get(ride_id)
        if session is None:
            raise ConflictError("Ride is no longer available")
        if driver_id not in session.queue:
            raise AuthorizationError("This ride was not offered to you")
        if ride.status not in DISPATCH_ELIGIBLE_STATUSES:
            raise ConflictError("Ride is no longer available")

        check_transition(ride, RideStatus.ACCEPTED, Actor.driver(driver_id))

        # claim the driver first (online -> busy), the ride write only follows a successful claim
        try:
            await self.store.update_driver(driver_id, handle_driver_acceptance)
        except DriverStateException as error:
            logger.info("Driver %s cannot accept ride %s: %s", driver_id, ride_id, error)
            raise ConflictError("You are not available to take this ride") from None

        try:
            accepted = await self.store.update_ride(
                ride_id,
                RideGuard(statuses=DISPATCH_ELIGIBLE_STATUSES, fields={"driver_id": None}),
                {"status": RideStatus.ACCEPTED, "driver_id": driver_id, "accepted_at": self.clock()},
            )
        except (ConflictError, NotFoundError):
            await self.store.update_driver(driver_id, handle_driver_release)
            raise ConflictError("Ride already accepted by another driver") from None

        released = self.sessions.release(ride_id)
        others = [d for d in (released.queue if released else session.queue) if d != driver_id]
        await self.store.delete_dispatch_record(ride_id)

        logger.info("Ride %s accepted by driver %s", ride_id, driver_id)

        await self.notifier.notify_user(
            accepted.rider_id, "ride_accepted", {"ride_id": ride_id, "driver_id": driver_id}
        )
        await self.notifier.notify_ride(ride_id, "ride_accepted", {"driver_id": driver_id})
        await asyncio.gather(*(self.notifier.notify_user(d, "ride_taken", {"ride_id": ride_id}) for d in others))
        return accepted

    async def reject(self, ride_id: str, driver_id: str) -> Ride:
        """
        Drops the driver from the queue. When nobody is left the ride is
        cancelled right away instead of waiting for the deadline.
        """
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")

        session = self.sessions.get(ride_id)
        if session is None:
            raise ConflictError("Ride is no longer available")
        if driver_id not in session.queue:
            raise AuthorizationError("This ride was not offered to you")

        session.queue.remove(driver_id)
        logger.info("Driver %s rejected ride %s (%d left)", driver_id, ride_id, len(session.queue))

        if session.queue:
            await self.store.save_dispatch_record(session.to_record())
            return ride

        self.sessions.release(ride_id)
        cancelled = await self.cancel_unmatched(ride_id, self.policy.exhausted_reason(session.mode), [])
        return cancelled or ride

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------
    def abort(self, ride_id: str) -> Optional[DispatchSession]:
        """Synchronously release the ride's session and timer, if any."""
        return self.sessions.release(ride_id)

    async def withdraw(self, ride_id: str) -> None:
        """
        abort() plus cleanup: drop the persisted record and pull the offer
        from every driver still holding it. Used when the rider cancels.
        """
        session = self.abort(ride_id)
        await self.store.delete_dispatch_record(ride_id)
        if session is not None:
            await asyncio.gather(
                *(self.notifier.notify_user(d, "ride_request_cancelled", {"ride_id": ride_id}) for d in session.queue)
            )

    async def cancel_unmatched(self, ride_id: str, reason: str, pending: List[str]) -> Optional[Ride]:
        """
        Cancel a ride nobody took. Loses gracefully to an acceptance or a
        rider cancellation that got there first.
        """
        try:
            ride = await self.store.update_ride(
                ride_id,
                RideGuard(statuses=DISPATCH_ELIGIBLE_STATUSES),
                {
                    "status": RideStatus.CANCELLED,
                    "cancellation_reason": reason,
                    "cancelled_by": Role.SYSTEM,
                    "cancelled_at": self.clock(),
                },
            )
        except (ConflictError, NotFoundError):
            logger.debug("Ride %s was resolved before dispatch gave up", ride_id)
            await self.store.delete_dispatch_record(ride_id)
            return None

        await self.store.delete_dispatch_record(ride_id)
        logger.info("Ride %s cancelled: %s", ride_id, reason)

        payload = {"ride_id": ride_id, "reason": reason, "message": self.policy.no_driver_message}
        await self.notifier.notify_user(ride.rider_id, "ride_cancelled", payload)
        await self.notifier.notify_ride(ride_id, "ride_cancelled", payload)
        await asyncio.gather(*(self.notifier.notify_user(d, "ride_request_expired", {"ride_id": ride_id}) for d in pending))
        return ride

    # ------------------------------------------------------------------
    # restart / introspection
    # ------------------------------------------------------------------
    async def recover(self, now: Optional[datetime] = None) -> RecoveryReport:
        """
        Rebuild sessions from persisted dispatch records after a restart.
        Live ones are re-armed with their remaining time, overdue ones
        expire now, records for rides resolved meanwhile are dropped.
        """
        now = now or self.clock()
        rearmed = expired = dropped = 0

        for record in await self.store.list_dispatch_records():
            if record.ride_id in self.sessions:
                continue

            ride = await self.store.get_ride(record.ride_id)
            if ride is None or ride.status not in DISPATCH_ELIGIBLE_STATUSES:
                await self.store.delete_dispatch_record(record.ride_id)
                dropped += 1
                continue

            session = DispatchSession.from_record(record)
            remaining = session.seconds_left(now)
            if remaining <= 0 or not session.queue:
                await self.cancel_unmatched(record.ride_id, self.policy.expiry_reason(record.mode), session.queue)
                expired += 1
                continue

            self._arm(session, remaining)
            rearmed += 1

        report = RecoveryReport(rearmed=rearmed, expired=expired, dropped=dropped)
        logger.info("Dispatch recovery: %s", report)
        return report

    def active_offers_for(self, driver_id: str, now: Optional[datetime] = None) -> List[Offer]:
        now = now or self.clock()
        return [
            Offer(
                ride_id=session.ride_id,
                mode=session.mode,
                seconds_left=session.seconds_left(now),
                position=session.queue.index(driver_id) + 1,
                queue_size=len(session.queue),
            )
            for session in self.sessions.sessions_for_driver(driver_id)
        ]

    async def shutdown(self) -> None:
        """Cancel every live timer. Persisted records stay for recover()."""
        timers = [s.timer for s in self.sessions if s.timer is not None]
        for session in self.sessions:
            self.sessions.release(session.ride_id)
        await asyncio.gather(*timers, return_exceptions=True)

"""
Purpose: The ride status state machine.
What it does:
Holds the legal status edges and who may drive each of them. Every status
change in the engine is checked here before the guarded write that makes it.

Edges:
searching | requested | scheduled -> assigned | accepted | cancelled
assigned | accepted               -> arrived
assigned | accepted | arrived     -> in_progress
in_progress                       -> completed
any non-terminal                  -> cancelled
"""

from typing import Dict, FrozenSet

from rides.exceptions import AuthorizationError, StateError
from rides.models import DISPATCH_ELIGIBLE_STATUSES, TERMINAL_STATUSES, Actor, Ride, RideStatus, Role

ALLOWED_TRANSITIONS: Dict[RideStatus, FrozenSet[RideStatus]] = {
    RideStatus.SEARCHING: frozenset({RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.CANCELLED}),
    RideStatus.REQUESTED: frozenset({RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.CANCELLED}),
    RideStatus.SCHEDULED: frozenset({RideStatus.ASSIGNED, RideStatus.ACCEPTED, RideStatus.CANCELLED}),
    RideStatus.ASSIGNED: frozenset({RideStatus.ARRIVED, RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.ACCEPTED: frozenset({RideStatus.ARRIVED, RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.ARRIVED: frozenset({RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.IN_PROGRESS: frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

_DRIVER_ONLY_TARGETS = frozenset({RideStatus.ARRIVED, RideStatus.IN_PROGRESS, RideStatus.COMPLETED})
_DISPATCH_TARGETS = frozenset({RideStatus.ASSIGNED, RideStatus.ACCEPTED})


def can_transition(current: RideStatus, target: RideStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def sources_for(target: RideStatus) -> FrozenSet[RideStatus]:
    """
    Every status a ride may be in for `target` to be legal. Used as the
    status guard of the write that performs the transition.
    """
    return frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def authorize(ride: Ride, target: RideStatus, actor: Actor) -> None:
    if actor.role == Role.SYSTEM:
        return

    if target in _DISPATCH_TARGETS:
        # queue membership is the coordinator's call
        if actor.role != Role.DRIVER:
            raise AuthorizationError("Only drivers can accept rides")
        return

    if target in _DRIVER_ONLY_TARGETS:
        if actor.role != Role.DRIVER or actor.user_id != ride.driver_id:
            raise AuthorizationError("Only the assigned driver can update this ride")
        return

    if target == RideStatus.CANCELLED:
        if actor.role == Role.RIDER and actor.user_id == ride.rider_id:
            return
        if actor.role == Role.DRIVER and ride.driver_id and actor.user_id == ride.driver_id:
            return
        raise AuthorizationError("Only the rider or the assigned driver can cancel this ride")

    raise AuthorizationError(f"{actor.role.value} cannot move a ride to {target.value}")


def check_transition(ride: Ride, target: RideStatus, actor: Actor) -> None:
    """
    Raises AuthorizationError if `actor` may not drive this edge,
    StateError if the edge itself is illegal from the ride's current status.
    """
    authorize(ride, target, actor)

    if ride.status in TERMINAL_STATUSES:
        raise StateError(f"Ride is already {ride.status.value}")

    if not can_transition(ride.status, target):
        raise StateError(f"Cannot move ride from {ride.status.value} to {target.value}")


def is_dispatch_eligible(status: RideStatus) -> bool:
    return status in DISPATCH_ELIGIBLE_STATUSES

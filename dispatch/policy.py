"""
Purpose: Central configuration for dispatch.
What it does:

Stores the offer deadlines and the reasons a ride is cancelled with when
dispatch gives up:

TARGETED_TIMEOUT_SECONDS = 60   (one pre-selected driver)
BROADCAST_TIMEOUT_SECONDS = 15  (shared deadline for every candidate)

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass

from rides.models import DispatchMode


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for the dispatch coordinator.
    """

    # --- Deadlines ---
    # Fixed from dispatch start, never extended.
    targeted_timeout_seconds: float = 60
    broadcast_timeout_seconds: float = 15

    # --- Cancellation reasons ---
    no_driver_reason: str = "No driver available"
    declined_reason: str = "Driver declined the ride"
    no_response_reason: str = "Driver did not respond"
    no_driver_message: str = "No driver available, please try again"

    # --- Reconciliation ---
    # A dispatchable ride with no session this long after its deadline is swept.
    reconciliation_grace_seconds: float = 30

    def timeout_for(self, mode: DispatchMode) -> float:
        if mode == DispatchMode.TARGETED:
            return self.targeted_timeout_seconds
        return self.broadcast_timeout_seconds

    def expiry_reason(self, mode: DispatchMode) -> str:
        if mode == DispatchMode.TARGETED:
            return self.no_response_reason
        return self.no_driver_reason

    def exhausted_reason(self, mode: DispatchMode) -> str:
        if mode == DispatchMode.TARGETED:
            return self.declined_reason
        return self.no_driver_reason

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.targeted_timeout_seconds <= 0:
            raise ValueError("targeted_timeout_seconds must be > 0")

        if self.broadcast_timeout_seconds <= 0:
            raise ValueError("broadcast_timeout_seconds must be > 0")

        if self.reconciliation_grace_seconds < 0:
            raise ValueError("reconciliation_grace_seconds must be >= 0")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p

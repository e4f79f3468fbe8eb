"""
Purpose: Central configuration for settlement.
What it does:

Stores the money rules applied after a ride ends:

COMMISSION_RATE = 0.20, COMPLETION_BONUS = 0.50
FREE_CANCELLATION_SECONDS = 120
DRIVER_ASSIGNED_FEE = 5.00, BASE_CANCELLATION_FEE = 2.00
MAX_TIP = 50.00, LOW_BALANCE_THRESHOLD = 10.00

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class SettlementPolicy:
    """
    Central configuration for the settlement engine.
    """

    # --- Completion ---
    commission_rate: float = 0.20
    completion_bonus: float = 0.50

    # --- Cancellation ---
    free_cancellation_seconds: int = 120
    driver_assigned_fee: float = 5.00
    base_cancellation_fee: float = 2.00

    # --- Tips ---
    max_tip: float = 50.00

    # --- Wallet alerts ---
    low_balance_threshold: float = 10.00

    # --- Ratings ---
    min_rating: float = 1.0
    max_rating: float = 5.0
    default_rating: float = 5.0

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if not 0 <= self.commission_rate < 1:
            raise ValueError("commission_rate must be in [0, 1)")

        if self.completion_bonus < 0:
            raise ValueError("completion_bonus must be >= 0")

        if self.free_cancellation_seconds < 0:
            raise ValueError("free_cancellation_seconds must be >= 0")

        if self.driver_assigned_fee < 0 or self.base_cancellation_fee < 0:
            raise ValueError("cancellation fees must be >= 0")

        if self.max_tip <= 0:
            raise ValueError("max_tip must be > 0")

        if self.min_rating >= self.max_rating:
            raise ValueError("min_rating must be < max_rating")


def default_settlement_policy() -> SettlementPolicy:
    """
    Convenience factory for the default policy.
    """
    p = SettlementPolicy()
    p.validate()
    return p

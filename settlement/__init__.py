"""
Settlement package (money and ratings after a ride ends).

Public API:
- SettlementEngine, split_fare
- RatingService, average_rating
- SettlementPolicy, default_settlement_policy
- Wallet, WalletTransaction, PaymentRecord, RideGuard, WalletOperation, SettlementUnit
"""

from .models import (
    INSUFFICIENT_FUNDS_MESSAGE,
    PaymentRecord,
    RideGuard,
    SettlementUnit,
    TransactionType,
    Wallet,
    WalletOperation,
    WalletTransaction,
)
from .policy import SettlementPolicy, default_settlement_policy
from .engine import SettlementEngine, split_fare
from .ratings import RatingService, average_rating

__all__ = [
    "INSUFFICIENT_FUNDS_MESSAGE",
    "PaymentRecord",
    "RideGuard",
    "SettlementUnit",
    "TransactionType",
    "Wallet",
    "WalletOperation",
    "WalletTransaction",
    "SettlementPolicy",
    "default_settlement_policy",
    "SettlementEngine",
    "split_fare",
    "RatingService",
    "average_rating",
]

"""
Purpose: Financial records and the all-or-nothing unit settlement is applied as.
What it does:
- Wallet + WalletTransaction: balance with an append-only transaction log
- PaymentRecord: one per ride, upserted at completion
- RideGuard: the status/field preconditions a ride must still satisfy at write time
- WalletOperation: one signed wallet movement (negative = debit)
- SettlementUnit: ride changes + wallet movements + driver credit + payment record,
  handed to Store.apply() and applied as one unit or not at all

Rule: no store access here. Models only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from rides.models import PaymentMethod, PaymentStatus, RideStatus

INSUFFICIENT_FUNDS_MESSAGE = "Insufficient wallet balance, please top up your wallet"


class TransactionType(str, Enum):
    RIDE = "ride"
    TIP = "tip"
    REFUND = "refund"


@dataclass(frozen=True)
class WalletTransaction:
    type: TransactionType
    amount: float
    ride_id: Optional[str]
    description: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payment_id: Optional[str] = None


@dataclass
class Wallet:
    user_id: str
    balance: float = 0.0
    currency: str = "GBP"
    transactions: List[WalletTransaction] = field(default_factory=list)


@dataclass
class PaymentRecord:
    ride_id: str
    rider_id: str
    driver_id: Optional[str]
    amount: float
    status: PaymentStatus
    method: PaymentMethod
    description: str = ""
    id: str = field(default_factory=lambda: f"pay_{uuid.uuid4().hex[:12]}")


@dataclass(frozen=True)
class RideGuard:
    """
    Preconditions checked against the stored ride at the moment of the write.
    `fields` maps dotted attribute paths (e.g. "rating.driver_score") to the
    value they must still hold.
    """
    statuses: Optional[FrozenSet[RideStatus]] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def status_in(cls, *statuses: RideStatus, **fields: Any) -> RideGuard:
        return cls(statuses=frozenset(statuses), fields=dict(fields))


@dataclass(frozen=True)
class WalletOperation:
    user_id: str
    amount: float  # negative debits, positive credits
    type: TransactionType
    description: str
    ride_id: Optional[str] = None

    @property
    def is_debit(self) -> bool:
        return self.amount < 0


@dataclass
class SettlementUnit:
    ride_id: str
    guard: RideGuard
    ride_changes: Dict[str, Any] = field(default_factory=dict)
    wallet_operations: List[WalletOperation] = field(default_factory=list)
    driver_credit: Optional[float] = None
    driver_id: Optional[str] = None
    payment: Optional[PaymentRecord] = None

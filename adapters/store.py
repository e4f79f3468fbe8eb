"""
Purpose: Persistence boundary.
What it does:
- Store: the async interface the engine reads and writes through
- InMemoryStore: process-local implementation used by tests and the simulation

Rules:
- Every call is a suspension point. Callers never hold records across awaits
  and re-check preconditions with a RideGuard at write time.
- Records handed out are copies; mutating them changes nothing until written back.
- apply() validates the whole SettlementUnit before touching anything, so a
  failed unit leaves rides, wallets, drivers and payments exactly as they were.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

from drivers.models import Driver, DriverLocationPing
from pricing.estimates import FareEstimate
from pricing.fare_engine import round_half_up
from rides.exceptions import AuthorizationError, ConflictError, InsufficientFundsError, NotFoundError
from rides.models import Ride, Rider, RideStatus
from settlement.models import (
    INSUFFICIENT_FUNDS_MESSAGE,
    PaymentRecord,
    RideGuard,
    SettlementUnit,
    Wallet,
    WalletOperation,
    WalletTransaction,
)

if TYPE_CHECKING:
    from dispatch.session import DispatchRecord


PingRow = Tuple[DriverLocationPing, Optional[Driver]]


class Store(ABC):
    # ---------------- rides ----------------
    @abstractmethod
    async def get_ride(self, ride_id: str) -> Optional[Ride]: ...

    @abstractmethod
    async def create_ride(self, ride: Ride) -> Ride: ...

    @abstractmethod
    async def list_rides(
        self,
        *,
        rider_id: Optional[str] = None,
        driver_id: Optional[str] = None,
        statuses: Optional[Iterable[RideStatus]] = None,
    ) -> List[Ride]: ...

    @abstractmethod
    async def apply(self, unit: SettlementUnit) -> Ride:
        """
        Apply ride changes, wallet operations, driver credit and payment record
        as one unit. Raises NotFoundError (no ride), ConflictError (guard no
        longer holds) or InsufficientFundsError (a debit cannot be covered).
        """

    async def update_ride(self, ride_id: str, guard: RideGuard, changes: Dict[str, Any]) -> Ride:
        """Conditional write: `changes` land only if `guard` still holds."""
        return await self.apply(SettlementUnit(ride_id=ride_id, guard=guard, ride_changes=changes))

    # ---------------- drivers / riders ----------------
    @abstractmethod
    async def get_driver(self, driver_id: str) -> Optional[Driver]: ...

    @abstractmethod
    async def save_driver(self, driver: Driver) -> None: ...

    @abstractmethod
    async def update_driver(self, driver_id: str, transition: Callable[[Driver], Driver]) -> Driver:
        """Apply a pure transition to the stored driver atomically."""

    @abstractmethod
    async def get_rider(self, rider_id: str) -> Optional[Rider]: ...

    @abstractmethod
    async def save_rider(self, rider: Rider) -> None: ...

    # ---------------- pings ----------------
    @abstractmethod
    async def record_ping(self, ping: DriverLocationPing) -> None: ...

    @abstractmethod
    async def latest_ping(self, driver_id: str) -> Optional[DriverLocationPing]: ...

    @abstractmethod
    async def recent_pings(self, since: datetime) -> List[PingRow]:
        """Latest ping per driver, newer than `since`, joined with the driver record."""

    # ---------------- estimates ----------------
    @abstractmethod
    async def save_estimate(self, estimate: FareEstimate) -> None: ...

    @abstractmethod
    async def get_estimate(self, estimate_id: str) -> Optional[FareEstimate]: ...

    @abstractmethod
    async def consume_estimate(self, estimate_id: str, rider_id: str, now: datetime) -> FareEstimate:
        """Flip `used` exactly once. Raises NotFoundError, AuthorizationError or ConflictError."""

    # ---------------- wallets / payments ----------------
    @abstractmethod
    async def get_wallet(self, user_id: str) -> Optional[Wallet]: ...

    @abstractmethod
    async def save_wallet(self, wallet: Wallet) -> None: ...

    @abstractmethod
    async def get_payment(self, ride_id: str) -> Optional[PaymentRecord]: ...

    # ---------------- dispatch records ----------------
    @abstractmethod
    async def save_dispatch_record(self, record: "DispatchRecord") -> None: ...

    @abstractmethod
    async def delete_dispatch_record(self, ride_id: str) -> None: ...

    @abstractmethod
    async def list_dispatch_records(self) -> List["DispatchRecord"]: ...


def _get_path(obj: Any, path: str) -> Any:
    for part in path.split("."):
        obj = getattr(obj, part)
    return obj


def _set_path(obj: Any, path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    for part in parents:
        obj = getattr(obj, part)
    setattr(obj, leaf, value)


def guard_holds(ride: Ride, guard: RideGuard) -> bool:
    if guard.statuses is not None and ride.status not in guard.statuses:
        return False
    return all(_get_path(ride, path) == expected for path, expected in guard.fields.items())


class InMemoryStore(Store):
    """
    Dict-backed store. The atomic section of every write runs without an
    await, so under a single event loop it cannot interleave with another.
    """

    def __init__(self):
        self._rides: Dict[str, Ride] = {}
        self._drivers: Dict[str, Driver] = {}
        self._riders: Dict[str, Rider] = {}
        self._pings: Dict[str, DriverLocationPing] = {}
        self._estimates: Dict[str, FareEstimate] = {}
        self._wallets: Dict[str, Wallet] = {}
        self._payments: Dict[str, PaymentRecord] = {}
        self._dispatch_records: Dict[str, Any] = {}

    # ---------------- rides ----------------
    async def get_ride(self, ride_id: str) -> Optional[Ride]:
        await asyncio.sleep(0)
        ride = self._rides.get(ride_id)
        return copy.deepcopy(ride) if ride else None

    async def create_ride(self, ride: Ride) -> Ride:
        await asyncio.sleep(0)
        if ride.id in self._rides:
            raise ConflictError(f"Ride {ride.id} already exists")
        self._rides[ride.id] = copy.deepcopy(ride)
        return copy.deepcopy(ride)

    async def list_rides(self, *, rider_id=None, driver_id=None, statuses=None) -> List[Ride]:
        await asyncio.sleep(0)
        wanted = frozenset(statuses) if statuses is not None else None
        return [
            copy.deepcopy(ride)
            for ride in self._rides.values()
            if (rider_id is None or ride.rider_id == rider_id)
            and (driver_id is None or ride.driver_id == driver_id)
            and (wanted is None or ride.status in wanted)
        ]

    def _stage_wallet_operation(self, staged: Dict[str, Wallet], op: WalletOperation) -> None:
        wallet = staged.get(op.user_id)
        if wallet is None:
            existing = self._wallets.get(op.user_id)
            if existing is not None:
                wallet = copy.deepcopy(existing)
            elif not op.is_debit:
                wallet = Wallet(user_id=op.user_id)
            else:
                raise InsufficientFundsError(INSUFFICIENT_FUNDS_MESSAGE)

        new_balance = round_half_up(wallet.balance + op.amount)
        if new_balance < 0:
            raise InsufficientFundsError(INSUFFICIENT_FUNDS_MESSAGE)

        wallet.balance = new_balance
        wallet.transactions.append(
            WalletTransaction(type=op.type, amount=op.amount, ride_id=op.ride_id, description=op.description)
        )
        staged[op.user_id] = wallet

    async def apply(self, unit: SettlementUnit) -> Ride:
        await asyncio.sleep(0)

        # --- validate and stage (nothing visible changes yet) ---
        current = self._rides.get(unit.ride_id)
        if current is None:
            raise NotFoundError("Ride not found")
        if not guard_holds(current, unit.guard):
            raise ConflictError("Ride was updated by another request")

        staged_wallets: Dict[str, Wallet] = {}
        for op in unit.wallet_operations:
            self._stage_wallet_operation(staged_wallets, op)

        staged_driver: Optional[Driver] = None
        if unit.driver_credit:
            driver = self._drivers.get(unit.driver_id)
            if driver is None:
                raise NotFoundError("Driver not found")
            staged_driver = replace(driver, total_earnings=round_half_up(driver.total_earnings + unit.driver_credit))

        ride = copy.deepcopy(current)
        for path, value in unit.ride_changes.items():
            _set_path(ride, path, copy.deepcopy(value))

        # --- commit ---
        self._rides[ride.id] = ride
        self._wallets.update(staged_wallets)
        if staged_driver is not None:
            self._drivers[staged_driver.id] = staged_driver
        if unit.payment is not None:
            payment = copy.deepcopy(unit.payment)
            existing = self._payments.get(payment.ride_id)
            if existing is not None:
                payment.id = existing.id
            self._payments[payment.ride_id] = payment

        return copy.deepcopy(ride)

    # ---------------- drivers / riders ----------------
    async def get_driver(self, driver_id: str) -> Optional[Driver]:
        await asyncio.sleep(0)
        return self._drivers.get(driver_id)

    async def save_driver(self, driver: Driver) -> None:
        await asyncio.sleep(0)
        self._drivers[driver.id] = driver

    async def update_driver(self, driver_id: str, transition: Callable[[Driver], Driver]) -> Driver:
        await asyncio.sleep(0)
        driver = self._drivers.get(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found")
        updated = transition(driver)
        self._drivers[driver_id] = updated
        return updated

    async def get_rider(self, rider_id: str) -> Optional[Rider]:
        await asyncio.sleep(0)
        rider = self._riders.get(rider_id)
        return copy.deepcopy(rider) if rider else None

    async def save_rider(self, rider: Rider) -> None:
        await asyncio.sleep(0)
        self._riders[rider.id] = copy.deepcopy(rider)

    # ---------------- pings ----------------
    async def record_ping(self, ping: DriverLocationPing) -> None:
        await asyncio.sleep(0)
        latest = self._pings.get(ping.driver_id)
        if latest is None or ping.timestamp >= latest.timestamp:
            self._pings[ping.driver_id] = ping

    async def latest_ping(self, driver_id: str) -> Optional[DriverLocationPing]:
        await asyncio.sleep(0)
        return self._pings.get(driver_id)

    async def recent_pings(self, since: datetime) -> List[PingRow]:
        await asyncio.sleep(0)
        return [
            (ping, self._drivers.get(driver_id))
            for driver_id, ping in self._pings.items()
            if ping.timestamp >= since
        ]

    # ---------------- estimates ----------------
    async def save_estimate(self, estimate: FareEstimate) -> None:
        await asyncio.sleep(0)
        self._estimates[estimate.id] = copy.deepcopy(estimate)

    async def get_estimate(self, estimate_id: str) -> Optional[FareEstimate]:
        await asyncio.sleep(0)
        estimate = self._estimates.get(estimate_id)
        return copy.deepcopy(estimate) if estimate else None

    async def consume_estimate(self, estimate_id: str, rider_id: str, now: datetime) -> FareEstimate:
        await asyncio.sleep(0)
        estimate = self._estimates.get(estimate_id)
        if estimate is None or estimate.is_expired(now):
            raise NotFoundError("Fare estimate not found or expired")
        if estimate.rider_id != rider_id:
            raise AuthorizationError("Fare estimate belongs to another rider")
        if estimate.used:
            raise ConflictError("Fare estimate has already been used")
        estimate.used = True
        return copy.deepcopy(estimate)

    # ---------------- wallets / payments ----------------
    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        await asyncio.sleep(0)
        wallet = self._wallets.get(user_id)
        return copy.deepcopy(wallet) if wallet else None

    async def save_wallet(self, wallet: Wallet) -> None:
        await asyncio.sleep(0)
        self._wallets[wallet.user_id] = copy.deepcopy(wallet)

    async def get_payment(self, ride_id: str) -> Optional[PaymentRecord]:
        await asyncio.sleep(0)
        payment = self._payments.get(ride_id)
        return copy.deepcopy(payment) if payment else None

    # ---------------- dispatch records ----------------
    async def save_dispatch_record(self, record: "DispatchRecord") -> None:
        await asyncio.sleep(0)
        self._dispatch_records[record.ride_id] = copy.deepcopy(record)

    async def delete_dispatch_record(self, ride_id: str) -> None:
        await asyncio.sleep(0)
        self._dispatch_records.pop(ride_id, None)

    async def list_dispatch_records(self) -> List["DispatchRecord"]:
        await asyncio.sleep(0)
        return [copy.deepcopy(record) for record in self._dispatch_records.values()]

"""
Purpose: Post-trip money movement.
What it does:
- complete(): final fare, commission split, completion bonus, payment by method
- cancel(): cancellation fee + refund
- add_tip(): one tip per completed ride, wallet-funded, fully to the driver

Every outcome is built as a SettlementUnit and handed to Store.apply(), so the
ride, the wallet, the driver's earnings and the payment record move together
or not at all.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from adapters.payment_gateway import HttpPaymentGateway
from dispatch.state_machines.driver_state import handle_driver_release
from dispatch.state_machines.ride_state import check_transition
from pricing.fare_engine import compute_fare, round_half_up
from pricing.policy import FarePolicy, default_fare_policy
from rides.exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InsufficientFundsError,
    NotFoundError,
    StateError,
    ValidationError,
)
from rides.models import (
    Actor,
    FareBreakdown,
    PaymentMethod,
    PaymentStatus,
    Ride,
    RideStatus,
    Role,
    utc_now,
)

from .models import (
    INSUFFICIENT_FUNDS_MESSAGE,
    PaymentRecord,
    RideGuard,
    SettlementUnit,
    TransactionType,
    WalletOperation,
)
from .policy import SettlementPolicy, default_settlement_policy

if TYPE_CHECKING:
    from adapters.notifier import Notifier
    from adapters.payment_gateway import PaymentGateway
    from adapters.store import Store

logger = logging.getLogger(__name__)


def split_fare(fare: float, commission_rate: float) -> Tuple[float, float]:
    """
    (driver share, platform commission). The share is whatever the
    commission leaves, so the two always add back to the fare.
    """
    commission = round_half_up(fare * commission_rate)
    return round_half_up(fare - commission), commission


class SettlementEngine:
    def __init__(
        self,
        store: "Store",
        notifier: "Notifier",
        payment_gateway: Optional["PaymentGateway"] = None,
        policy: Optional[SettlementPolicy] = None,
        fare_policy: Optional[FarePolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier
        self._payment_gateway = payment_gateway
        self.policy = policy or default_settlement_policy()
        self.fare_policy = fare_policy or default_fare_policy()
        self.clock = clock

    @property
    def payment_gateway(self) -> "PaymentGateway":
        """The injected gateway, or an HTTP one configured from the environment on first card payment."""
        if self._payment_gateway is None:
            try:
                self._payment_gateway = HttpPaymentGateway()
            except ValueError as error:
                raise ExternalServiceError(str(error)) from error
        return self._payment_gateway

    async def _load(self, ride_id: str) -> Ride:
        ride = await self.store.get_ride(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")
        return ride

    async def _release_driver(self, driver_id: Optional[str]) -> None:
        if not driver_id:
            return
        try:
            await self.store.update_driver(driver_id, handle_driver_release)
        except NotFoundError:
            logger.warning("Driver %s not found while releasing from ride", driver_id)

    async def _alert_low_balance(self, user_id: str) -> None:
        wallet = await self.store.get_wallet(user_id)
        if wallet is not None and wallet.balance < self.policy.low_balance_threshold:
            await self.notifier.notify_user(
                user_id,
                "low_wallet_balance",
                {
                    "balance": wallet.balance,
                    "threshold": self.policy.low_balance_threshold,
                    "message": f"Your wallet balance is low: £{wallet.balance:.2f}",
                },
            )

    # ------------------------------------------------------------------
    # completion
    # ------------------------------------------------------------------
    def final_fare(
        self,
        ride: Ride,
        now: datetime,
        actual_distance_km: Optional[float],
        actual_duration_min: Optional[float],
    ) -> FareBreakdown:
        """
        Re-priced from the actual trip when both distance and duration are
        known, at the surge the rider was quoted. Otherwise the estimate stands.
        """
        if actual_distance_km is not None and actual_duration_min is not None:
            surge = ride.estimated_fare.surge_multiplier if ride.estimated_fare else 1.0
            return compute_fare(
                ride.pickup,
                ride.dropoff,
                ride.vehicle_class,
                actual_duration_min,
                now,
                available_driver_count=0,
                distance_km=actual_distance_km,
                surge_multiplier=surge,
                policy=self.fare_policy,
            )
        if ride.estimated_fare is None:
            raise StateError("Ride has no fare estimate to settle against")
        return ride.estimated_fare

    async def _payment_outcome(self, ride: Ride, fare: float) -> Tuple[PaymentStatus, List[WalletOperation]]:
        if ride.payment_method == PaymentMethod.WALLET:
            wallet = await self.store.get_wallet(ride.rider_id)
            if wallet is None or wallet.balance < fare:
                return PaymentStatus.FAILED, []
            debit = WalletOperation(
                user_id=ride.rider_id,
                amount=-fare,
                type=TransactionType.RIDE,
                description="Ride payment",
                ride_id=ride.id,
            )
            return PaymentStatus.PAID, [debit]

        if ride.payment_method == PaymentMethod.CARD:
            # ExternalServiceError propagates: nothing has been written yet
            paid = await self.payment_gateway.is_charge_paid(ride.id)
            return (PaymentStatus.PAID if paid else PaymentStatus.PENDING), []

        return PaymentStatus.PAID, []

    def _completion_unit(
        self,
        ride: Ride,
        breakdown: FareBreakdown,
        now: datetime,
        payment_status: PaymentStatus,
        wallet_operations: List[WalletOperation],
        actual_distance_km: Optional[float],
        actual_duration_min: Optional[float],
    ) -> SettlementUnit:
        fare = breakdown.total
        driver_share, commission = split_fare(fare, self.policy.commission_rate)
        bonus = self.policy.completion_bonus

        changes = {
            "status": RideStatus.COMPLETED,
            "end_time": now,
            "fare": fare,
            "actual_fare": breakdown,
            "driver_earnings": driver_share,
            "platform_commission": commission,
            "bonuses": bonus,
            "payment_status": payment_status,
            "amount_charged": fare if payment_status == PaymentStatus.PAID else 0.0,
        }
        if actual_distance_km is not None:
            changes["actual_distance_km"] = actual_distance_km
        if actual_duration_min is not None:
            changes["actual_duration_min"] = actual_duration_min

        return SettlementUnit(
            ride_id=ride.id,
            guard=RideGuard.status_in(RideStatus.IN_PROGRESS, driver_id=ride.driver_id),
            ride_changes=changes,
            wallet_operations=wallet_operations,
            driver_credit=round_half_up(driver_share + bonus),
            driver_id=ride.driver_id,
            payment=PaymentRecord(
                ride_id=ride.id,
                rider_id=ride.rider_id,
                driver_id=ride.driver_id,
                amount=fare,
                status=payment_status,
                method=ride.payment_method,
                description="Ride payment",
            ),
        )

    async def complete(
        self,
        ride_id: str,
        actor: Actor,
        actual_distance_km: Optional[float] = None,
        actual_duration_min: Optional[float] = None,
    ) -> Ride:
        ride = await self._load(ride_id)
        check_transition(ride, RideStatus.COMPLETED, actor)

        if actual_distance_km is not None and actual_distance_km < 0:
            raise ValidationError("actual_distance must be >= 0")
        if actual_duration_min is not None and actual_duration_min < 0:
            raise ValidationError("actual_duration must be >= 0")

        now = self.clock()
        breakdown = self.final_fare(ride, now, actual_distance_km, actual_duration_min)
        payment_status, wallet_ops = await self._payment_outcome(ride, breakdown.total)

        unit = self._completion_unit(
            ride, breakdown, now, payment_status, wallet_ops, actual_distance_km, actual_duration_min
        )
        try:
            completed = await self.store.apply(unit)
        except InsufficientFundsError:
            # balance moved between the read and the write
            logger.info("Wallet for rider %s can no longer cover ride %s", ride.rider_id, ride_id)
            payment_status = PaymentStatus.FAILED
            unit = self._completion_unit(
                ride, breakdown, now, payment_status, [], actual_distance_km, actual_duration_min
            )
            completed = await self.store.apply(unit)

        await self._release_driver(completed.driver_id)

        logger.info(
            "Ride %s completed: fare=%.2f driver=%.2f commission=%.2f payment=%s",
            ride_id,
            completed.fare,
            completed.driver_earnings,
            completed.platform_commission,
            payment_status.value,
        )

        payload = {"ride_id": ride_id, "fare": completed.fare, "payment_status": payment_status.value}
        await self.notifier.notify_user(completed.rider_id, "ride_completed", payload)
        await self.notifier.notify_user(
            completed.driver_id,
            "earnings_update",
            {"ride_id": ride_id, "earnings": completed.driver_earnings, "bonus": completed.bonuses},
        )
        await self.notifier.notify_ride(ride_id, "ride_completed", payload)

        if payment_status == PaymentStatus.FAILED:
            await self.notifier.notify_user(
                completed.rider_id,
                "payment_failed",
                {"ride_id": ride_id, "amount_due": completed.fare, "message": INSUFFICIENT_FUNDS_MESSAGE},
            )
        elif wallet_ops:
            await self._alert_low_balance(completed.rider_id)

        return completed

    # ------------------------------------------------------------------
    # cancellation
    # ------------------------------------------------------------------
    def cancellation_fee(self, ride: Ride, actor: Actor, now: datetime) -> float:
        """
        Free within the grace window after booking. After that the rider
        pays more once a driver is on the way. Drivers and the system never
        charge the rider for cancelling.
        """
        if actor.role != Role.RIDER:
            return 0.0
        if (now - ride.created_at).total_seconds() <= self.policy.free_cancellation_seconds:
            return 0.0
        if ride.driver_id:
            return self.policy.driver_assigned_fee
        return self.policy.base_cancellation_fee

    async def cancel(self, ride_id: str, actor: Actor, reason: Optional[str] = None) -> Ride:
        ride = await self._load(ride_id)
        check_transition(ride, RideStatus.CANCELLED, actor)

        now = self.clock()
        fee = self.cancellation_fee(ride, actor, now)
        refund = max(0.0, round_half_up(ride.amount_charged - fee))

        wallet_ops = []
        if refund > 0 and ride.payment_method == PaymentMethod.WALLET:
            wallet_ops.append(
                WalletOperation(
                    user_id=ride.rider_id,
                    amount=refund,
                    type=TransactionType.REFUND,
                    description="Ride cancellation refund",
                    ride_id=ride.id,
                )
            )

        changes = {
            "status": RideStatus.CANCELLED,
            "cancelled_at": now,
            "cancellation_reason": reason or f"Cancelled by {actor.role.value}",
            "cancelled_by": actor.role,
            "cancellation_fee": fee,
            "refund_amount": refund,
        }
        if refund > 0:
            changes["payment_status"] = PaymentStatus.REFUNDED

        unit = SettlementUnit(
            ride_id=ride.id,
            # the fee was priced for this exact status and driver
            guard=RideGuard.status_in(ride.status, driver_id=ride.driver_id),
            ride_changes=changes,
            wallet_operations=wallet_ops,
        )
        try:
            cancelled = await self.store.apply(unit)
        except ConflictError:
            raise ConflictError("Ride changed while cancelling, please retry") from None

        await self._release_driver(cancelled.driver_id)

        logger.info("Ride %s cancelled by %s: fee=%.2f refund=%.2f", ride_id, actor.role.value, fee, refund)

        message = f"Ride cancelled. Cancellation fee: £{fee:.2f}" if fee > 0 else "Ride cancelled successfully (no fees)"
        payload = {
            "ride_id": ride_id,
            "reason": cancelled.cancellation_reason,
            "cancellation_fee": fee,
            "refund_amount": refund,
            "message": message,
        }
        await self.notifier.notify_user(cancelled.rider_id, "ride_cancelled", payload)
        if cancelled.driver_id:
            await self.notifier.notify_user(cancelled.driver_id, "ride_cancelled", payload)
        await self.notifier.notify_ride(ride_id, "ride_cancelled", payload)
        return cancelled

    # ------------------------------------------------------------------
    # tips
    # ------------------------------------------------------------------
    async def add_tip(self, ride_id: str, actor: Actor, amount: float) -> Ride:
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
            raise ValidationError("Tip amount must be greater than 0")
        # bounds apply to the amount in pence
        amount = round_half_up(amount)
        if amount <= 0:
            raise ValidationError("Tip amount must be greater than 0")
        if amount > self.policy.max_tip:
            raise ValidationError(f"Tip amount cannot exceed £{self.policy.max_tip:.0f}")

        ride = await self._load(ride_id)
        if actor.role != Role.RIDER or actor.user_id != ride.rider_id:
            raise AuthorizationError("You can only add tips to your own rides")
        if ride.status != RideStatus.COMPLETED:
            raise StateError("Tips can only be added to completed rides")
        if ride.tips > 0:
            raise ConflictError("Tip has already been added to this ride")

        unit = SettlementUnit(
            ride_id=ride.id,
            # tips == 0 at write time is what makes a second submission lose
            guard=RideGuard.status_in(RideStatus.COMPLETED, tips=0.0),
            ride_changes={
                "tips": amount,
                "driver_earnings": round_half_up(ride.driver_earnings + amount),
            },
            wallet_operations=[
                WalletOperation(
                    user_id=ride.rider_id,
                    amount=-amount,
                    type=TransactionType.TIP,
                    description=f"Tip for ride {ride.id}",
                    ride_id=ride.id,
                )
            ],
            driver_credit=amount,
            driver_id=ride.driver_id,
        )
        try:
            tipped = await self.store.apply(unit)
        except ConflictError:
            raise ConflictError("Tip has already been added to this ride") from None

        logger.info("Tip of %.2f added to ride %s", amount, ride_id)

        await self.notifier.notify_user(
            tipped.driver_id,
            "tip_received",
            {"ride_id": ride_id, "tip_amount": amount, "message": f"You received a £{amount:.2f} tip!"},
        )
        await self._alert_low_balance(tipped.rider_id)
        return tipped

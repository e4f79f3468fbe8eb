import asyncio
from datetime import timedelta

import pytest

from pricing.estimates import PersistedQuote
from rides.exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InsufficientFundsError,
    StateError,
    ValidationError,
)
from rides.models import Actor, PaymentMethod, PaymentStatus, Ride, RideStatus, Role, VehicleClass
from settlement.engine import split_fare

from conftest import DROPOFF, OFF_PEAK, PICKUP, add_driver, fund_wallet


async def ride_in_progress(service, store, payment_method="cash"):
    """Book, accept, arrive and start a sedan ride driven by d1. Two drivers around, so no surge."""
    await add_driver(store, "d1")
    await add_driver(store, "d2")

    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id), payment_method=payment_method)
    await service.accept_ride(ride.id, "d1")
    await service.mark_arrived(ride.id, "d1")
    return await service.start_ride(ride.id, "d1")


@pytest.mark.parametrize("fare", [8.0, 11.03, 24.6, 0.01, 99.99])
def test_split_adds_back_to_fare(fare):
    share, commission = split_fare(fare, 0.20)

    assert round(share + commission, 2) == fare


@pytest.mark.asyncio
async def test_cash_completion_splits_fare_and_pays_bonus(service, store, notifier):
    ride = await ride_in_progress(service, store)
    fare = ride.estimated_fare.total

    completed = await service.complete_ride(ride.id, "d1")

    assert completed.status == RideStatus.COMPLETED
    assert completed.fare == fare
    assert completed.end_time is not None
    assert completed.payment_status == PaymentStatus.PAID
    assert round(completed.driver_earnings + completed.platform_commission, 2) == fare
    assert completed.bonuses == 0.5

    driver = await store.get_driver("d1")
    assert driver.status.value == "online"
    assert driver.total_earnings == round(completed.driver_earnings + 0.5, 2)

    payment = await store.get_payment(ride.id)
    assert payment.amount == fare
    assert payment.status == PaymentStatus.PAID

    assert "ride_completed" in notifier.events_for("rider_1")
    assert "earnings_update" in notifier.events_for("d1")


@pytest.mark.asyncio
async def test_fare_is_zero_until_completion(service, store):
    ride = await ride_in_progress(service, store)

    assert ride.fare == 0.0
    assert ride.estimated_fare.total > 0


@pytest.mark.asyncio
async def test_actual_trip_reprices_the_fare(service, store):
    """
    10 miles and 10 minutes in a sedan: 3.00 + 15.00 + 2.50 = 20.50, plus 20% tax.
    """
    ride = await ride_in_progress(service, store)

    completed = await service.complete_ride(ride.id, "d1", actual_distance_km=16.09344, actual_duration_min=10)

    assert completed.fare == 24.6
    assert completed.actual_distance_km == 16.09344
    assert completed.actual_duration_min == 10


@pytest.mark.asyncio
async def test_wallet_payment_debits_rider(service, store, notifier):
    await fund_wallet(store, "rider_1", 50.0)
    ride = await ride_in_progress(service, store, payment_method="wallet")
    fare = ride.estimated_fare.total

    completed = await service.complete_ride(ride.id, "d1")

    wallet = await store.get_wallet("rider_1")
    assert completed.payment_status == PaymentStatus.PAID
    assert completed.amount_charged == fare
    assert wallet.balance == round(50.0 - fare, 2)
    assert wallet.transactions[-1].amount == -fare
    assert "low_wallet_balance" not in notifier.events_for("rider_1")


@pytest.mark.asyncio
async def test_wallet_low_balance_alert(service, store, notifier):
    ride = await ride_in_progress(service, store, payment_method="wallet")
    await fund_wallet(store, "rider_1", ride.estimated_fare.total + 5)

    await service.complete_ride(ride.id, "d1")

    assert "low_wallet_balance" in notifier.events_for("rider_1")


@pytest.mark.asyncio
async def test_insufficient_wallet_marks_payment_failed(service, store, notifier):
    """
    The ride still completes and the driver is still credited; the rider's
    wallet is left untouched and they are asked to top up.
    """
    await fund_wallet(store, "rider_1", 1.0)
    ride = await ride_in_progress(service, store, payment_method="wallet")

    completed = await service.complete_ride(ride.id, "d1")

    assert completed.status == RideStatus.COMPLETED
    assert completed.payment_status == PaymentStatus.FAILED
    assert completed.amount_charged == 0.0
    assert (await store.get_wallet("rider_1")).balance == 1.0
    assert (await store.get_payment(ride.id)).status == PaymentStatus.FAILED
    assert "payment_failed" in notifier.events_for("rider_1")


@pytest.mark.asyncio
async def test_card_payment_follows_gateway(service, store, gateway):
    paid = await ride_in_progress(service, store, payment_method="card")
    gateway.mark_paid(paid.id)

    completed = await service.complete_ride(paid.id, "d1")
    assert completed.payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_card_payment_pending_until_charged(service, store):
    ride = await ride_in_progress(service, store, payment_method="card")

    completed = await service.complete_ride(ride.id, "d1")

    assert completed.payment_status == PaymentStatus.PENDING
    assert completed.amount_charged == 0.0


@pytest.mark.asyncio
async def test_gateway_outage_leaves_ride_untouched(service, store, gateway):
    ride = await ride_in_progress(service, store, payment_method="card")
    gateway.available = False

    with pytest.raises(ExternalServiceError):
        await service.complete_ride(ride.id, "d1")

    stored = await store.get_ride(ride.id)
    assert stored.status == RideStatus.IN_PROGRESS
    assert (await store.get_driver("d1")).total_earnings == 0.0


@pytest.mark.asyncio
async def test_only_assigned_driver_completes(service, store):
    ride = await ride_in_progress(service, store)

    with pytest.raises(AuthorizationError):
        await service.complete_ride(ride.id, "d2")

    with pytest.raises(ValidationError):
        await service.complete_ride(ride.id, "d1", actual_distance_km=-1, actual_duration_min=5)


@pytest.mark.asyncio
async def test_completed_ride_cannot_complete_or_cancel_again(service, store):
    ride = await ride_in_progress(service, store)
    await service.complete_ride(ride.id, "d1")

    with pytest.raises(StateError):
        await service.complete_ride(ride.id, "d1")

    with pytest.raises(StateError):
        await service.cancel_ride(ride.id, Actor.rider("rider_1"))


# ---------------------------------------------------------------------------
# cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_within_free_window(service, store, clock):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, "d1")

    clock.advance(120)
    cancelled = await service.cancel_ride(ride.id, Actor.rider("rider_1"))

    assert cancelled.status == RideStatus.CANCELLED
    assert cancelled.cancellation_fee == 0.0
    assert cancelled.refund_amount == 0.0
    assert cancelled.cancelled_by == Role.RIDER
    assert cancelled.cancellation_reason == "Cancelled by rider"
    assert (await store.get_driver("d1")).status.value == "online"


@pytest.mark.asyncio
async def test_late_cancel_with_driver_assigned(service, store, clock, notifier):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, "d1")

    clock.advance(121)
    cancelled = await service.cancel_ride(ride.id, Actor.rider("rider_1"), "Changed my mind")

    assert cancelled.cancellation_fee == 5.0
    assert cancelled.cancellation_reason == "Changed my mind"
    assert "ride_cancelled" in notifier.events_for("d1")


@pytest.mark.asyncio
async def test_late_cancel_while_searching(service, store, clock, notifier):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))

    clock.advance(121)
    cancelled = await service.cancel_ride(ride.id, Actor.rider("rider_1"))

    assert cancelled.cancellation_fee == 2.0
    assert ride.id not in service.dispatcher.sessions
    assert "ride_request_cancelled" in notifier.events_for("d1")


@pytest.mark.asyncio
async def test_driver_cancellation_is_free_for_rider(service, store, clock):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, "d1")

    clock.advance(600)
    cancelled = await service.cancel_ride(ride.id, Actor.driver("d1"), "Vehicle problem")

    assert cancelled.cancellation_fee == 0.0
    assert cancelled.cancelled_by == Role.DRIVER


@pytest.mark.asyncio
async def test_wallet_refund_is_charge_minus_fee(service, store, clock):
    await add_driver(store, "d1", status="busy")
    await fund_wallet(store, "rider_1", 0.0)
    await store.create_ride(
        Ride(
            id="ride_prepaid",
            rider_id="rider_1",
            pickup=PICKUP,
            dropoff=DROPOFF,
            vehicle_class=VehicleClass.SEDAN,
            status=RideStatus.ACCEPTED,
            payment_method=PaymentMethod.WALLET,
            driver_id="d1",
            amount_charged=12.0,
            payment_status=PaymentStatus.PAID,
            created_at=OFF_PEAK - timedelta(minutes=10),
        )
    )

    cancelled = await service.cancel_ride("ride_prepaid", Actor.rider("rider_1"))

    assert cancelled.cancellation_fee == 5.0
    assert cancelled.refund_amount == 7.0
    assert cancelled.payment_status == PaymentStatus.REFUNDED
    assert (await store.get_wallet("rider_1")).balance == 7.0
    assert (await store.get_driver("d1")).status.value == "online"


@pytest.mark.asyncio
async def test_stranger_cannot_cancel(service, store):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))

    with pytest.raises(AuthorizationError):
        await service.cancel_ride(ride.id, Actor.rider("rider_2"))

    await service.shutdown()


# ---------------------------------------------------------------------------
# tips
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_tip_goes_fully_to_driver(service, store, notifier):
    await fund_wallet(store, "rider_1", 20.0)
    ride = await ride_in_progress(service, store)
    completed = await service.complete_ride(ride.id, "d1")
    earnings_before = (await store.get_driver("d1")).total_earnings

    tipped = await service.add_tip(ride.id, "rider_1", 5)

    assert tipped.tips == 5.0
    assert tipped.driver_earnings == round(completed.driver_earnings + 5, 2)
    assert (await store.get_driver("d1")).total_earnings == round(earnings_before + 5, 2)
    assert (await store.get_wallet("rider_1")).balance == 15.0
    assert "tip_received" in notifier.events_for("d1")


@pytest.mark.asyncio
async def test_double_tip_debits_once(service, store):
    await fund_wallet(store, "rider_1", 20.0)
    ride = await ride_in_progress(service, store)
    await service.complete_ride(ride.id, "d1")

    results = await asyncio.gather(
        service.add_tip(ride.id, "rider_1", 5),
        service.add_tip(ride.id, "rider_1", 5),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Ride) for r in results) == 1
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert (await store.get_wallet("rider_1")).balance == 15.0

    with pytest.raises(ConflictError):
        await service.add_tip(ride.id, "rider_1", 3)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, 0.001, 0.004, 50.01, True, "5", float("inf"), float("nan")])
async def test_tip_amount_validation(service, store, amount):
    with pytest.raises(ValidationError):
        await service.add_tip("ride_any", "rider_1", amount)


@pytest.mark.asyncio
async def test_tip_rules(service, store):
    await fund_wallet(store, "rider_1", 2.0)
    ride = await ride_in_progress(service, store)

    with pytest.raises(StateError):
        await service.add_tip(ride.id, "rider_1", 1)

    await service.complete_ride(ride.id, "d1")

    with pytest.raises(AuthorizationError):
        await service.add_tip(ride.id, "rider_2", 1)

    with pytest.raises(InsufficientFundsError):
        await service.add_tip(ride.id, "rider_1", 10)

    ride = await store.get_ride(ride.id)
    assert ride.tips == 0.0

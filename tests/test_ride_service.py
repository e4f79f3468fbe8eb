from datetime import datetime, timedelta

import pytest

from pricing.estimates import EphemeralQuote, PersistedQuote
from rides.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from rides.models import Actor, Location, PaymentMethod, RideStatus
from rides.results import capture

from conftest import DROPOFF, PICKUP, add_driver


@pytest.mark.asyncio
async def test_quote_is_not_stored(service, store):
    await add_driver(store, "d1")
    await add_driver(store, "d2")

    quote = await service.quote(PICKUP, DROPOFF, "SUV", 20)

    assert quote.breakdown.total >= 10.0
    assert quote.vehicle_class.value == "SUV"
    assert store._estimates == {}


@pytest.mark.asyncio
async def test_fare_estimate_reports_availability(service, store, clock):
    await add_driver(store, "d1")
    await add_driver(store, "d2", lat=51.3225, lng=-0.55)

    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan")

    assert estimate.id.startswith("est_")
    assert estimate.rider_id == "rider_1"
    assert estimate.availability.count == 2
    assert estimate.availability.message == "2 drivers available"
    assert estimate.expires_at == clock() + timedelta(minutes=10)
    assert estimate.quote.breakdown.duration_minutes == 15.0
    assert estimate.quote.breakdown.surge_multiplier == 1.0


@pytest.mark.asyncio
async def test_estimate_with_no_drivers_surges_and_defaults_eta(service):
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "electric", 10)

    assert estimate.availability.count == 0
    assert estimate.availability.estimated_pickup_minutes == 15
    assert estimate.availability.message == "No drivers available right now"
    assert estimate.quote.breakdown.surge_multiplier == 1.2


@pytest.mark.asyncio
async def test_invalid_inputs(service):
    with pytest.raises(ValidationError):
        await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "limo")

    quote = await service.quote(PICKUP, DROPOFF, "sedan")
    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", EphemeralQuote(quote), payment_method="bitcoin")


@pytest.mark.asyncio
async def test_estimate_is_single_use(service, store):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan")

    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id), payment_method="card")

    assert ride.estimated_fare == estimate.quote.breakdown
    assert ride.payment_method == PaymentMethod.CARD
    assert ride.fare == 0.0

    with pytest.raises(ConflictError):
        await service.book_ride("rider_1", PersistedQuote(estimate.id))

    await service.shutdown()


@pytest.mark.asyncio
async def test_estimate_belongs_to_its_rider(service):
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan")

    with pytest.raises(AuthorizationError):
        await service.book_ride("rider_2", PersistedQuote(estimate.id))

    # the failed attempt did not burn the estimate
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    assert ride.rider_id == "rider_1"


@pytest.mark.asyncio
async def test_expired_or_unknown_estimate(service, clock):
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan")
    clock.advance(600)

    with pytest.raises(NotFoundError):
        await service.book_ride("rider_1", PersistedQuote(estimate.id))

    with pytest.raises(NotFoundError):
        await service.book_ride("rider_1", PersistedQuote("est_missing"))


@pytest.mark.asyncio
async def test_ephemeral_quote_booking(service, store):
    await add_driver(store, "d1")
    quote = await service.quote(PICKUP, DROPOFF, "sedan", 12)

    ride = await service.book_ride("rider_1", EphemeralQuote(quote), special_instructions="Gate B")

    assert ride.status == RideStatus.SEARCHING
    assert ride.estimated_fare == quote.breakdown
    assert ride.special_instructions == "Gate B"

    await service.shutdown()


@pytest.mark.asyncio
async def test_schedule_validation(service, store, clock):
    quote = await service.quote(PICKUP, DROPOFF, "sedan")
    source = EphemeralQuote(quote)
    await add_driver(store, "d1")

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, scheduled_time=clock() - timedelta(minutes=1))

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, scheduled_time=clock() + timedelta(days=8))

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, scheduled_time=datetime(2024, 1, 10, 9, 0))

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, scheduled_time=clock() + timedelta(hours=2), driver_id="d1")

    ride = await service.book_ride("rider_1", source, scheduled_time=clock() + timedelta(days=7))
    assert ride.status == RideStatus.SCHEDULED
    assert ride.dispatch_mode is None


@pytest.mark.asyncio
async def test_targeted_booking_needs_existing_driver(service):
    quote = await service.quote(PICKUP, DROPOFF, "sedan")

    with pytest.raises(NotFoundError):
        await service.book_ride("rider_1", EphemeralQuote(quote), driver_id="ghost")


@pytest.mark.asyncio
async def test_targeted_booking_needs_eligible_driver(service, store):
    """
    The pre-selected driver must be online, approved and drive the booked
    class. A refused booking leaves the estimate usable.
    """
    await add_driver(store, "off", vehicle_class="SUV", status="offline", approval="pending")
    await add_driver(store, "pending", approval="pending")
    await add_driver(store, "suv", vehicle_class="SUV")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    source = PersistedQuote(estimate.id)

    with pytest.raises(ConflictError):
        await service.book_ride("rider_1", source, driver_id="off")

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, driver_id="pending")

    with pytest.raises(ValidationError):
        await service.book_ride("rider_1", source, driver_id="suv")

    assert await store.list_rides(rider_id="rider_1") == []
    assert not (await store.get_estimate(estimate.id)).used


@pytest.mark.asyncio
async def test_full_trip_lifecycle(service, store, clock, notifier):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))

    ride = await service.accept_ride(ride.id, "d1")
    assert ride.status == RideStatus.ACCEPTED

    with pytest.raises(AuthorizationError):
        await service.mark_arrived(ride.id, "d2")

    clock.advance(240)
    ride = await service.mark_arrived(ride.id, "d1")
    assert ride.status == RideStatus.ARRIVED
    assert ride.arrived_at == clock()

    clock.advance(60)
    ride = await service.start_ride(ride.id, "d1")
    assert ride.status == RideStatus.IN_PROGRESS
    assert ride.start_time == clock()

    clock.advance(900)
    ride = await service.complete_ride(ride.id, "d1")
    assert ride.status == RideStatus.COMPLETED

    assert notifier.events_for("rider_1") == [
        "ride_booked",
        "ride_accepted",
        "driver_arrived",
        "ride_started",
        "ride_completed",
    ]


@pytest.mark.asyncio
async def test_arrival_after_start_is_refused(service, store):
    await add_driver(store, "d1")
    quote = await service.quote(PICKUP, DROPOFF, "sedan")
    ride = await service.book_ride("rider_1", EphemeralQuote(quote))
    await service.accept_ride(ride.id, "d1")
    await service.start_ride(ride.id, "d1")

    result = await capture(service.mark_arrived(ride.id, "d1"))

    assert not result.success
    assert result.error_code == "invalid_state"


@pytest.mark.asyncio
async def test_ride_status_view(service, store, clock):
    await add_driver(store, "d1", lat=51.3225, lng=-0.55, speed=30)
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, "d1")

    view = await service.ride_status(ride.id, Actor.rider("rider_1"))

    assert view.target == "pickup"
    assert view.driver_location == (51.3225, -0.55)
    assert view.distance_to_target_km == 2.5
    assert view.eta_minutes == 5
    assert view.route.polyline
    assert view.live_fare is None

    await service.start_ride(ride.id, "d1")
    clock.advance(600)
    view = await service.ride_status(ride.id, Actor.driver("d1"))

    assert view.target == "dropoff"
    assert view.live_fare.duration_minutes == 10.0

    with pytest.raises(AuthorizationError):
        await service.ride_status(ride.id, Actor.rider("rider_2"))

    with pytest.raises(NotFoundError):
        await service.ride_status("ride_missing", Actor.system())


@pytest.mark.asyncio
async def test_record_ping(service, store, clock):
    await add_driver(store, "d1")

    ping = await service.record_ping("d1", 51.31, -0.56, heading=90, speed=42)

    assert ping.timestamp == clock()
    assert (await store.latest_ping("d1")) == ping

    with pytest.raises(ValidationError):
        await service.record_ping("d1", 95.0, -0.56)

    with pytest.raises(ValidationError):
        await service.record_ping("d1", 51.31, -0.56, speed=-5)

    with pytest.raises(NotFoundError):
        await service.record_ping("ghost", 51.31, -0.56)


@pytest.mark.asyncio
async def test_capture_wraps_results(service, store):
    await add_driver(store, "d1")
    quote = await service.quote(PICKUP, DROPOFF, "sedan")

    booked = await capture(service.book_ride("rider_1", EphemeralQuote(quote)), "Ride booked")
    assert booked.success
    assert booked.ride.status == RideStatus.SEARCHING
    assert booked.message == "Ride booked"

    accepted = await capture(service.accept_ride(booked.ride.id, "d1"))
    lost = await capture(service.accept_ride(booked.ride.id, "d1"))

    assert accepted.success
    assert not lost.success
    assert lost.error_code == "conflict"

    offers = await capture(_offers(service, "d1"))
    assert offers.success
    assert offers.extra == {"value": []}


async def _offers(service, driver_id):
    return service.active_offers(driver_id)


def test_location_rejects_out_of_range():
    with pytest.raises(ValidationError):
        Location(0.0, 181.0)

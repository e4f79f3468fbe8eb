import pytest

from pricing.estimates import PersistedQuote
from rides.exceptions import AuthorizationError, ConflictError, StateError, ValidationError
from settlement.ratings import average_rating

from conftest import DROPOFF, PICKUP, add_driver


async def completed_ride(service, store, rider_id="rider_1", driver_id="d1"):
    if await store.get_driver(driver_id) is None:
        await add_driver(store, driver_id)
    estimate = await service.get_fare_estimate(rider_id, PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride(rider_id, PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, driver_id)
    await service.start_ride(ride.id, driver_id)
    return await service.complete_ride(ride.id, driver_id)


def test_average_rating():
    assert average_rating([]) == 5.0
    assert average_rating([4, 5]) == 4.5
    assert average_rating([5, 4, 4]) == 4.3


@pytest.mark.asyncio
async def test_rider_rates_driver_once(service, store, notifier):
    ride = await completed_ride(service, store)

    rated = await service.rate_driver(ride.id, "rider_1", 4, "Smooth drive")

    assert rated.rating.driver_score == 4.0
    assert rated.rating.driver_comment == "Smooth drive"
    assert (await store.get_driver("d1")).rating == 4.0
    assert "rating_received" in notifier.events_for("d1")

    with pytest.raises(ConflictError):
        await service.rate_driver(ride.id, "rider_1", 5)


@pytest.mark.asyncio
async def test_driver_average_covers_all_completed_rides(service, store):
    first = await completed_ride(service, store)
    # the driver is back online after completing, so can be matched again
    second = await completed_ride(service, store)

    await service.rate_driver(first.id, "rider_1", 5)
    await service.rate_driver(second.id, "rider_1", 4)

    assert (await store.get_driver("d1")).rating == 4.5


@pytest.mark.asyncio
async def test_driver_rates_rider(service, store):
    ride = await completed_ride(service, store)

    await service.rate_rider(ride.id, "d1", 3)

    rider = await store.get_rider("rider_1")
    assert rider.rating == 3.0

    with pytest.raises(ConflictError):
        await service.rate_rider(ride.id, "d1", 4)


@pytest.mark.asyncio
async def test_rating_rules(service, store):
    ride = await completed_ride(service, store)

    with pytest.raises(ValidationError):
        await service.rate_driver(ride.id, "rider_1", 6)

    with pytest.raises(ValidationError):
        await service.rate_driver(ride.id, "rider_1", 0)

    with pytest.raises(AuthorizationError):
        await service.rate_driver(ride.id, "rider_2", 5)

    with pytest.raises(AuthorizationError):
        await service.rate_rider(ride.id, "d2", 5)


@pytest.mark.asyncio
async def test_only_completed_rides_can_be_rated(service, store):
    await add_driver(store, "d1")
    estimate = await service.get_fare_estimate("rider_1", PICKUP, DROPOFF, "sedan", 15)
    ride = await service.book_ride("rider_1", PersistedQuote(estimate.id))
    await service.accept_ride(ride.id, "d1")

    with pytest.raises(StateError):
        await service.rate_driver(ride.id, "rider_1", 5)

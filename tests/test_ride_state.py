import pytest

from dispatch.state_machines import (
    DriverStateException,
    can_transition,
    check_transition,
    handle_driver_acceptance,
    handle_driver_release,
    sources_for,
)
from drivers.models import Driver, DriverStatus
from rides.exceptions import AuthorizationError, StateError
from rides.models import Actor, Ride, RideStatus, VehicleClass

from conftest import DROPOFF, PICKUP


def make_ride(status, driver_id=None):
    return Ride(
        id="ride_1",
        rider_id="rider_1",
        pickup=PICKUP,
        dropoff=DROPOFF,
        vehicle_class=VehicleClass.SEDAN,
        status=status,
        driver_id=driver_id,
    )


@pytest.mark.parametrize(
    "current, target",
    [
        (RideStatus.SEARCHING, RideStatus.ACCEPTED),
        (RideStatus.SCHEDULED, RideStatus.ASSIGNED),
        (RideStatus.ACCEPTED, RideStatus.ARRIVED),
        (RideStatus.ACCEPTED, RideStatus.IN_PROGRESS),
        (RideStatus.ARRIVED, RideStatus.IN_PROGRESS),
        (RideStatus.IN_PROGRESS, RideStatus.COMPLETED),
        (RideStatus.IN_PROGRESS, RideStatus.CANCELLED),
    ],
)
def test_legal_edges(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current, target",
    [
        (RideStatus.SEARCHING, RideStatus.COMPLETED),
        (RideStatus.SEARCHING, RideStatus.IN_PROGRESS),
        (RideStatus.ARRIVED, RideStatus.ACCEPTED),
        (RideStatus.COMPLETED, RideStatus.CANCELLED),
        (RideStatus.CANCELLED, RideStatus.SEARCHING),
    ],
)
def test_illegal_edges(current, target):
    assert not can_transition(current, target)


def test_terminal_statuses_have_no_way_out():
    for target in RideStatus:
        assert not can_transition(RideStatus.COMPLETED, target)
        assert not can_transition(RideStatus.CANCELLED, target)


def test_sources_for_is_the_inverse_of_the_edge_table():
    assert sources_for(RideStatus.COMPLETED) == {RideStatus.IN_PROGRESS}
    assert sources_for(RideStatus.ARRIVED) == {RideStatus.ASSIGNED, RideStatus.ACCEPTED}
    assert RideStatus.COMPLETED not in sources_for(RideStatus.CANCELLED)
    assert RideStatus.IN_PROGRESS in sources_for(RideStatus.CANCELLED)


def test_only_the_assigned_driver_moves_the_trip_along():
    ride = make_ride(RideStatus.ACCEPTED, driver_id="driver_1")

    check_transition(ride, RideStatus.ARRIVED, Actor.driver("driver_1"))

    with pytest.raises(AuthorizationError):
        check_transition(ride, RideStatus.ARRIVED, Actor.driver("driver_2"))

    with pytest.raises(AuthorizationError):
        check_transition(ride, RideStatus.ARRIVED, Actor.rider("rider_1"))


def test_riders_cannot_accept():
    with pytest.raises(AuthorizationError):
        check_transition(make_ride(RideStatus.SEARCHING), RideStatus.ACCEPTED, Actor.rider("rider_1"))


def test_cancel_permissions():
    """
    The ride's rider can always cancel; a driver only once assigned to the ride.
    """
    searching = make_ride(RideStatus.SEARCHING)
    accepted = make_ride(RideStatus.ACCEPTED, driver_id="driver_1")

    check_transition(searching, RideStatus.CANCELLED, Actor.rider("rider_1"))
    check_transition(accepted, RideStatus.CANCELLED, Actor.driver("driver_1"))
    check_transition(searching, RideStatus.CANCELLED, Actor.system())

    with pytest.raises(AuthorizationError):
        check_transition(searching, RideStatus.CANCELLED, Actor.driver("driver_1"))

    with pytest.raises(AuthorizationError):
        check_transition(accepted, RideStatus.CANCELLED, Actor.rider("someone_else"))


def test_authorization_is_checked_before_state():
    completed = make_ride(RideStatus.COMPLETED, driver_id="driver_1")

    with pytest.raises(AuthorizationError):
        check_transition(completed, RideStatus.CANCELLED, Actor.rider("someone_else"))

    with pytest.raises(StateError):
        check_transition(completed, RideStatus.CANCELLED, Actor.rider("rider_1"))


def test_driver_acceptance_and_release():
    online = Driver.new("driver_1", "sedan", DriverStatus.ONLINE)

    busy = handle_driver_acceptance(online)
    assert busy.status == DriverStatus.BUSY
    assert online.status == DriverStatus.ONLINE

    # a busy driver is already on a ride
    with pytest.raises(DriverStateException):
        handle_driver_acceptance(busy)

    assert handle_driver_release(busy).status == DriverStatus.ONLINE

    offline = Driver.new("driver_2", "sedan", DriverStatus.OFFLINE)
    assert handle_driver_release(offline) is offline

    with pytest.raises(DriverStateException):
        handle_driver_acceptance(offline)

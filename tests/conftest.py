from datetime import datetime, timedelta, timezone

import pytest

from adapters.notifier import RecordingNotifier
from adapters.payment_gateway import InMemoryPaymentGateway
from adapters.store import InMemoryStore
from dispatch.policy import DispatchPolicy
from drivers.models import Driver, DriverLocationPing
from rides.models import Location
from rides.service import RideService
from settlement.models import Wallet

# Tuesday, midday: no peak-hour surge
OFF_PEAK = datetime(2024, 1, 9, 12, 0, tzinfo=timezone.utc)

PICKUP = Location(51.30, -0.55, "Guildford")
DROPOFF = Location(51.32, -0.57, "Woking")


class FakeClock:
    """Injected clock the tests can move forward by hand."""

    def __init__(self, start: datetime = OFF_PEAK):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return InMemoryPaymentGateway()


@pytest.fixture
def fast_dispatch_policy():
    # Real deadlines scaled down 100x: targeted 60s -> 0.6s, broadcast 15s -> 0.15s
    return DispatchPolicy(targeted_timeout_seconds=0.6, broadcast_timeout_seconds=0.15)


@pytest.fixture
def service(store, notifier, gateway, clock, fast_dispatch_policy):
    return RideService(store, notifier, gateway, dispatch_policy=fast_dispatch_policy, clock=clock)


async def add_driver(
    store,
    driver_id,
    lat=51.301,
    lng=-0.551,
    *,
    vehicle_class="sedan",
    status="online",
    approval="approved",
    ping_time=None,
    speed=30.0,
):
    """Save a driver and a ping for them. Defaults put them ~130m from PICKUP."""
    driver = Driver.new(driver_id, vehicle_class, status, approval)
    await store.save_driver(driver)
    await store.record_ping(
        DriverLocationPing.new(driver_id, lat, lng, timestamp=ping_time or OFF_PEAK, speed=speed)
    )
    return driver


async def fund_wallet(store, user_id, balance):
    await store.save_wallet(Wallet(user_id=user_id, balance=balance))

import asyncio
import csv
import logging
import os
import random
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List

from adapters.notifier import Notifier
from adapters.payment_gateway import InMemoryPaymentGateway
from adapters.store import InMemoryStore
from dispatch.policy import DispatchPolicy
from drivers.models import Driver, DriverLocationPing
from pricing.estimates import PersistedQuote
from rides.models import Actor, Location, RideStatus
from rides.results import capture
from rides.service import RideService
from settlement.models import Wallet


class MockPushService(Notifier):
    """
    Stands in for the drivers' phones: remembers which offers each driver
    is currently looking at so the simulation can decide who taps Accept.
    """
    def __init__(self):
        self.offers: Dict[str, List[str]] = {}
        self.events = Counter()

    async def notify_user(self, user_id, event, payload=None):
        self.events[event] += 1
        if event == "ride_request":
            self.offers.setdefault(payload["ride_id"], []).append(user_id)

    async def notify_ride(self, ride_id, event, payload=None):
        self.events[event] += 1


def _base_dir():
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def load_drivers(filepath="mock_drivers_100.csv"):
    drivers, pings = [], []
    now = datetime.now(timezone.utc)

    # Resolve the correct path depending on where the user runs the script from.
    absolute_path = os.path.join(_base_dir(), filepath)

    with open(absolute_path, 'r') as file:
        reader = csv.DictReader(file)
        for row in reader:
            driver = Driver.new(
                row['driver_id'],
                row['vehicle_class'],
                row['status'],
                row['approval'],
                float(row['rating']),
            )
            drivers.append(driver)
            pings.append(
                DriverLocationPing.new(
                    driver.id, float(row['lat']), float(row['lon']), timestamp=now, speed=float(row['speed_kmh'])
                )
            )
    return drivers, pings


def load_ride_requests(filepath="ride_requests_generated.csv", limit=50):
    requests_ = []
    absolute_path = os.path.join(_base_dir(), filepath)

    with open(absolute_path, 'r') as file:
        reader = csv.DictReader(file)
        for row in reader:
            if len(requests_) >= limit:
                break
            requests_.append(row)
    return requests_


async def run_simulation(limit=30, acceptance_probability=0.7):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    # 1. Load Data
    drivers, pings = load_drivers()
    ride_requests = load_ride_requests(limit=limit)
    print(f"Loaded {len(ride_requests)} Ride Requests and {len(drivers)} Drivers.\n")

    # 2. Configure System (short deadlines so the run finishes quickly)
    store = InMemoryStore()
    push_service = MockPushService()
    gateway = InMemoryPaymentGateway()
    service = RideService(
        store,
        push_service,
        gateway,
        dispatch_policy=DispatchPolicy(targeted_timeout_seconds=2, broadcast_timeout_seconds=1),
    )

    for driver in drivers:
        await store.save_driver(driver)
    for ping in pings:
        await store.record_ping(ping)

    output_path = os.path.join(_base_dir(), "dispatch_results.csv")
    outcomes = Counter()
    start_time = time.time()

    with open(output_path, "w", newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["request_id", "ride_id", "status", "driver_id", "offered_to", "fare", "payment_status", "reason"])

        for row in ride_requests:
            rider_id = row['rider_id']
            await store.save_wallet(Wallet(user_id=rider_id, balance=round(random.uniform(0, 60), 2)))

            pickup = Location(float(row['pickup_lat']), float(row['pickup_lon']), row['pickup_address'])
            dropoff = Location(float(row['dropoff_lat']), float(row['dropoff_lon']))

            estimate = await service.get_fare_estimate(rider_id, pickup, dropoff, row['vehicle_class'], float(row['duration_min']))
            booked = await capture(
                service.book_ride(rider_id, PersistedQuote(estimate.id), payment_method=row['payment_method'])
            )
            if not booked.success:
                outcomes["booking_failed"] += 1
                writer.writerow([row['request_id'], "", "BOOKING_FAILED", "", 0, "", "", booked.message])
                continue

            ride = booked.ride
            offered = push_service.offers.get(ride.id, [])

            # Simulate drivers deciding: each either taps Accept (first one wins) or Reject
            random.shuffle(offered)
            for driver_id in list(offered):
                if random.random() < acceptance_probability:
                    result = await capture(service.accept_ride(ride.id, driver_id))
                else:
                    result = await capture(service.reject_ride(ride.id, driver_id))
                if result.success and result.ride and result.ride.status != RideStatus.SEARCHING:
                    break

            # Let any remaining deadline fire
            await asyncio.sleep(0)
            ride = await store.get_ride(ride.id)

            if ride.status == RideStatus.ACCEPTED:
                await service.mark_arrived(ride.id, ride.driver_id)
                await service.start_ride(ride.id, ride.driver_id)
                if row['payment_method'] == "card":
                    gateway.mark_paid(ride.id)
                ride = await service.complete_ride(
                    ride.id,
                    ride.driver_id,
                    actual_distance_km=ride.estimated_distance_km,
                    actual_duration_min=float(row['duration_min']),
                )
                if float(row['tip']) > 0:
                    tipped = await capture(service.add_tip(ride.id, rider_id, float(row['tip'])))
                    ride = tipped.ride or ride
                await capture(service.rate_driver(ride.id, rider_id, random.randint(3, 5)))
            elif ride.status == RideStatus.SEARCHING:
                # Nobody answered yet: rider gives up
                ride = await service.cancel_ride(ride.id, Actor.rider(rider_id), "Rider gave up waiting")

            outcomes[ride.status.value] += 1
            writer.writerow([
                row['request_id'],
                ride.id,
                ride.status.value,
                ride.driver_id or "",
                len(offered),
                ride.fare,
                ride.payment_status.value,
                ride.cancellation_reason or "",
            ])
            print(f"[{ride.status.value.upper()}] {row['request_id']} -> {ride.driver_id or 'no driver'} (fare £{ride.fare:.2f})")

    await service.shutdown()

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Processed {len(ride_requests)} requests in {time.time() - start_time:.2f}s")
    for status, count in outcomes.most_common():
        print(f"  {status}: {count}")
    print(f"Notifications sent: {dict(push_service.events)}")
    print(f"Results written to '{output_path}'.")

if __name__ == "__main__":
    asyncio.run(run_simulation())

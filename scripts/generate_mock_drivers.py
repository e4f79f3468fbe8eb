import csv
import random

VEHICLE_CLASSES = ["sedan", "SUV", "electric"]


def generate_mock_drivers(filename="mock_drivers_100.csv", count=100):
    # Base coordinate roughly at the middle of the operating area (Guildford / Woking).
    # Ride requests from generate_mock_data.py cluster around the same point.
    base_lat = 51.30
    base_lon = -0.55

    with open(filename, mode='w', newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["driver_id", "lat", "lon", "status", "approval", "vehicle_class", "speed_kmh", "rating"])

        for i in range(count):
            driver_id = f"DRV-{str(i+1).zfill(3)}"

            # Scatter drivers randomly around the centre (roughly +/- 12km)
            lat = base_lat + (random.random() - 0.5) * 0.2
            lon = base_lon + (random.random() - 0.5) * 0.3

            # 75% online, 15% offline, 10% already busy
            roll = random.random()
            status = "online" if roll < 0.75 else ("offline" if roll < 0.9 else "busy")

            # A few applications are still waiting for document checks
            approval = "approved" if random.random() < 0.92 else "pending"

            vehicle_class = random.choices(VEHICLE_CLASSES, weights=[0.6, 0.25, 0.15])[0]

            # 0 means the device did not report a speed
            speed = 0 if random.random() < 0.2 else random.randint(15, 50)

            rating = round(random.uniform(4.2, 5.0), 1)

            writer.writerow([driver_id, round(lat, 6), round(lon, 6), status, approval, vehicle_class, speed, rating])

    print(f"Successfully generated {count} mock drivers into '{filename}'.")

if __name__ == "__main__":
    generate_mock_drivers()

import pandas as pd
import numpy as np
import uuid
from datetime import datetime, timezone, timedelta

def generate_mock_ride_requests(num_requests=500, num_hotspots=12, output_file="ride_requests_generated.csv"):
    """
    Generates a realistic dataset of ride requests for the dispatch simulation.
    Pickups are drawn around a fixed set of 'hotspots' (stations, town centres)
    so several requests compete for the same nearby drivers, which is what
    exercises broadcast races and demand surge.
    """
    # Centre of the operating area (Guildford / Woking)
    CENTER_LAT = 51.30
    CENTER_LON = -0.55

    # 1. Generate fixed hotspots (pickup clusters)
    hotspots = []
    for hotspot_index in range(num_hotspots):
        # Hotspots placed within a ~6km radius (roughly 0.05 degrees lat)
        lat = CENTER_LAT + np.random.uniform(-0.05, 0.05)
        lon = CENTER_LON + np.random.uniform(-0.08, 0.08)
        hotspots.append({
            "id": f"h_{str(uuid.uuid4())[:8]}",
            "name": f"Hotspot {hotspot_index+1}",
            "lat": lat,
            "lon": lon
        })

    data = []
    now = datetime.now(timezone.utc)

    # 2. Generate ride requests
    for request_index in range(num_requests):
        hotspot = np.random.choice(hotspots)

        # Pickup jittered a few hundred metres around the hotspot
        pickup_lat = hotspot["lat"] + np.random.normal(0, 0.004)
        pickup_lon = hotspot["lon"] + np.random.normal(0, 0.006)

        # Dropoff placed within ~2-15km of the pickup
        dropoff_lat = pickup_lat + np.random.uniform(-0.1, 0.1)
        dropoff_lon = pickup_lon + np.random.uniform(-0.15, 0.15)

        # Trip duration grows with distance, plus traffic noise
        straight_km = np.hypot((dropoff_lat - pickup_lat) * 111.0, (dropoff_lon - pickup_lon) * 69.5)
        duration = max(3.0, straight_km / 30.0 * 60.0 * np.random.uniform(1.1, 1.6))

        data.append({
            "request_id": f"r_{str(request_index+1).zfill(6)}",
            "requested_at": (now - timedelta(minutes=int(np.random.randint(0, 60)))).isoformat(),
            "rider_id": f"rider_{np.random.randint(1000, 9999)}",
            "hotspot_id": hotspot["id"],
            "pickup_lat": np.round(pickup_lat, 6),
            "pickup_lon": np.round(pickup_lon, 6),
            "dropoff_lat": np.round(dropoff_lat, 6),
            "dropoff_lon": np.round(dropoff_lon, 6),
            "vehicle_class": np.random.choice(["sedan", "SUV", "electric"], p=[0.65, 0.2, 0.15]),
            "payment_method": np.random.choice(["cash", "card", "wallet"], p=[0.3, 0.3, 0.4]),
            "duration_min": np.round(duration, 1),
            "tip": np.round(np.random.choice([0.0, 1.0, 2.0, 5.0], p=[0.6, 0.2, 0.15, 0.05]), 2),
            "pickup_address": hotspot["name"]
        })

    # 3. Save to CSV
    df = pd.DataFrame(data)
    df.to_csv(output_file, index=False)
    print(f"✅ Generated {num_requests} ride requests and saved to '{output_file}'")

    # Print a quick preview of demand density
    print("\nTop 5 Hotspots (Demand):")
    counts = df['pickup_address'].value_counts().head(5)
    for name, count in counts.items():
        print(f"  {name}: {count} requests")

if __name__ == "__main__":
    generate_mock_ride_requests(num_requests=500, num_hotspots=12)

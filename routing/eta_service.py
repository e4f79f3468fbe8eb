#Purpose: ETA estimation policy.
#Converts straight-line distance into the "arrives in X minutes" figure used by
#customer-facing quotes and by candidate ranking in dispatch.
#No road network: a constant average speed stands in for routing.

import math

DEFAULT_SPEED_KMH = 30.0


def eta_minutes(distance_km: float, speed_kmh: float = DEFAULT_SPEED_KMH) -> int:
    """
    Minutes to cover distance_km at speed_kmh, rounded half-up to the minute.
    A stationary or unknown speed falls back to the default average speed.
    """
    if distance_km <= 0:
        return 0
    if not speed_kmh or speed_kmh <= 0:
        speed_kmh = DEFAULT_SPEED_KMH
    return int(math.floor(distance_km / speed_kmh * 60 + 0.5))

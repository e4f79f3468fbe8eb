"""
Purpose: Great-circle distance math.
What it does:
Haversine distance on the WGS84 mean radius, plus the unit conversions
used for pricing (miles) and reporting (kilometers).

Rule: pure functions only, no I/O.
"""

from __future__ import annotations

import math
from typing import Tuple

# Internal coordinate type: (lat, lng)
LatLng = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: LatLng, b: LatLng) -> float:
    """Symmetric distance between two (lat, lng) points in kilometers."""
    return haversine_km(a[0], a[1], b[0], b[1])


def km_to_miles(kilometers: float) -> float:
    return kilometers * KM_TO_MILES

#Purpose: Route computation for downstream use.
#Returns the "route" information needed by live ride tracking:
#map display polyline geometry
#total distance
#There is no road network behind this: the route is the straight line between
#the two endpoints, encoded with the Google polyline algorithm (precision 5).

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from routing.distance import LatLng, distance_km


@dataclass(frozen=True)
class RouteResult:
    polyline: str
    distance_km: float


def _encode_value(value: int) -> str:
    # zig-zag the sign into the low bit, then emit 5-bit chunks
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: List[LatLng]) -> str:
    """Encode (lat, lng) points as a Google polyline string."""
    encoded = []
    previous_lat = 0
    previous_lng = 0
    for lat, lng in points:
        lat_e5 = int(round(lat * 1e5))
        lng_e5 = int(round(lng * 1e5))
        encoded.append(_encode_value(lat_e5 - previous_lat))
        encoded.append(_encode_value(lng_e5 - previous_lng))
        previous_lat, previous_lng = lat_e5, lng_e5
    return "".join(encoded)


def straight_line_route(origin: LatLng, destination: LatLng) -> RouteResult:
    return RouteResult(
        polyline=encode_polyline([origin, destination]),
        distance_km=round(distance_km(origin, destination), 1),
    )

#Marks routing as a package.
#Re-exports the geo helpers (distance, ETA, geofence, straight-line route) so
#other modules import from routing without knowing internal file names.
#No business logic.

from .distance import LatLng, distance_km, haversine_km, km_to_miles
from .eta_service import DEFAULT_SPEED_KMH, eta_minutes
from .geofence import (
    MATCHING_RADIUS_KM,
    BoundingBoxGeofence,
    Geofence,
    PolygonGeofence,
    default_geofence,
)
from .route_service import RouteResult, encode_polyline, straight_line_route

__all__ = [
    "LatLng",
    "distance_km",
    "haversine_km",
    "km_to_miles",
    "DEFAULT_SPEED_KMH",
    "eta_minutes",
    "MATCHING_RADIUS_KM",
    "Geofence",
    "BoundingBoxGeofence",
    "PolygonGeofence",
    "default_geofence",
    "RouteResult",
    "encode_polyline",
    "straight_line_route",
]

#Purpose: Operating-area geofencing.
#Decides whether a point (pickup or driver position) lies inside the region the
#platform serves.
#Typical responsibilities:
#hold the region boundary vertices
#answer "is this point inside?" through a swappable strategy
#Strategies:
#BoundingBoxGeofence - min/max over the boundary vertices (permissive, the default)
#PolygonGeofence - exact ray-casting containment
#Output: a boolean per point. No distance thresholds here (see MATCHING_RADIUS_KM).

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from routing.distance import LatLng

# Candidates further than this from the pickup are never matched.
MATCHING_RADIUS_KM = 10.0

# Operating boundary as (lng, lat) vertices, GeoJSON order.
# The trailing vertices sit far outside the main ring, which makes the bounding
# box very wide. That is the behaviour the live service has always had.
DEFAULT_REGION_VERTICES: List[Tuple[float, float]] = [
    (-0.7647820542412376, 51.23981446058468),
    (-0.7875715012305591, 51.3374427274924),
    (-0.6234890626433867, 51.38724570115019),
    (-0.5528255976095124, 51.44765326621072),
    (-0.4912946943742895, 51.4369998383697),
    (-0.4730633156372619, 51.460434099370985),
    (-0.4969920002292554, 51.49591764082311),
    (-0.41599643381312035, 51.48302961671584),
    (-0.4034623609311154, 51.447536045839286),
    (-0.35446553057650476, 51.40490731265197),
    (-0.3350946905903527, 51.35227709578001),
    (-0.27242432621378043, 51.39205851269867),
    (-0.23596156893145803, 51.37214590110136),
    (-0.18810419974732895, 51.34279330808303),
    (-0.12999168002420447, 51.315737863375745),
    (-0.05478725214481983, 51.348487158103154),
    (0.005236573648232934, 51.30684028123139),
    (0.08385939444977453, 51.320372623128776),
    (0.10095132645901117, 51.230557277238916),
    (0.07471019312615113, 51.14568596968138),
    (-0.09279059902101494, 51.11922959976991),
    (-0.13840415849489318, 51.15779247389932),
    (-0.20107452358979572, 51.16493836684967),
    (-0.2990681842990739, 51.12204640044169),
    (-0.47454520463912786, 51.0991543868395),
    (-0.6885988502547775, 51.033302729867955),
    (-0.7375956806094166, 51.09059298445487),
    (-0.7803726437674072, 51.11666890149371),
    (-0.8088591650132173, 51.1567073053445),
    (-0.8452124718280913, 51.192817893194615),
    (-0.7647820542412376, 51.23981446058468),
    (74.43945717928972, 31.48625965811391),
    (74.43745247486578, 31.4863339860257),
    (74.41326528017328, 31.485033239039396),
    (74.40829709964137, 31.48882393695139),
    (74.41069402884509, 31.497259546636712),
    (74.42097903415561, 31.502053012186792),
    (74.43993656513115, 31.496702150972723),
    (74.43950075982167, 31.486296822077165),
]


class Geofence(ABC):
    """Strategy interface: membership test for a single point."""

    @abstractmethod
    def contains(self, point: LatLng) -> bool: ...


@dataclass(frozen=True)
class BoundingBoxGeofence(Geofence):
    """
    Approximates the region by the rectangle spanning its vertices.
    Cheap and permissive: anything inside the rectangle counts, including
    corners the real polygon does not cover.
    """

    vertices: Sequence[Tuple[float, float]] = field(default_factory=lambda: list(DEFAULT_REGION_VERTICES))

    def contains(self, point: LatLng) -> bool:
        lat, lng = point
        lngs = [vertex[0] for vertex in self.vertices]
        lats = [vertex[1] for vertex in self.vertices]
        return min(lats) <= lat <= max(lats) and min(lngs) <= lng <= max(lngs)


@dataclass(frozen=True)
class PolygonGeofence(Geofence):
    """
    Exact containment by ray casting over a single ring of (lng, lat) vertices.
    Points on an edge may land on either side.
    """

    vertices: Sequence[Tuple[float, float]] = field(default_factory=lambda: list(DEFAULT_REGION_VERTICES))

    def contains(self, point: LatLng) -> bool:
        lat, lng = point
        inside = False
        count = len(self.vertices)
        j = count - 1
        for i in range(count):
            lng_i, lat_i = self.vertices[i]
            lng_j, lat_j = self.vertices[j]
            # edge straddles the horizontal line through the point
            if (lat_i > lat) != (lat_j > lat):
                crossing_lng = (lng_j - lng_i) * (lat - lat_i) / (lat_j - lat_i) + lng_i
                if lng < crossing_lng:
                    inside = not inside
            j = i
        return inside


def default_geofence() -> Geofence:
    return BoundingBoxGeofence()

"""
Geofence evaluation: haversine distance and circular containment.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class GeofenceResult:
    is_within: bool
    distance: int  # meters, rounded
    radius: float
    exceeded_by: int  # meters, rounded; 0 when inside

    def as_dict(self) -> dict:
        return {
            "isWithin": self.is_within,
            "distance": self.distance,
            "radius": self.radius,
            "exceededBy": self.exceeded_by,
        }


def distance(p1: GeoPoint, p2: GeoPoint) -> float:
    """Great-circle distance between two coordinates, in meters."""
    lat1_rad = math.radians(p1.lat)
    lat2_rad = math.radians(p2.lat)
    delta_lat = math.radians(p2.lat - p1.lat)
    delta_lng = math.radians(p2.lng - p1.lng)

    a = (math.sin(delta_lat / 2) ** 2
         + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def evaluate(point: GeoPoint, center: GeoPoint, radius_m: float) -> GeofenceResult:
    """Test ``point`` against the circle ``(center, radius_m)``.

    The boundary counts as inside (``distance <= radius``).
    """
    d = distance(point, center)
    is_within = d <= radius_m
    return GeofenceResult(
        is_within=is_within,
        distance=round(d),
        radius=radius_m,
        exceeded_by=0 if is_within else round(d - radius_m),
    )


def valid_coordinates(lat: float | None, lng: float | None) -> bool:
    """Both present, finite, and within [-90, 90] / [-180, 180]."""
    if lat is None or lng is None:
        return False
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180

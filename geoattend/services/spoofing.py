"""
GPS spoofing heuristic: physically impossible movement between two
consecutive scans of the same employee.

Advisory only: a suspicious result raises an alarm but never blocks the scan.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from geoattend.services.geofence import GeoPoint, distance

DEFAULT_MAX_SPEED_KMH = 150.0


@dataclass(frozen=True)
class LocationFix:
    lat: float
    lng: float
    timestamp: datetime

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


@dataclass(frozen=True)
class SpoofingResult:
    is_suspicious: bool
    reason: str | None = None
    speed_kmh: int | None = None
    distance_m: int | None = None

    def as_dict(self) -> dict:
        return {
            "isSuspicious": self.is_suspicious,
            "reason": self.reason,
            "speed": self.speed_kmh,
            "distance": self.distance_m,
        }


NOT_SUSPICIOUS = SpoofingResult(is_suspicious=False)


def detect(
    previous: LocationFix | None,
    current: LocationFix,
    max_speed_kmh: float = DEFAULT_MAX_SPEED_KMH,
) -> SpoofingResult:
    if previous is None:
        return NOT_SUSPICIOUS

    elapsed_hours = (current.timestamp - previous.timestamp).total_seconds() / 3600
    if elapsed_hours <= 0:
        # Replay or a clock running backwards; speed is meaningless here
        return SpoofingResult(is_suspicious=True, reason="Invalid timestamp sequence")

    meters = distance(previous.point, current.point)
    speed = (meters / 1000) / elapsed_hours
    if speed > max_speed_kmh:
        return SpoofingResult(
            is_suspicious=True,
            reason=(
                f"Unrealistic movement speed detected: {round(speed)} km/h "
                f"over {round(meters)} m"
            ),
            speed_kmh=round(speed),
            distance_m=round(meters),
        )
    return NOT_SUSPICIOUS

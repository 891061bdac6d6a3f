"""Great-circle math and the validated coordinate value type."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from storefinder.core.errors import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0

_LAT_KEYS = ("lat", "latitude")
_LNG_KEYS = ("lng", "lon", "longitude")


def _as_degree(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidCoordinate(f"{name} must be numeric, got {value!r}")
    try:
        degree = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(degree):
        raise InvalidCoordinate(f"{name} must be finite, got {value!r}")
    return degree


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Immutable (latitude, longitude) pair in signed decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        lat = _as_degree(self.lat, "latitude")
        lng = _as_degree(self.lng, "longitude")
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinate(f"Latitude must be between -90 and 90, got {lat}")
        if not -180.0 <= lng <= 180.0:
            raise InvalidCoordinate(f"Longitude must be between -180 and 180, got {lng}")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)

    @classmethod
    def from_mapping(cls, doc: Optional[Mapping[str, Any]]) -> Optional["Coordinate"]:
        """Build a coordinate from ``{"lat", "lng"}``-style keys, or ``None`` if absent."""
        if not doc:
            return None
        lat = next((doc[key] for key in _LAT_KEYS if doc.get(key) is not None), None)
        lng = next((doc[key] for key in _LNG_KEYS if doc.get(key) is not None), None)
        if lat is None or lng is None:
            return None
        return cls(lat, lng)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    def label(self) -> str:
        """Plain ``"lat, lng"`` text used when no address is known."""
        return f"{self.lat:.6f}, {self.lng:.6f}"


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Return the haversine great-circle distance between two coordinates in km."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bounding_box(center: Coordinate, radius_km: float) -> Dict[str, float]:
    """Rectangle enclosing the search circle (coarse pre-filter only).

    Bounds are not clamped, so callers can detect a box that crosses a pole
    (``min_lat < -90`` or ``max_lat > 90``) or the antimeridian
    (``min_lng < -180`` or ``max_lng > 180``).
    """
    angular = radius_km / EARTH_RADIUS_KM
    dlat = math.degrees(angular)
    cos_lat = math.cos(math.radians(center.lat))
    if angular >= math.pi / 2 or math.sin(angular) >= cos_lat:
        # circle reaches a pole, every longitude is in range
        dlng = 180.0
    else:
        dlng = math.degrees(math.asin(math.sin(angular) / cos_lat))
    return {
        "min_lat": center.lat - dlat,
        "max_lat": center.lat + dlat,
        "min_lng": center.lng - dlng,
        "max_lng": center.lng + dlng,
    }

"""Core data models shared by the proximity discovery pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from storefinder.core.errors import InvalidArgument
from storefinder.core.geo import Coordinate


@dataclass(frozen=True, slots=True)
class GeoEntity:
    """A catalog record (usually a store) that may carry a coordinate.

    ``payload`` holds whatever the catalog returned (name, address, categories);
    the proximity core never interprets it.
    """

    id: str
    coordinate: Optional[Coordinate] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def name(self) -> Optional[str]:
        return self.payload.get("name")


@dataclass(frozen=True, slots=True)
class ProximityMatch:
    """An entity found within a search radius, annotated with its distance."""

    entity: GeoEntity
    distance_km: float

    def __post_init__(self) -> None:
        if self.distance_km < 0 or math.isnan(self.distance_km):
            raise InvalidArgument(f"distance_km must be non-negative, got {self.distance_km}")

    @property
    def sort_key(self) -> Tuple[float, str]:
        return (self.distance_km, self.entity.id)

    def to_dict(self) -> Dict[str, Any]:
        coordinate = self.entity.coordinate
        return {
            **self.entity.payload,
            "id": self.entity.id,
            "distance_km": round(self.distance_km, 3),
            "location": coordinate.to_dict() if coordinate else None,
        }


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """Center point, radius and optional page size for one proximity search."""

    center: Coordinate
    radius_km: float
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.center, Coordinate):
            raise InvalidArgument("center must be a Coordinate")
        try:
            radius = float(self.radius_km)
        except (TypeError, ValueError) as exc:
            raise InvalidArgument(f"radius_km must be numeric, got {self.radius_km!r}") from exc
        if not math.isfinite(radius) or radius <= 0:
            raise InvalidArgument(f"radius_km must be positive, got {self.radius_km!r}")
        object.__setattr__(self, "radius_km", radius)
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0):
            raise InvalidArgument(f"limit must be a positive integer, got {self.limit!r}")

    def with_radius(self, radius_km: float) -> "SearchRequest":
        return SearchRequest(center=self.center, radius_km=radius_km, limit=self.limit)


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    """Result of an explicitly expanding search.

    ``radius_km`` is the radius that produced ``matches``; ``expanded`` is true
    when it differs from what the caller asked for.
    """

    matches: Tuple[ProximityMatch, ...]
    radius_km: float
    requested_radius_km: float

    @property
    def expanded(self) -> bool:
        return self.radius_km != self.requested_radius_km

    def to_dict(self) -> Dict[str, Any]:
        return {
            "radius_km": self.radius_km,
            "requested_radius_km": self.requested_radius_km,
            "expanded": self.expanded,
            "count": len(self.matches),
            "items": [match.to_dict() for match in self.matches],
        }

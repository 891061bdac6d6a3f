"""Proximity index queries over a catalog snapshot."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from storefinder.core.errors import InvalidArgument
from storefinder.core.geo import bounding_box, distance_km
from storefinder.models import GeoEntity, ProximityMatch, SearchRequest

logger = logging.getLogger(__name__)

DEFAULT_CELL_SIZE_DEGREES = 0.1


def query(catalog: Iterable[GeoEntity], req: SearchRequest) -> List[ProximityMatch]:
    """Linear scan: every entity with a coordinate within ``req.radius_km``.

    Entities without a coordinate are skipped. Output order follows the
    catalog; use :func:`storefinder.core.ranking.rank` for a stable ordering.
    """
    matches: List[ProximityMatch] = []
    for entity in catalog:
        if entity.coordinate is None:
            continue
        dist = distance_km(req.center, entity.coordinate)
        if dist <= req.radius_km:
            matches.append(ProximityMatch(entity=entity, distance_km=dist))
    return matches


class ProximityIndex(ABC):
    """Interface for anything that can answer radius queries over a catalog."""

    @abstractmethod
    def query(self, req: SearchRequest) -> List[ProximityMatch]:
        """Return every entity within ``req.radius_km`` of ``req.center``."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class LinearScanIndex(ProximityIndex):
    """O(n) scan over an immutable catalog snapshot."""

    def __init__(self, catalog: Iterable[GeoEntity]) -> None:
        self._catalog: Tuple[GeoEntity, ...] = tuple(catalog)

    def query(self, req: SearchRequest) -> List[ProximityMatch]:
        return query(self._catalog, req)

    def __len__(self) -> int:
        return len(self._catalog)


class GridIndex(ProximityIndex):
    """Buckets entities into fixed-size degree cells.

    A query only scans the cells overlapping its bounding box, then applies the
    exact haversine filter, so results match :class:`LinearScanIndex`. Boxes
    that cross a pole or the antimeridian fall back to a full scan.
    """

    def __init__(self, catalog: Iterable[GeoEntity], cell_size_degrees: float = DEFAULT_CELL_SIZE_DEGREES) -> None:
        if cell_size_degrees <= 0:
            raise InvalidArgument("cell_size_degrees must be positive")
        self.cell_size_degrees = cell_size_degrees
        self._located: List[GeoEntity] = []
        self._cells: Dict[Tuple[int, int], List[GeoEntity]] = defaultdict(list)
        for entity in catalog:
            if entity.coordinate is None:
                continue
            self._located.append(entity)
            self._cells[self._cell(entity.coordinate.lat, entity.coordinate.lng)].append(entity)
        logger.debug("Built grid index: entities=%d cells=%d", len(self._located), len(self._cells))

    def _cell(self, lat: float, lng: float) -> Tuple[int, int]:
        return (math.floor(lat / self.cell_size_degrees), math.floor(lng / self.cell_size_degrees))

    def _candidates(self, req: SearchRequest) -> Sequence[GeoEntity]:
        box = bounding_box(req.center, req.radius_km)
        if box["min_lat"] < -90 or box["max_lat"] > 90 or box["min_lng"] < -180 or box["max_lng"] > 180:
            return self._located

        min_row, min_col = self._cell(box["min_lat"], box["min_lng"])
        max_row, max_col = self._cell(box["max_lat"], box["max_lng"])
        if (max_row - min_row + 1) * (max_col - min_col + 1) > len(self._cells):
            # box covers more cells than are occupied, walk the occupied ones
            return [
                entity
                for (row, col), bucket in self._cells.items()
                if min_row <= row <= max_row and min_col <= col <= max_col
                for entity in bucket
            ]

        candidates: List[GeoEntity] = []
        for row in range(min_row, max_row + 1):
            for col in range(min_col, max_col + 1):
                candidates.extend(self._cells.get((row, col), ()))
        return candidates

    def query(self, req: SearchRequest) -> List[ProximityMatch]:
        return query(self._candidates(req), req)

    def __len__(self) -> int:
        return len(self._located)

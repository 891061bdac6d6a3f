"""Deterministic ordering, pagination and the explicit radius-expansion policy."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, TypeVar

from storefinder.core.errors import InvalidArgument
from storefinder.models import ProximityMatch, SearchOutcome, SearchRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Radius choices offered by the storefront, in km.
RADIUS_STEPS_KM = (0.5, 1.0, 2.0, 5.0, 10.0, 25.0, 50.0)
MAX_RADIUS_KM = 50.0


def rank(matches: Iterable[ProximityMatch]) -> List[ProximityMatch]:
    """Sort by distance ascending, ties broken by entity id."""
    return sorted(matches, key=lambda match: match.sort_key)


def paginate(ranked: Sequence[T], limit: Optional[int]) -> List[T]:
    """Return the first ``limit`` items of ``ranked``, or all of them when ``limit`` is None."""
    if limit is None:
        return list(ranked)
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidArgument(f"limit must be a positive integer, got {limit!r}")
    return list(ranked[:limit])


def next_radius(radius_km: float, ceiling_km: float = MAX_RADIUS_KM) -> Optional[float]:
    """Radius for the next "expand search" step, or None once the ceiling is reached."""
    if radius_km <= 0:
        raise InvalidArgument(f"radius_km must be positive, got {radius_km!r}")
    if ceiling_km <= 0:
        raise InvalidArgument(f"ceiling_km must be positive, got {ceiling_km!r}")
    if radius_km >= ceiling_km:
        return None
    return min(radius_km * 2, ceiling_km)


def format_radius(radius_km: float) -> str:
    """Human label for a radius: metres below 1 km, kilometres otherwise."""
    if radius_km < 1:
        return f"{round(radius_km * 1000):g}m"
    return f"{radius_km:g}km"


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split ``items`` into consecutive batches of at most ``size``.

    Used to respect ``IN``-filter limits of a backing store after ranking, so
    batching never decides which nearby entities survive.
    """
    if size <= 0:
        raise InvalidArgument(f"batch size must be positive, got {size!r}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def search(run_query: Callable[[SearchRequest], List[ProximityMatch]], req: SearchRequest) -> List[ProximityMatch]:
    """Query, rank, then apply ``req.limit``."""
    return paginate(rank(run_query(req)), req.limit)


def search_with_expansion(
    run_query: Callable[[SearchRequest], List[ProximityMatch]],
    req: SearchRequest,
    ceiling_km: float = MAX_RADIUS_KM,
) -> SearchOutcome:
    """Search at ``req.radius_km``, doubling the radius up to ``ceiling_km`` while nothing is found.

    Callers opt into this explicitly; the returned outcome names the radius that
    produced the matches so the widened meaning is never hidden.
    """
    current = req
    while True:
        matches = search(run_query, current)
        if matches:
            break
        widened = next_radius(current.radius_km, ceiling_km)
        if widened is None:
            break
        logger.info(
            "No matches within %s, expanding search to %s",
            format_radius(current.radius_km),
            format_radius(widened),
        )
        current = current.with_radius(widened)

    return SearchOutcome(
        matches=tuple(matches),
        radius_km=current.radius_km,
        requested_radius_km=req.radius_km,
    )

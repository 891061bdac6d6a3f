"""CLI job to search for stores or products near a location."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from storefinder.core.config import get_settings
from storefinder.core.db import PostgresCatalog
from storefinder.core.discovery import CatalogProvider, DiscoveryService, InMemoryCatalog
from storefinder.core.errors import InvalidArgument, StorefinderError
from storefinder.core.geo import Coordinate
from storefinder.core.index import GridIndex, LinearScanIndex
from storefinder.core.ranking import format_radius, next_radius
from storefinder.core.resolver import IpLocationCapability, LocationResolver
from storefinder.etl.transform import to_geo_entities
from storefinder.models import SearchRequest

logger = logging.getLogger(__name__)


def load_catalog_file(path: str) -> InMemoryCatalog:
    """Read a JSON catalog: a list of stores, or ``{"stores": [...], "products": [...]}``."""
    with Path(path).open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, list):
        data = {"stores": data}
    if not isinstance(data, dict):
        raise InvalidArgument(f"{path} must contain a list of stores or a catalog object")
    return InMemoryCatalog(to_geo_entities(data.get("stores", [])), data.get("products", []))


def run_nearby_job(
    *,
    lat: Optional[float],
    lng: Optional[float],
    address: Optional[str],
    locate: bool,
    radius_km: float,
    limit: Optional[int],
    expand: bool,
    products: bool,
    grid: bool,
    catalog_path: Optional[str] = None,
    query: Optional[str] = None,
) -> Dict[str, Any]:
    settings = get_settings()
    if expand and (products or query):
        raise InvalidArgument("--expand applies to store searches only")
    if radius_km > settings.max_radius_km:
        raise InvalidArgument(f"--radius must not exceed {format_radius(settings.max_radius_km)}")

    capability = IpLocationCapability(settings.ip_location_url, allowed=settings.allow_ip_location)
    resolver = LocationResolver.from_settings(settings, capability=capability)

    center: Optional[Coordinate] = None
    if lat is not None or lng is not None:
        if lat is None or lng is None:
            raise InvalidArgument("--lat and --lng must be given together")
        center = Coordinate(lat, lng)
    elif address:
        center = resolver.resolve_from_address(address)
    elif locate:
        center = asyncio.run(resolver.resolve_from_device())
    elif not query:
        raise InvalidArgument("Provide --lat/--lng, --address or --locate")

    catalog: CatalogProvider = load_catalog_file(catalog_path) if catalog_path else PostgresCatalog()
    service = DiscoveryService(
        catalog,
        index_factory=GridIndex if grid else LinearScanIndex,
        product_batch_size=settings.product_batch_size,
        max_radius_km=settings.max_radius_km,
    )

    if query:
        items = service.search_products(query, center=center, limit=limit)
        return {
            "center": center.to_dict() if center else None,
            "location": resolver.describe_coordinate(center) if center else None,
            "query": query,
            "count": len(items),
            "items": items,
        }

    req = SearchRequest(center=center, radius_km=radius_km, limit=limit)
    logger.info("Searching within %s of %s", format_radius(req.radius_km), center.label())

    result: Dict[str, Any] = {"center": center.to_dict(), "location": resolver.describe_coordinate(center)}
    if products:
        items = service.nearby_products(req)
        result.update(radius_km=req.radius_km, count=len(items), items=items)
    elif expand:
        result.update(service.nearby_stores_expanding(req, settings.max_radius_km).to_dict())
    else:
        matches = service.nearby_stores(req)
        result.update(
            radius_km=req.radius_km,
            count=len(matches),
            items=[match.to_dict() for match in matches],
        )

    if not result["count"] and not result.get("expanded"):
        result["next_radius_km"] = next_radius(result["radius_km"], settings.max_radius_km)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find stores or products near a location, or search products by text")
    parser.add_argument("--lat", dest="lat", type=float, help="Latitude of the search center")
    parser.add_argument("--lng", dest="lng", type=float, help="Longitude of the search center")
    parser.add_argument("--address", dest="address", help="Free-text address to geocode")
    parser.add_argument("--locate", dest="locate", action="store_true", help="Use IP based location")
    parser.add_argument(
        "--radius",
        dest="radius_km",
        type=float,
        default=get_settings().default_radius_km,
        help="Search radius in km",
    )
    parser.add_argument("--limit", dest="limit", type=int, help="Maximum number of results")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--expand", dest="expand", action="store_true", help="Widen the radius when no store is found")
    mode.add_argument("--products", dest="products", action="store_true", help="List nearby products instead of stores")
    mode.add_argument("--query", dest="query", help="Search all products by name, description or category")
    parser.add_argument("--grid", dest="grid", action="store_true", help="Use the grid index instead of a linear scan")
    parser.add_argument("--catalog", dest="catalog_path", help="Read stores from a JSON file instead of the database")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        result = run_nearby_job(
            lat=args.lat,
            lng=args.lng,
            address=args.address,
            locate=args.locate,
            radius_km=args.radius_km,
            limit=args.limit,
            expand=args.expand,
            products=args.products,
            grid=args.grid,
            catalog_path=args.catalog_path,
            query=args.query,
        )
    except InvalidArgument as exc:
        logger.error("Invalid input: %s", exc)
        raise SystemExit(2) from exc
    except StorefinderError as exc:
        logger.error("Nearby search failed: %s", exc)
        raise SystemExit(1) from exc
    except (OSError, ValueError) as exc:
        logger.error("Could not read catalog %s: %s", args.catalog_path, exc)
        raise SystemExit(2) from exc

    json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()

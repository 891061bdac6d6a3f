"""Utilities for transforming catalog rows and documents into geo entities."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from storefinder.core.errors import InvalidCoordinate
from storefinder.core.geo import Coordinate, distance_km
from storefinder.models import GeoEntity, ProximityMatch

logger = logging.getLogger(__name__)

_STORE_FIELDS = {
    "name": "name",
    "description": "description",
    "address": "address",
    "city": "city",
    "country": "country",
    "postal_code": "postal_code",
    "postalCode": "postal_code",
    "phone": "phone",
    "email": "email",
    "categories": "categories",
    "logo_url": "logo_url",
    "logoUrl": "logo_url",
    "owner_id": "owner_id",
    "ownerId": "owner_id",
}

_PRODUCT_FIELDS = {
    "name": "name",
    "description": "description",
    "price": "price",
    "stock": "stock",
    "category": "category",
    "image_url": "image_url",
    "imageUrl": "image_url",
    "store_id": "store_id",
    "storeId": "store_id",
    "seller_id": "seller_id",
    "sellerId": "seller_id",
}


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _pick(row: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    picked: Dict[str, Any] = {}
    for source, target in fields.items():
        if source in row and row[source] is not None:
            picked[target] = _plain(row[source])
    return picked


def parse_coordinate(row: Dict[str, Any]) -> Optional[Coordinate]:
    """Coordinate from a nested ``location`` object or flat lat/lng columns.

    Malformed values are logged and treated as "no coordinate".
    """
    location = row.get("location")
    source = location if isinstance(location, dict) else row
    try:
        return Coordinate.from_mapping(source)
    except InvalidCoordinate as exc:
        logger.warning("Ignoring invalid coordinate for %s: %s", row.get("id"), exc)
        return None


def is_active(row: Dict[str, Any]) -> bool:
    if "is_active" in row:
        return bool(row["is_active"])
    if "isActive" in row:
        return bool(row["isActive"])
    return row.get("status", "active") == "active"


def to_geo_entity(row: Dict[str, Any]) -> Optional[GeoEntity]:
    store_id = row.get("id")
    if store_id is None or str(store_id).strip() == "":
        logger.debug("Skipping store without id: %s", row)
        return None
    return GeoEntity(
        id=str(store_id),
        coordinate=parse_coordinate(row),
        payload=_pick(row, _STORE_FIELDS),
    )


def to_geo_entities(rows: Iterable[Dict[str, Any]], active_only: bool = True) -> List[GeoEntity]:
    entities: List[GeoEntity] = []
    for row in rows:
        if active_only and not is_active(row):
            continue
        entity = to_geo_entity(row)
        if entity is not None:
            entities.append(entity)
    return entities


def to_product_row(row: Dict[str, Any], match: ProximityMatch) -> Dict[str, Any]:
    """Product annotated with the distance and location of the store selling it."""
    coordinate = match.entity.coordinate
    return {
        "id": str(row.get("id")),
        **_pick(row, _PRODUCT_FIELDS),
        "store_id": match.entity.id,
        "store_name": match.entity.name,
        "distance_km": round(match.distance_km, 3),
        "store_location": coordinate.to_dict() if coordinate else None,
    }


def matches_text(row: Dict[str, Any], text: str) -> bool:
    """Case-insensitive substring match on product name, description or category."""
    needle = text.lower()
    for field in ("name", "description", "category"):
        value = row.get(field)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def to_catalog_product_row(
    row: Dict[str, Any],
    store: Optional[GeoEntity],
    center: Optional[Coordinate] = None,
) -> Dict[str, Any]:
    """Product found by a catalog-wide search.

    ``distance_km`` is set only when both the caller and the store have a position.
    """
    coordinate = store.coordinate if store is not None else None
    distance = distance_km(center, coordinate) if center is not None and coordinate is not None else None
    store_id = row.get("store_id")
    return {
        "id": str(row.get("id")),
        **_pick(row, _PRODUCT_FIELDS),
        "store_id": str(store_id) if store_id is not None else None,
        "store_name": store.name if store is not None else None,
        "distance_km": round(distance, 3) if distance is not None else None,
        "store_location": coordinate.to_dict() if coordinate else None,
    }

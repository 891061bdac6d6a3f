"""Database helpers for the store catalog."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import extras, pool

from storefinder.core.config import get_settings
from storefinder.core.errors import CatalogError
from storefinder.core.geo import Coordinate, bounding_box
from storefinder.etl.transform import to_geo_entities
from storefinder.models import GeoEntity

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise CatalogError("DATABASE_URL is required for database connections")
        try:
            _connection_pool = pool.SimpleConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
        except psycopg2.Error as exc:
            raise CatalogError(f"Could not connect to the catalog database: {exc}") from exc
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_SELECT_STORES = """
SELECT
    id,
    owner_id,
    name,
    description,
    address,
    city,
    country,
    postal_code,
    phone,
    email,
    logo_url,
    categories,
    latitude,
    longitude,
    is_active
FROM stores
WHERE is_active
"""

_BOX_FILTER = """
  AND latitude IS NOT NULL
  AND longitude IS NOT NULL
  AND latitude BETWEEN %(min_lat)s AND %(max_lat)s
  AND longitude BETWEEN %(min_lng)s AND %(max_lng)s
"""

_SELECT_PRODUCTS = """
SELECT
    id,
    store_id,
    seller_id,
    name,
    description,
    price,
    stock,
    category,
    image_url,
    status
FROM products
WHERE status = 'active'
  AND store_id = ANY(%(store_ids)s)
ORDER BY store_id, id
"""

_SEARCH_PRODUCTS = """
SELECT
    id,
    store_id,
    seller_id,
    name,
    description,
    price,
    stock,
    category,
    image_url,
    status
FROM products
WHERE status = 'active'
  AND (
    name ILIKE %(pattern)s
    OR description ILIKE %(pattern)s
    OR category ILIKE %(pattern)s
  )
ORDER BY store_id, id
"""


def _fetch_all(sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        with get_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
    except psycopg2.Error as exc:
        logger.error("Catalog query failed: %s", exc)
        raise CatalogError(f"Catalog query failed: {exc}") from exc
    return [dict(row) for row in rows]


def fetch_store_rows(center: Optional[Coordinate] = None, radius_km: Optional[float] = None) -> List[Dict[str, Any]]:
    """Active stores, optionally narrowed to the bounding box of a search circle.

    The box is skipped when it crosses a pole or the antimeridian.
    """
    sql = _SELECT_STORES
    params: Dict[str, Any] = {}
    if center is not None and radius_km is not None:
        box = bounding_box(center, radius_km)
        if -90 <= box["min_lat"] and box["max_lat"] <= 90 and -180 <= box["min_lng"] and box["max_lng"] <= 180:
            sql += _BOX_FILTER
            params.update(box)
    rows = _fetch_all(sql, params)
    logger.debug("Fetched %d store rows", len(rows))
    return rows


def fetch_product_rows(store_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not store_ids:
        return []
    return _fetch_all(_SELECT_PRODUCTS, {"store_ids": list(store_ids)})


def search_product_rows(text: str) -> List[Dict[str, Any]]:
    """Active products whose name, description or category contains ``text``, any case."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return _fetch_all(_SEARCH_PRODUCTS, {"pattern": f"%{escaped}%"})


class PostgresCatalog:
    """Catalog provider reading stores and products from PostgreSQL."""

    def fetch_stores(self, center: Optional[Coordinate] = None, radius_km: Optional[float] = None) -> List[GeoEntity]:
        return to_geo_entities(fetch_store_rows(center, radius_km))

    def fetch_products(self, store_ids: Sequence[str]) -> List[Dict[str, Any]]:
        return fetch_product_rows(store_ids)

    def search_products(self, text: str) -> List[Dict[str, Any]]:
        return search_product_rows(text)

"""Nearby store and product discovery over an injected catalog provider."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from storefinder.core.errors import CatalogError, InvalidArgument
from storefinder.core.geo import Coordinate
from storefinder.core.index import LinearScanIndex, ProximityIndex
from storefinder.core.ranking import MAX_RADIUS_KM, chunked, paginate, rank, search, search_with_expansion
from storefinder.etl.transform import is_active, matches_text, to_catalog_product_row, to_product_row
from storefinder.models import GeoEntity, ProximityMatch, SearchOutcome, SearchRequest

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_BATCH_SIZE = 10


class CatalogProvider(Protocol):
    def fetch_stores(self, center: Optional[Coordinate] = None, radius_km: Optional[float] = None) -> Sequence[GeoEntity]:
        ...

    def fetch_products(self, store_ids: Sequence[str]) -> Sequence[Dict[str, Any]]:
        ...

    def search_products(self, text: str) -> Sequence[Dict[str, Any]]:
        ...


class InMemoryCatalog:
    """Catalog provider over entities and product rows already held in memory."""

    def __init__(self, stores: Iterable[GeoEntity], products: Iterable[Dict[str, Any]] = ()) -> None:
        self.stores = tuple(stores)
        self.products = tuple(products)

    def fetch_stores(self, center: Optional[Coordinate] = None, radius_km: Optional[float] = None) -> Sequence[GeoEntity]:
        return self.stores

    def fetch_products(self, store_ids: Sequence[str]) -> Sequence[Dict[str, Any]]:
        wanted = set(store_ids)
        return [row for row in self.products if str(row.get("store_id")) in wanted]

    def search_products(self, text: str) -> Sequence[Dict[str, Any]]:
        return [row for row in self.products if matches_text(row, text)]


class DiscoveryService:
    """Finds nearby stores and products.

    Every query takes a fresh catalog snapshot; nothing is cached between calls.
    A failing catalog is logged and treated as an empty one.
    """

    def __init__(
        self,
        catalog: CatalogProvider,
        index_factory: Callable[[Iterable[GeoEntity]], ProximityIndex] = LinearScanIndex,
        product_batch_size: int = DEFAULT_PRODUCT_BATCH_SIZE,
        max_radius_km: float = MAX_RADIUS_KM,
    ) -> None:
        self.catalog = catalog
        self.index_factory = index_factory
        self.product_batch_size = product_batch_size
        self.max_radius_km = max_radius_km

    def _index_for(self, req: SearchRequest) -> ProximityIndex:
        try:
            entities = tuple(self.catalog.fetch_stores(req.center, req.radius_km))
        except CatalogError as exc:
            logger.warning("Catalog unavailable, treating as empty: %s", exc)
            entities = ()
        return self.index_factory(entities)

    def _query(self, req: SearchRequest) -> List[ProximityMatch]:
        return self._index_for(req).query(req)

    def nearby_stores(self, req: SearchRequest) -> List[ProximityMatch]:
        matches = search(self._query, req)
        logger.info("Found %d stores within %.3f km of %s", len(matches), req.radius_km, req.center.label())
        return matches

    def nearby_stores_expanding(self, req: SearchRequest, ceiling_km: Optional[float] = None) -> SearchOutcome:
        return search_with_expansion(self._query, req, ceiling_km or self.max_radius_km)

    def nearby_products(self, req: SearchRequest) -> List[Dict[str, Any]]:
        """Active products sold by stores within the radius, nearest store first.

        Stores are ranked across the full nearby set before their ids are
        batched into product lookups.
        """
        stores = rank(self._query(req))
        position = {match.entity.id: pos for pos, match in enumerate(stores)}
        by_id = {match.entity.id: match for match in stores}

        products: List[Dict[str, Any]] = []
        for batch in chunked([match.entity.id for match in stores], self.product_batch_size):
            try:
                rows = self.catalog.fetch_products(batch)
            except CatalogError as exc:
                logger.warning("Product lookup failed for %d stores: %s", len(batch), exc)
                continue
            for row in rows:
                match = by_id.get(str(row.get("store_id")))
                if match is None or not is_active(row):
                    continue
                products.append(to_product_row(row, match))

        products.sort(key=lambda product: (position[product["store_id"]], product["id"]))
        logger.info("Found %d products from %d nearby stores", len(products), len(stores))
        return paginate(products, req.limit)

    def search_products(
        self,
        text: str,
        center: Optional[Coordinate] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Active products across the whole catalog whose name, description or category contains ``text``.

        The radius does not apply. When ``center`` is known each product carries
        the distance to its store, and products with a distance come first.
        """
        query = " ".join(str(text or "").split())
        if not query:
            raise InvalidArgument("search text must not be empty")

        try:
            rows = self.catalog.search_products(query)
        except CatalogError as exc:
            logger.warning("Product search failed for %r: %s", query, exc)
            rows = []
        try:
            stores = {entity.id: entity for entity in self.catalog.fetch_stores()}
        except CatalogError as exc:
            logger.warning("Catalog unavailable, products will carry no store details: %s", exc)
            stores = {}

        products = [
            to_catalog_product_row(row, stores.get(str(row.get("store_id"))), center)
            for row in rows
            if is_active(row) and matches_text(row, query)
        ]
        products.sort(
            key=lambda product: (
                product["distance_km"] is None,
                product["distance_km"] or 0.0,
                product["store_id"] or "",
                product["id"],
            )
        )
        logger.info("Found %d products matching %r", len(products), query)
        return paginate(products, limit)

"""HTTP entrypoint exposing nearby store and product search."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from storefinder.core.config import get_settings
from storefinder.core.db import PostgresCatalog
from storefinder.core.discovery import DiscoveryService
from storefinder.core.errors import (
    GeocodeNotFound,
    GeocodeServiceError,
    InvalidArgument,
    LocationUnavailable,
    StorefinderError,
)
from storefinder.core.geo import Coordinate
from storefinder.core.ranking import RADIUS_STEPS_KM, format_radius, next_radius
from storefinder.core.resolver import LocationResolver
from storefinder.models import SearchRequest

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)

_ERROR_STATUS = (
    (InvalidArgument, 400),
    (GeocodeNotFound, 404),
    (LocationUnavailable, 422),
    (GeocodeServiceError, 503),
)


def _build_service() -> DiscoveryService:
    settings = get_settings()
    return DiscoveryService(
        PostgresCatalog(),
        product_batch_size=settings.product_batch_size,
        max_radius_km=settings.max_radius_km,
    )


def _build_resolver() -> LocationResolver:
    return LocationResolver.from_settings(get_settings())


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "geocoder": settings.geocoder_provider,
                "max_radius_km": settings.max_radius_km,
                "radius_steps_km": [step for step in RADIUS_STEPS_KM if step <= settings.max_radius_km],
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.get("/stores/nearby")
def nearby_stores() -> Any:
    """
    Stores around a point, nearest first.
    Query: lat+lng or address; optional radius_km, limit, expand=1
    """
    req = _search_request()
    service = _build_service()

    if _flag("expand"):
        return jsonify({"data": service.nearby_stores_expanding(req).to_dict()}), 200

    matches = service.nearby_stores(req)
    payload: Dict[str, Any] = {
        "radius_km": req.radius_km,
        "count": len(matches),
        "items": [match.to_dict() for match in matches],
    }
    _add_expand_hint(payload, req, service.max_radius_km)
    return jsonify({"data": payload}), 200


@app.get("/products/nearby")
def nearby_products() -> Any:
    """
    Active products from stores around a point, nearest store first.
    With q, searches the whole catalog by text instead; lat+lng or address then only annotate distances.
    """
    text = request.args.get("q", "").strip()
    if text:
        center = _request_center(required=False)
        items = _build_service().search_products(text, center=center, limit=_request_limit())
        return jsonify({"data": {"query": text, "count": len(items), "items": items}}), 200

    req = _search_request()
    service = _build_service()
    items = service.nearby_products(req)
    payload: Dict[str, Any] = {"radius_km": req.radius_km, "count": len(items), "items": items}
    _add_expand_hint(payload, req, service.max_radius_km)
    return jsonify({"data": payload}), 200


@app.get("/geocode")
def geocode() -> Any:
    coordinate = _build_resolver().resolve_from_address(request.args.get("address", ""))
    return jsonify({"data": coordinate.to_dict()}), 200


@app.get("/reverse")
def reverse() -> Any:
    coordinate = Coordinate(_required_arg("lat"), _required_arg("lng"))
    label = _build_resolver().describe_coordinate(coordinate)
    return jsonify({"data": {**coordinate.to_dict(), "label": label}}), 200


@app.errorhandler(StorefinderError)
def handle_storefinder_error(exc: StorefinderError) -> Any:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return jsonify({"error": str(exc)}), status
    logger.exception("Request failed: %s", exc)
    return jsonify({"error": "internal error"}), 500


# ---------- Internals ----------


def _required_arg(name: str) -> str:
    value = request.args.get(name)
    if value is None or not value.strip():
        raise InvalidArgument(f"missing query parameter: {name}")
    return value


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in {"1", "true", "yes"}


def _request_center(required: bool = True) -> Optional[Coordinate]:
    if request.args.get("lat") is not None or request.args.get("lng") is not None:
        return Coordinate(_required_arg("lat"), _required_arg("lng"))
    if request.args.get("address"):
        return _build_resolver().resolve_from_address(request.args["address"])
    if required:
        raise InvalidArgument("lat and lng, or address, are required")
    return None


def _request_limit() -> Optional[int]:
    limit_raw = request.args.get("limit")
    if not limit_raw:
        return None
    try:
        return int(limit_raw)
    except ValueError as exc:
        raise InvalidArgument("limit must be numeric") from exc


def _search_request() -> SearchRequest:
    settings = get_settings()
    center = _request_center()

    radius_raw = request.args.get("radius_km")
    try:
        radius_km = float(radius_raw) if radius_raw else settings.default_radius_km
    except ValueError as exc:
        raise InvalidArgument("radius_km must be numeric") from exc
    if radius_km > settings.max_radius_km:
        raise InvalidArgument(f"radius_km must not exceed {format_radius(settings.max_radius_km)}")

    return SearchRequest(center=center, radius_km=radius_km, limit=_request_limit())


def _add_expand_hint(payload: Dict[str, Any], req: SearchRequest, ceiling_km: float) -> None:
    if not payload["count"]:
        payload["next_radius_km"] = next_radius(req.radius_km, ceiling_km)


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().server_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()

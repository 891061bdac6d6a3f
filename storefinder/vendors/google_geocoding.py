"""Client utilities for the Google Geocoding API."""

import logging
from typing import Any, Dict, List, Optional

import requests

from storefinder.core.errors import GeocodeServiceError
from storefinder.core.geo import Coordinate

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


def _unexpected(payload: Any) -> GeocodeServiceError:
    logger.error("Geocoding API returned unexpected payload: %s", str(payload)[:200])
    return GeocodeServiceError("Geocoding API returned an unexpected payload")


def _request(params: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        response = _SESSION.get(_BASE_URL, params=params, timeout=10)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        logger.error("Geocoding request failed: %s", exc)
        raise GeocodeServiceError(f"Geocoding request failed: {exc}") from exc
    except ValueError as exc:
        logger.error("Geocoding API returned invalid JSON")
        raise GeocodeServiceError("Geocoding API returned invalid JSON") from exc

    if not isinstance(payload, dict):
        raise _unexpected(payload)
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("geocode failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GeocodeServiceError(payload.get("error_message") or str(status))

    results = payload.get("results") or []
    if not isinstance(results, list) or not all(isinstance(result, dict) for result in results):
        raise _unexpected(payload)
    return results


def geocode(address: str, api_key: str) -> List[Dict[str, Any]]:
    return _request({"address": address, "key": api_key})


def reverse_geocode(lat: float, lng: float, api_key: str) -> List[Dict[str, Any]]:
    return _request({"latlng": f"{lat},{lng}", "key": api_key})


class GoogleGeocoder:
    """Forward and reverse geocoding backed by the Google Geocoding API."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    def forward(self, address: str) -> Optional[Coordinate]:
        results = geocode(address, self.api_key)
        if not results:
            return None
        geometry = results[0].get("geometry")
        location = geometry.get("location") if isinstance(geometry, dict) else None
        if not isinstance(location, dict):
            raise _unexpected(results[0])
        return Coordinate.from_mapping(location)

    def reverse(self, coordinate: Coordinate) -> Optional[str]:
        results = reverse_geocode(coordinate.lat, coordinate.lng, self.api_key)
        if not results:
            return None
        label = results[0].get("formatted_address")
        return label if isinstance(label, str) and label else None

"""Client utilities for the OpenStreetMap Nominatim geocoder."""

import logging
from typing import Any, Dict, List, Optional

import requests

from storefinder.core.errors import GeocodeServiceError
from storefinder.core.geo import Coordinate

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_DEFAULT_URL = "https://nominatim.openstreetmap.org"


def _get(url: str, params: Dict[str, Any], user_agent: str) -> Any:
    try:
        response = _SESSION.get(url, params=params, headers={"User-Agent": user_agent}, timeout=10)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as exc:
        logger.error("Nominatim request failed: url=%s error=%s", url, exc)
        raise GeocodeServiceError(f"Nominatim request failed: {exc}") from exc
    except ValueError as exc:
        logger.error("Nominatim returned invalid JSON: url=%s", url)
        raise GeocodeServiceError("Nominatim returned invalid JSON") from exc


def search(query: str, user_agent: str, base_url: str = _DEFAULT_URL) -> List[Dict[str, Any]]:
    params = {"q": query, "format": "json", "limit": 1, "addressdetails": 1}
    payload = _get(f"{base_url}/search", params, user_agent)
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        logger.error("Nominatim search returned unexpected payload: %s", str(payload)[:200])
        raise GeocodeServiceError("Nominatim search returned an unexpected payload")
    return payload


def reverse(lat: float, lng: float, user_agent: str, base_url: str = _DEFAULT_URL) -> Dict[str, Any]:
    params = {"lat": lat, "lon": lng, "format": "json"}
    payload = _get(f"{base_url}/reverse", params, user_agent)
    if not isinstance(payload, dict):
        logger.error("Nominatim reverse returned unexpected payload: %s", str(payload)[:200])
        raise GeocodeServiceError("Nominatim reverse returned an unexpected payload")
    return payload


class NominatimGeocoder:
    """Forward and reverse geocoding backed by a Nominatim instance."""

    def __init__(self, user_agent: str, base_url: str = _DEFAULT_URL) -> None:
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")

    def forward(self, address: str) -> Optional[Coordinate]:
        results = search(address, self.user_agent, self.base_url)
        if not results:
            return None
        return Coordinate.from_mapping(results[0])

    def reverse(self, coordinate: Coordinate) -> Optional[str]:
        payload = reverse(coordinate.lat, coordinate.lng, self.user_agent, self.base_url)
        if payload.get("error"):
            logger.debug("Nominatim reverse had no match for %s: %s", coordinate.label(), payload["error"])
            return None
        label = payload.get("display_name")
        return label if isinstance(label, str) and label else None

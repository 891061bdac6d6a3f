"""Approximate caller position from the public IP address (ip-api.com style)."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_DEFAULT_URL = "http://ip-api.com/json"


class IpLocationError(RuntimeError):
    """Raised when the IP geolocation service cannot produce a position."""


def lookup(ip_address: Optional[str] = None, base_url: str = _DEFAULT_URL, timeout: float = 10) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}/{ip_address}" if ip_address else base_url
    try:
        response = _SESSION.get(url, params={"fields": "status,message,lat,lon,city,country"}, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        logger.error("IP lookup request failed: url=%s error=%s", url, exc)
        raise IpLocationError(f"IP lookup request failed: {exc}") from exc
    except ValueError as exc:
        logger.error("IP lookup returned invalid JSON: url=%s", url)
        raise IpLocationError("IP lookup returned invalid JSON") from exc

    if not isinstance(payload, dict):
        logger.error("IP lookup returned unexpected payload: %s", str(payload)[:200])
        raise IpLocationError("IP lookup returned an unexpected payload")
    if payload.get("status") != "success":
        logger.error("IP lookup failed: status=%s, message=%s", payload.get("status"), payload.get("message"))
        raise IpLocationError(payload.get("message") or "IP lookup failed")
    return payload

"""Resolve "where the caller is" from a device capability or a free-text address."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Optional, Protocol

from storefinder.core.config import Settings
from storefinder.core.errors import (
    GeocodeNotFound,
    GeocodeServiceError,
    InvalidArgument,
    InvalidCoordinate,
    LocationUnavailable,
    StorefinderError,
)
from storefinder.core.geo import Coordinate
from storefinder.vendors import ip_location
from storefinder.vendors.google_geocoding import GoogleGeocoder
from storefinder.vendors.nominatim import NominatimGeocoder

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_TIMEOUT_SECONDS = 15.0
DEFAULT_GEOCODE_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0


class Geocoder(Protocol):
    def forward(self, address: str) -> Optional[Coordinate]:
        ...

    def reverse(self, coordinate: Coordinate) -> Optional[str]:
        ...


class LocationCapability(Protocol):
    async def current_position(self) -> Coordinate:
        ...


class FixedLocationCapability:
    """Capability that answers with a position the caller already holds."""

    def __init__(self, coordinate: Coordinate) -> None:
        self.coordinate = coordinate

    async def current_position(self) -> Coordinate:
        return self.coordinate


class IpLocationCapability:
    """Approximates the caller's position from their public IP address.

    Disabled unless ``allowed`` is true; a disabled capability behaves like a
    denied permission prompt.
    """

    def __init__(self, base_url: str, allowed: bool = False, ip_address: Optional[str] = None) -> None:
        self.base_url = base_url
        self.allowed = allowed
        self.ip_address = ip_address

    async def current_position(self) -> Coordinate:
        if not self.allowed:
            raise PermissionError("IP based location is disabled (ALLOW_IP_LOCATION)")
        payload = await asyncio.to_thread(ip_location.lookup, self.ip_address, self.base_url)
        return Coordinate.from_mapping(payload)


def normalize_address(address: Optional[str]) -> str:
    """Trim and collapse whitespace; empty input is rejected."""
    if address is None:
        raise InvalidArgument("address must be provided")
    normalized = " ".join(str(address).split())
    if not normalized:
        raise InvalidArgument("address must not be empty")
    return normalized


def build_geocoder(settings: Settings) -> Geocoder:
    if settings.geocoder_provider == "google":
        return GoogleGeocoder(settings.google_api_key)
    return NominatimGeocoder(settings.nominatim_user_agent, settings.nominatim_url)


class LocationResolver:
    """Produces coordinates for the caller from injected collaborators."""

    def __init__(
        self,
        geocoder: Optional[Geocoder] = None,
        capability: Optional[LocationCapability] = None,
        device_timeout: float = DEFAULT_DEVICE_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_GEOCODE_ATTEMPTS,
    ) -> None:
        if device_timeout <= 0:
            raise InvalidArgument("device_timeout must be positive")
        if max_attempts < 1:
            raise InvalidArgument("max_attempts must be at least 1")
        self.geocoder = geocoder
        self.capability = capability
        self.device_timeout = device_timeout
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings, capability: Optional[LocationCapability] = None) -> "LocationResolver":
        return cls(
            geocoder=build_geocoder(settings),
            capability=capability,
            device_timeout=settings.device_timeout_seconds,
            max_attempts=settings.geocode_max_attempts,
        )

    async def resolve_from_device(self) -> Coordinate:
        """Wait for the device capability, bounded by ``device_timeout``.

        Cancelling the awaiting task cancels the pending capability call.
        """
        if self.capability is None:
            raise LocationUnavailable("Location is not supported here. Search by address instead.")
        try:
            position = await asyncio.wait_for(self.capability.current_position(), timeout=self.device_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Device location timed out after %.1fs", self.device_timeout)
            raise LocationUnavailable("Timed out waiting for your location. Please retry.") from exc
        except PermissionError as exc:
            logger.info("Device location denied: %s", exc)
            raise LocationUnavailable("Location permission denied. Enable location access and retry.") from exc
        except LocationUnavailable:
            raise
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("Device location failed: %s", exc)
            raise LocationUnavailable("Could not determine your location. Please retry.") from exc

        if not isinstance(position, Coordinate):
            raise LocationUnavailable("Location capability returned no position.")
        return position

    def resolve_from_address(self, address: str) -> Coordinate:
        """Forward-geocode ``address``, retrying transient provider failures."""
        query = normalize_address(address)
        if self.geocoder is None:
            raise GeocodeServiceError("No geocoder configured")

        attempt = 0
        while True:
            attempt += 1
            try:
                coordinate = self.geocoder.forward(query)
                break
            except InvalidCoordinate as exc:
                logger.error("Geocoder returned an invalid position for %r: %s", query, exc)
                raise GeocodeServiceError(f"Geocoder returned an invalid position: {exc}") from exc
            except GeocodeServiceError as exc:
                logger.warning("Geocode failed (attempt %s/%s): %s", attempt, self.max_attempts, exc)
                if attempt >= self.max_attempts:
                    logger.error("Geocode exhausted retries for address=%r", query)
                    raise
                time.sleep(RETRY_DELAY_SECONDS * 2 ** (attempt - 1) + random.uniform(0, 0.5))

        if coordinate is None:
            raise GeocodeNotFound(f"No location found for {query!r}")
        logger.info("Geocoded %r to %s", query, coordinate.label())
        return coordinate

    def describe_coordinate(self, coordinate: Coordinate) -> str:
        """Best-effort address for ``coordinate``; falls back to ``"lat, lng"``."""
        if self.geocoder is None:
            return coordinate.label()
        try:
            label = self.geocoder.reverse(coordinate)
        except StorefinderError as exc:
            logger.warning("Reverse geocode failed for %s: %s", coordinate.label(), exc)
            return coordinate.label()
        return label or coordinate.label()

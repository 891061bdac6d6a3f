"""Application configuration helpers."""

import logging
import math
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

GEOCODER_PROVIDERS = ("nominatim", "google")


@dataclass(frozen=True)
class Settings:
    database_url: str
    geocoder_provider: str = "nominatim"
    google_api_key: str = ""
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = "storefinder/0.1"
    ip_location_url: str = "http://ip-api.com/json"
    allow_ip_location: bool = False
    default_radius_km: float = 5.0
    max_radius_km: float = 50.0
    device_timeout_seconds: float = 15.0
    geocode_max_attempts: int = 3
    product_batch_size: int = 10
    server_port: int = 9000


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("%s=%r is not a valid number; using %s", name, raw, default)
        return default
    if not math.isfinite(value):
        logger.warning("%s must be a finite number, got %r; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive, got %s; using %s", name, value, default)
        return default
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    geocoder_provider = os.getenv("GEOCODER_PROVIDER", "nominatim").strip().lower()
    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    nominatim_url = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org").rstrip("/")
    nominatim_user_agent = os.getenv("NOMINATIM_USER_AGENT", "storefinder/0.1")
    ip_location_url = os.getenv("IP_LOCATION_URL", "http://ip-api.com/json")
    allow_ip_location = os.getenv("ALLOW_IP_LOCATION", "false").lower() in {"1", "true", "yes"}

    if geocoder_provider not in GEOCODER_PROVIDERS:
        logger.warning("Unknown GEOCODER_PROVIDER=%s; falling back to nominatim.", geocoder_provider)
        geocoder_provider = "nominatim"
    if not database_url:
        logger.warning("DATABASE_URL is not set; catalog queries will return no stores.")
    if geocoder_provider == "google" and not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google geocoding requests will fail.")

    default_radius_km = _env_number("DEFAULT_RADIUS_KM", 5.0, float)
    max_radius_km = _env_number("MAX_RADIUS_KM", 50.0, float)
    if default_radius_km > max_radius_km:
        logger.warning("DEFAULT_RADIUS_KM exceeds MAX_RADIUS_KM; clamping to %s", max_radius_km)
        default_radius_km = max_radius_km

    return Settings(
        database_url=database_url,
        geocoder_provider=geocoder_provider,
        google_api_key=google_api_key,
        nominatim_url=nominatim_url,
        nominatim_user_agent=nominatim_user_agent,
        ip_location_url=ip_location_url,
        allow_ip_location=allow_ip_location,
        default_radius_km=default_radius_km,
        max_radius_km=max_radius_km,
        device_timeout_seconds=_env_number("DEVICE_TIMEOUT_SECONDS", 15.0, float),
        geocode_max_attempts=_env_number("GEOCODE_MAX_ATTEMPTS", 3, int),
        product_batch_size=_env_number("PRODUCT_BATCH_SIZE", 10, int),
        server_port=_env_number("SERVER_PORT", 9000, int),
    )

"""Location detection using IP geolocation and manual config."""

import json
import logging
import os

import requests

from solat import config

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = {
    "city": "Kuala Lumpur",
    "region": "Kuala Lumpur",
    "country": "MY",
    "lat": 3.139,
    "lon": 101.6869,
    "timezone": "Asia/Kuala_Lumpur",
}

REQUIRED_KEYS = ("city", "region", "country", "lat", "lon", "timezone")

IPAPI_URL = "http://ip-api.com/json/"

LOCATION_FILE = "location.json"


class LocationError(Exception):
    """Geolocation was unavailable or refused."""


def _location_file() -> str:
    return os.path.join(config.CONFIG_DIR, LOCATION_FILE)


def get_location(timeout: int = 5) -> dict:
    """
    Detect current location via IP geolocation.

    Returns a dict with: city, region, country, lat, lon, timezone.
    Raises LocationError on failure; the caller picks the fallback.
    """
    try:
        resp = requests.get(
            IPAPI_URL,
            params={"fields": "city,regionName,country,lat,lon,timezone,status,message"},
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise LocationError(f"IP geolocation failed: {exc}") from exc

    if data.get("status") != "success":
        raise LocationError(f"IP geolocation refused: {data.get('message', 'unknown error')}")
    try:
        return {
            "city": data.get("city", DEFAULT_LOCATION["city"]),
            "region": data.get("regionName", DEFAULT_LOCATION["region"]),
            "country": data.get("country", DEFAULT_LOCATION["country"]),
            "lat": float(data["lat"]),
            "lon": float(data["lon"]),
            "timezone": data.get("timezone", DEFAULT_LOCATION["timezone"]),
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise LocationError(f"IP geolocation returned no coordinates: {exc}") from exc


def is_complete(location) -> bool:
    return isinstance(location, dict) and all(k in location for k in REQUIRED_KEYS)


def location_label(location: dict) -> str:
    """Display string such as 'Jakarta, Jakarta, ID'."""
    parts = [location.get(k) for k in ("city", "region", "country")]
    return ", ".join(str(p) for p in parts if p) or "Your location"


def save_manual_location(location: dict) -> None:
    """Save a manually-set location to the config file."""
    os.makedirs(config.CONFIG_DIR, exist_ok=True)
    with open(_location_file(), "w", encoding="utf-8") as f:
        json.dump(location, f, indent=2)


def load_manual_location() -> dict | None:
    """Load a previously saved manual location, or return None."""
    path = _location_file()
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable manual location %s: %s", path, exc)
        return None
    if is_complete(data):
        return data
    logger.warning("Ignoring incomplete manual location in %s", path)
    return None


def clear_manual_location() -> None:
    """Remove the saved manual location config."""
    path = _location_file()
    if os.path.isfile(path):
        os.remove(path)

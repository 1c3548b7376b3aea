"""Last-known-good timings and location, used when the provider is unreachable."""

import json
import logging
import os

from solat import config
from solat.location import is_complete

logger = logging.getLogger(__name__)


def save_cached_schedule(timings: dict, location: dict, path: str = None) -> None:
    path = path or config.timings_cache_path()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump({"timings": timings, "location": location}, f, indent=2)
    os.replace(tmp, path)


def load_cached_schedule(path: str = None) -> tuple:
    """Return (timings, location); either is None when nothing usable was cached."""
    path = path or config.timings_cache_path()
    if not os.path.isfile(path):
        return None, None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable timings cache %s: %s", path, exc)
        return None, None
    if not isinstance(data, dict):
        return None, None
    timings = data.get("timings")
    location = data.get("location")
    return (
        timings if isinstance(timings, dict) and timings else None,
        location if is_complete(location) else None,
    )

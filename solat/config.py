"""User settings and on-disk locations."""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".solat")
SETTINGS_FILE = os.path.join(CONFIG_DIR, "settings.json")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class Settings:
    heartbeat_seconds: float = 30.0
    tolerance_ms: int = 60000
    midnight_grace_seconds: float = 5.0
    display_refresh_ms: int = 1000
    # 2 = ISNA, 3 = MWL, 4 = Mecca, 5 = Karachi, 11 = Egypt
    calc_method: int = 2
    cache_name: str = "solat-cache-v2"
    asset_origin: str = ""
    notifications_enabled: bool = True
    muted: bool = False
    volume: float = 0.5
    # local adhan recording, used when no asset origin is configured
    adhan_file: str = ""
    log_level: str = "INFO"


def _coerce(name: str, value, default):
    """Return value converted to the type of default, or default if it doesn't fit."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, (int, float)):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return type(default)(value)
    elif isinstance(value, type(default)):
        return value
    logger.warning("Ignoring setting %s=%r: expected %s", name, value, type(default).__name__)
    return default


def load_settings(path: str = None) -> Settings:
    """
    Load settings from JSON, falling back to defaults.

    A missing file is normal. An unreadable file, a non-object document,
    unknown keys and mistyped values are logged and replaced by defaults.
    """
    path = path or SETTINGS_FILE
    defaults = Settings()
    if not os.path.isfile(path):
        return defaults
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read settings %s (%s); using defaults", path, exc)
        return defaults
    if not isinstance(data, dict):
        logger.warning("Settings file %s is not a JSON object; using defaults", path)
        return defaults

    known = {f.name for f in fields(Settings)}
    for key in sorted(set(data) - known):
        logger.warning("Unknown setting %r in %s", key, path)

    values = {}
    for key in known & set(data):
        values[key] = _coerce(key, data[key], getattr(defaults, key))
    settings = Settings(**values)
    settings.volume = min(1.0, max(0.0, settings.volume))
    if settings.heartbeat_seconds <= 0:
        logger.warning("heartbeat_seconds must be positive; using %s", defaults.heartbeat_seconds)
        settings.heartbeat_seconds = defaults.heartbeat_seconds
    if settings.tolerance_ms < 0:
        logger.warning("tolerance_ms must not be negative; using %s", defaults.tolerance_ms)
        settings.tolerance_ms = defaults.tolerance_ms
    return settings


def save_settings(settings: Settings, path: str = None) -> None:
    path = path or SETTINGS_FILE
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(settings), f, indent=2)


def alarms_path() -> str:
    """File backing the persisted alarm set."""
    return os.path.join(CONFIG_DIR, "alarms.json")


def timings_cache_path() -> str:
    return os.path.join(CONFIG_DIR, "timings_cache.json")


def cache_root() -> str:
    """Directory holding versioned asset caches."""
    return os.path.join(CONFIG_DIR, "caches")

"""Durable storage for the background alarm set."""

import json
import logging
import os

logger = logging.getLogger(__name__)

# Single well-known key; the whole alarm set is one record.
RECORD_KEY = "prayers"
# Alarms already delivered today, kept beside the set so a restart remembers them.
FIRED_KEY = "fired"


class StoreError(Exception):
    """Raised when the alarm set could not be written."""


def _timestamps(record: dict) -> dict:
    entries = {}
    for name, when in record.items():
        if isinstance(when, (int, float)) and not isinstance(when, bool):
            entries[str(name)] = int(when)
        else:
            logger.warning("Dropping stored alarm %r with bad timestamp %r", name, when)
    return entries


class ScheduleStore:
    """
    One JSON file holding {RECORD_KEY: {prayer_name: epoch_ms}}.

    Writes go to a temp file that is then renamed over the old one, so a
    load() only ever sees a complete record. Last writer wins.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self):
        if not os.path.isfile(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read alarm store %s (%s); starting empty", self.path, exc)
            return None

    def load(self) -> dict:
        """Return the persisted alarm set, or {} when nothing usable is stored."""
        data = self._read()
        if data is None:
            return {}
        record = data.get(RECORD_KEY) if isinstance(data, dict) else None
        if not isinstance(record, dict):
            logger.warning("Alarm store %s has no %r record; starting empty", self.path, RECORD_KEY)
            return {}
        return _timestamps(record)

    def load_fired(self) -> dict:
        """Return the fired-alarm ledger, or {} when none is stored."""
        data = self._read()
        record = data.get(FIRED_KEY) if isinstance(data, dict) else None
        if not isinstance(record, dict):
            return {}
        return _timestamps(record)

    def save(self, alarms: dict, fired: dict = None) -> None:
        """Overwrite the stored record with alarms. Raises StoreError on I/O failure."""
        data = {RECORD_KEY: {name: int(when) for name, when in alarms.items()}}
        if fired:
            data[FIRED_KEY] = {name: int(when) for name, when in fired.items()}
        tmp = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreError(f"Could not write alarm store {self.path}: {exc}") from exc

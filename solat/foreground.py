"""Foreground side: work out today's schedule and hand it to the background."""

import datetime
import logging
import threading
from dataclasses import dataclass, field

import pytz
import requests

from solat import channel as messages
from solat.clock import SystemClock
from solat.config import Settings
from solat.location import (
    DEFAULT_LOCATION,
    LocationError,
    get_location,
    load_manual_location,
    location_label,
)
from solat.prayer_api import (
    ScheduleError,
    build_alarms,
    countdown_parts,
    fetch_prayer_times,
    next_occurrence,
    validate_schedule,
)
from solat.timings_cache import load_cached_schedule, save_cached_schedule

logger = logging.getLogger(__name__)

STATUS_LIVE = "live"
STATUS_CACHED = "showing cached times"
STATUS_UNAVAILABLE = "prayer times unavailable"


@dataclass
class ScheduleState:
    timings: dict = field(default_factory=dict)
    location: dict = field(default_factory=dict)
    label: str = ""
    degraded: bool = False
    status: str = STATUS_UNAVAILABLE
    hijri: dict = field(default_factory=dict)
    tz: object = None


def _zone(name: str):
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown time zone %r; using UTC", name)
        return pytz.utc


class ScheduleController:
    """
    One per open view.

    refresh() resolves a location, gets today's timings (falling back to the
    last cached ones), and pushes them to the background context. A
    REFRESH_SCHEDULE from the background triggers on_refresh_requested,
    which by default reruns refresh() on a worker thread.
    """

    def __init__(self, channel, settings: Settings = None, clock_factory=SystemClock, on_update=None, on_refresh_requested=None):
        self.settings = settings or Settings()
        self.clock_factory = clock_factory
        self.on_update = on_update
        self.on_refresh_requested = on_refresh_requested or self.refresh_in_background
        self.state = ScheduleState()
        self.port = channel.connect(self._on_message)

    def close(self) -> None:
        self.port.close()

    def _on_message(self, message: dict) -> None:
        if message.get("kind") == messages.REFRESH_SCHEDULE:
            self.on_refresh_requested()

    def refresh_in_background(self) -> threading.Thread:
        t = threading.Thread(target=self._refresh_logged, daemon=True)
        t.start()
        return t

    def _refresh_logged(self) -> None:
        try:
            self.refresh()
        except Exception:
            logger.exception("Schedule refresh failed")

    def resolve_location(self) -> tuple:
        """Return (location, degraded): manual, then IP lookup, then cached, then the built-in default."""
        manual = load_manual_location()
        if manual:
            return manual, False
        try:
            return get_location(), False
        except LocationError as exc:
            logger.warning("%s; using cached location", exc)
        _, cached = load_cached_schedule()
        if cached:
            return cached, True
        return dict(DEFAULT_LOCATION), True

    def refresh(self) -> ScheduleState:
        location, degraded = self.resolve_location()
        tz = _zone(location.get("timezone", "UTC"))
        now = self.clock_factory(tz).now()
        hijri = {}
        try:
            result = fetch_prayer_times(location["lat"], location["lon"], now.date(), self.settings.calc_method)
            timings = result["timings"]
            hijri = result["hijri"]
            validate_schedule(timings)
        except (requests.RequestException, ValueError, KeyError) as exc:
            logger.warning("Prayer time provider failed (%s); using cached times", exc)
            timings, cached_location = load_cached_schedule()
            if cached_location and degraded:
                location = cached_location
            degraded = True
        else:
            try:
                save_cached_schedule(timings, location)
            except OSError as exc:
                logger.warning("Could not cache timings: %s", exc)

        state = ScheduleState(
            timings=timings or {},
            location=location,
            label=location_label(location),
            degraded=degraded,
            status=STATUS_CACHED if degraded else STATUS_LIVE,
            hijri=hijri,
            tz=tz,
        )
        try:
            self.push(state.timings, now)
        except ScheduleError as exc:
            # the view keeps showing what it has; a later refresh must fetch complete data
            logger.warning("Not scheduling alarms: %s", exc)
            state.status = STATUS_UNAVAILABLE
        self.state = state
        if self.on_update:
            self.on_update(state)
        return state

    def push(self, timings: dict, now: datetime.datetime) -> list:
        """Send today's alarms to the background. Raises ScheduleError for an incomplete schedule."""
        alarms = build_alarms(timings, now)
        self.port.post(messages.set_alarms_message(alarms))
        logger.info("Pushed %d alarms for %s", len(alarms), now.date().isoformat())
        return alarms

    def now(self) -> datetime.datetime:
        """Current time in the schedule's zone; UTC until a schedule is known."""
        return self.clock_factory(self.state.tz or pytz.utc).now()

    def next_prayer(self, now: datetime.datetime = None):
        """
        (name, Countdown) for the next prayer of the current schedule.

        Returns None before any timings are known. Raises ScheduleError
        when the timings are incomplete.
        """
        if not self.state.timings:
            return None
        if now is None:
            now = self.now()
        name, when = next_occurrence(self.state.timings, now)
        return name, countdown_parts(when, now)

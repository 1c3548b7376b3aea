"""Fetch prayer times from the Aladhan API and compute the next prayer."""

import datetime
from collections import namedtuple

import requests

from solat.clock import localize, to_epoch_ms

ALADHAN_BASE = "https://api.aladhan.com/v1"

PRAYER_NAMES = ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]
PRAYER_ARABIC = {
    "Fajr": "الفجر",
    "Dhuhr": "الظهر",
    "Asr": "العصر",
    "Maghrib": "المغرب",
    "Isha": "العشاء",
}

# Calculation method: 2 = ISNA (Islamic Society of North America)
# 3 = MWL, 4 = Mecca, 5 = Karachi, 11 = Egypt, 15 = Dubai, 20 = Turkey
DEFAULT_METHOD = 2

Countdown = namedtuple("Countdown", ["hours", "minutes", "seconds"])


class ScheduleError(ValueError):
    """A schedule is missing a prayer or holds a time that cannot be parsed."""


def fetch_prayer_times(lat: float, lon: float, date: datetime.date = None, method: int = DEFAULT_METHOD) -> dict:
    """
    Fetch prayer times and Hijri date for given coordinates and date.

    Returns a dict with:
        timings: {prayer_name: "HH:MM"} for the five daily prayers
        hijri: {day, month_name, month_ar, year}  Hijri date components
        gregorian: {date_str, weekday}
        timezone: IANA zone name reported by the provider (may be "")
    Raises requests.RequestException or ValueError on failure.
    """
    if date is None:
        date = datetime.date.today()
    date_str = date.strftime("%d-%m-%Y")
    url = f"{ALADHAN_BASE}/timings/{date_str}"
    params = {
        "latitude": lat,
        "longitude": lon,
        "method": method,
    }
    resp = requests.get(url, params=params, timeout=10)
    resp.raise_for_status()
    body = resp.json()
    if body.get("code") != 200:
        raise ValueError(f"Aladhan API error: {body.get('status')}")

    data = body["data"]
    raw_timings = data["timings"]

    # Strip suffixes like " (PKT)"; a prayer the provider left out stays missing
    timings = {}
    for name in PRAYER_NAMES:
        raw = raw_timings.get(name)
        if raw:
            timings[name] = raw[:5]

    hijri_data = data["date"]["hijri"]
    hijri = {
        "day": hijri_data["day"],
        "month_name": hijri_data["month"]["en"],
        "month_ar": hijri_data["month"]["ar"],
        "year": hijri_data["year"],
    }

    greg_data = data["date"]["gregorian"]
    gregorian = {
        "date_str": greg_data.get("date", date.strftime("%d-%m-%Y")),
        "weekday": greg_data.get("weekday", {}).get("en", ""),
    }

    timezone = data.get("meta", {}).get("timezone", "")

    return {"timings": timings, "hijri": hijri, "gregorian": gregorian, "timezone": timezone}


def parse_time_of_day(time_str: str) -> tuple:
    """Parse 'HH:MM' (extra trailing text ignored) into (hour, minute)."""
    try:
        hour, minute = map(int, str(time_str)[:5].split(":"))
    except ValueError:
        raise ScheduleError(f"Unparsable prayer time: {time_str!r}") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ScheduleError(f"Prayer time out of range: {time_str!r}")
    return hour, minute


def missing_prayers(timings: dict) -> list:
    return [name for name in PRAYER_NAMES if not (timings or {}).get(name)]


def validate_schedule(timings: dict) -> None:
    """Raise ScheduleError unless every prayer is present with a parsable time."""
    missing = missing_prayers(timings)
    if missing:
        raise ScheduleError(f"Schedule is missing: {', '.join(missing)}")
    for name in PRAYER_NAMES:
        parse_time_of_day(timings[name])


def time_on(time_str: str, day: datetime.date, tz=None) -> datetime.datetime:
    """Datetime for 'HH:MM' on the given day, localized to tz when given."""
    hour, minute = parse_time_of_day(time_str)
    naive = datetime.datetime.combine(day, datetime.time(hour, minute))
    return localize(tz, naive)


def next_occurrence(timings: dict, now: datetime.datetime) -> tuple:
    """
    Return (prayer_name, prayer_datetime) of the next prayer after now.

    A prayer whose time equals now has already passed. After Isha the answer
    is tomorrow's Fajr, so a complete schedule always yields a result.
    Raises ScheduleError for an incomplete schedule.
    """
    validate_schedule(timings)
    tz = now.tzinfo
    today = now.date()
    for name in PRAYER_NAMES:
        prayer_dt = time_on(timings[name], today, tz)
        if prayer_dt > now:
            return name, prayer_dt
    first = PRAYER_NAMES[0]
    return first, time_on(timings[first], today + datetime.timedelta(days=1), tz)


def countdown_parts(target: datetime.datetime, now: datetime.datetime) -> Countdown:
    """Whole hours, minutes and seconds from now until target; zeros once target has passed."""
    remaining = seconds_until(target, now)
    if remaining <= 0:
        return Countdown(0, 0, 0)
    return Countdown(remaining // 3600, (remaining % 3600) // 60, remaining % 60)


def build_alarms(timings: dict, now: datetime.datetime) -> list:
    """
    Today's prayers still ahead of now as [{name, time}] with epoch-ms times.

    A prayer at or before now is left out so a re-push later in the day
    cannot bring back an alarm the background has already fired.
    """
    validate_schedule(timings)
    today = now.date()
    alarms = []
    for name in PRAYER_NAMES:
        prayer_dt = time_on(timings[name], today, now.tzinfo)
        if prayer_dt > now:
            alarms.append({"name": name, "time": to_epoch_ms(prayer_dt)})
    return alarms


def seconds_until(target_dt: datetime.datetime, now: datetime.datetime = None) -> int:
    """Return whole seconds from now until target_dt (negative if past)."""
    if now is None:
        now = datetime.datetime.now(target_dt.tzinfo)
    delta = target_dt - now
    return int(delta.total_seconds() // 1)

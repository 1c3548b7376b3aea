"""Injectable time sources for the alarm core."""

import datetime


def localize(tzinfo, naive: datetime.datetime) -> datetime.datetime:
    """
    Attach tzinfo to a naive datetime.

    pytz zones need localize() to pick the right DST offset; plain tzinfo
    objects can simply be replaced in. None leaves the datetime naive.
    """
    if tzinfo is None:
        return naive
    if hasattr(tzinfo, "localize"):
        return tzinfo.localize(naive)
    return naive.replace(tzinfo=tzinfo)


def to_epoch_ms(dt: datetime.datetime) -> int:
    """Epoch milliseconds for dt (naive values are taken as local time)."""
    return int(round(dt.timestamp() * 1000))


class SystemClock:
    """Wall clock, optionally pinned to a pytz time zone."""

    def __init__(self, tz=None):
        self.tz = tz

    def now(self) -> datetime.datetime:
        if self.tz is not None:
            return datetime.datetime.now(self.tz)
        return datetime.datetime.now()

    def now_ms(self) -> int:
        return to_epoch_ms(self.now())


class ManualClock:
    """Clock that only moves when told to. Used to drive timers deterministically."""

    def __init__(self, start: datetime.datetime):
        self._now = start

    def now(self) -> datetime.datetime:
        return self._now

    def now_ms(self) -> int:
        return to_epoch_ms(self._now)

    def set(self, when: datetime.datetime) -> None:
        self._now = when

    def advance(self, seconds: float = 0, milliseconds: float = 0) -> datetime.datetime:
        self._now = self._now + datetime.timedelta(seconds=seconds, milliseconds=milliseconds)
        return self._now

"""Once-a-day timer that tells the views to recompute their schedule."""

import datetime
import logging
import threading

from solat.clock import localize

logger = logging.getLogger(__name__)

DEFAULT_GRACE_SECONDS = 5.0


def next_midnight(now: datetime.datetime, grace_seconds: float = DEFAULT_GRACE_SECONDS) -> datetime.datetime:
    """The next local midnight after now, plus grace_seconds."""
    tomorrow = now.date() + datetime.timedelta(days=1)
    midnight = localize(now.tzinfo, datetime.datetime.combine(tomorrow, datetime.time()))
    return midnight + datetime.timedelta(seconds=grace_seconds)


def delay_until_next_midnight(now: datetime.datetime, grace_seconds: float = DEFAULT_GRACE_SECONDS) -> float:
    """Seconds of real time until the next midnight plus grace, DST changes included."""
    # naive values are read as local time, so timestamps see the DST shift
    return max(0.0, next_midnight(now, grace_seconds).timestamp() - now.timestamp())


class MidnightRollover:
    """
    compute delay from the wall clock -> wait -> on_rollover() -> recompute.

    The delay is recomputed at every firing; a suspended or drifting timer
    therefore never accumulates error across days.
    """

    def __init__(self, clock, on_rollover, grace_seconds: float = DEFAULT_GRACE_SECONDS, timer_factory=threading.Timer):
        self.clock = clock
        self.on_rollover = on_rollover
        self.grace_seconds = grace_seconds
        self.timer_factory = timer_factory
        self._timer = None
        self._cancelled = False
        self._lock = threading.Lock()

    def start(self) -> float:
        with self._lock:
            self._cancelled = False
        return self.schedule()

    def schedule(self):
        """
        Replace any pending timer with one for the coming midnight.

        Returns the delay in seconds, or None once cancel() has been called.
        """
        delay = delay_until_next_midnight(self.clock.now(), self.grace_seconds)
        with self._lock:
            if self._cancelled:
                return None
            timer = self.timer_factory(delay, self._fire)
            timer.daemon = True
            if self._timer is not None:
                self._timer.cancel()
            self._timer = timer
            timer.start()
        logger.debug("Midnight rollover in %.0f s", delay)
        return delay

    def _fire(self) -> None:
        if self._cancelled:
            return
        logger.info("Midnight rollover")
        try:
            self.on_rollover()
        finally:
            self.schedule()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

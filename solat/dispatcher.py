"""Periodic scan that fires due prayer alarms."""

import logging

from solat.notifier import notify_prayer_time

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_MS = 60000


def due_alarms(alarms: dict, now_ms: int, tolerance_ms: int = DEFAULT_TOLERANCE_MS) -> list:
    """Names whose timestamp lies within tolerance_ms of now_ms, edges included."""
    return [name for name, when in alarms.items() if abs(now_ms - when) <= tolerance_ms]


class HeartbeatDispatcher:
    """
    Fires alarms from a shared in-memory set.

    The set is polled, so the tolerance window has to be wider than the
    polling period or an alarm can fall between two ticks. An alarm whose
    window passes while nothing is ticking is simply missed; it is never
    fired late.
    """

    def __init__(self, alarms: dict, persist, clock, tolerance_ms: int = DEFAULT_TOLERANCE_MS, deliver=None, fired: dict = None):
        self.alarms = alarms
        # name -> timestamp of every alarm delivered, shared with the owner
        self.fired = fired if fired is not None else {}
        self.persist = persist
        self.clock = clock
        self.tolerance_ms = tolerance_ms
        self.deliver = deliver or notify_prayer_time

    def tick(self) -> list:
        """Fire and remove every due alarm; persist once if anything fired. Returns fired names."""
        now_ms = self.clock.now_ms()
        fired = []
        for name in due_alarms(self.alarms, now_ms, self.tolerance_ms):
            self.fired[name] = self.alarms.pop(name)
            fired.append(name)
            logger.info("Prayer alarm %s fired", name)
            try:
                self.deliver(name)
            except Exception:
                # removed anyway: an alarm is delivered at most once
                logger.exception("Delivering %s notification failed", name)
        if fired:
            self.persist()
        return fired

"""Tests for the midnight rollover timer."""

import datetime
import os
import time
import unittest
from unittest.mock import MagicMock, patch

import pytz

from solat.clock import ManualClock
from solat.rollover import MidnightRollover, delay_until_next_midnight, next_midnight


class FakeTimer:
    """Stands in for threading.Timer; fire() runs the callback on demand."""

    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class TestNextMidnight(unittest.TestCase):
    def test_delay_includes_grace(self):
        now = pytz.utc.localize(datetime.datetime(2025, 3, 1, 23, 0))
        self.assertEqual(delay_until_next_midnight(now, 5), 3605.0)

    def test_just_after_midnight_waits_a_full_day(self):
        now = pytz.utc.localize(datetime.datetime(2025, 3, 2, 0, 0, 10))
        self.assertEqual(next_midnight(now, 5), pytz.utc.localize(datetime.datetime(2025, 3, 3, 0, 0, 5)))

    def test_dst_day_is_23_hours(self):
        tz = pytz.timezone("Europe/London")
        now = tz.localize(datetime.datetime(2025, 3, 30, 0, 0, 5))
        self.assertEqual(delay_until_next_midnight(now, 5), 23 * 3600.0)

    def test_naive_now(self):
        now = datetime.datetime(2025, 3, 1, 12, 0)
        self.assertEqual(delay_until_next_midnight(now, 0), 12 * 3600.0)

    def _use_local_zone(self, name):
        if not hasattr(time, "tzset"):
            self.skipTest("needs time.tzset")
        patcher = patch.dict(os.environ, {"TZ": name})
        patcher.start()
        self.addCleanup(time.tzset)
        self.addCleanup(patcher.stop)
        time.tzset()

    def test_naive_local_dst_day_is_23_hours(self):
        self._use_local_zone("Europe/London")
        now = datetime.datetime(2025, 3, 30, 0, 0, 5)
        self.assertEqual(delay_until_next_midnight(now, 5), 23 * 3600.0)

    def test_naive_local_fall_back_day_is_25_hours(self):
        self._use_local_zone("Europe/London")
        now = datetime.datetime(2025, 10, 26, 0, 0, 5)
        self.assertEqual(delay_until_next_midnight(now, 5), 25 * 3600.0)


class TestMidnightRollover(unittest.TestCase):
    def setUp(self):
        FakeTimer.created = []
        self.clock = ManualClock(pytz.utc.localize(datetime.datetime(2025, 3, 1, 22, 0)))
        self.on_rollover = MagicMock()
        self.rollover = MidnightRollover(self.clock, self.on_rollover, grace_seconds=5, timer_factory=FakeTimer)

    def test_start_schedules_daemon_timer(self):
        self.assertEqual(self.rollover.start(), 2 * 3600 + 5)
        timer = FakeTimer.created[-1]
        self.assertTrue(timer.started)
        self.assertTrue(timer.daemon)

    def test_fire_acts_and_reschedules_from_wall_clock(self):
        self.rollover.start()
        # the timer ran late after a suspension
        self.clock.set(pytz.utc.localize(datetime.datetime(2025, 3, 2, 0, 10, 0)))
        FakeTimer.created[-1].fire()
        self.on_rollover.assert_called_once()
        self.assertEqual(len(FakeTimer.created), 2)
        self.assertEqual(FakeTimer.created[-1].interval, 24 * 3600 - 600 + 5)

    def test_reschedule_replaces_pending_timer(self):
        self.rollover.start()
        first = FakeTimer.created[-1]
        self.rollover.schedule()
        self.assertTrue(first.cancelled)
        self.assertFalse(FakeTimer.created[-1].cancelled)

    def test_reschedules_even_when_callback_fails(self):
        self.on_rollover.side_effect = RuntimeError("boom")
        self.rollover.start()
        with self.assertRaises(RuntimeError):
            FakeTimer.created[-1].fire()
        self.assertEqual(len(FakeTimer.created), 2)

    def test_cancel(self):
        self.rollover.start()
        self.rollover.cancel()
        self.assertTrue(FakeTimer.created[-1].cancelled)

    def test_firing_after_cancel_does_not_reschedule(self):
        self.rollover.start()
        timer = FakeTimer.created[-1]
        self.rollover.cancel()
        timer.fire()
        self.assertEqual(len(FakeTimer.created), 1)
        self.assertIsNone(self.rollover._timer)
        self.on_rollover.assert_not_called()

    def test_start_after_cancel_schedules_again(self):
        self.rollover.start()
        self.rollover.cancel()
        self.assertIsNone(self.rollover.schedule())
        self.assertEqual(self.rollover.start(), 2 * 3600 + 5)
        self.assertEqual(len(FakeTimer.created), 2)


if __name__ == "__main__":
    unittest.main()

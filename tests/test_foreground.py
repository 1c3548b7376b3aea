"""Tests for the foreground schedule controller."""

import datetime
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import pytz
import requests

import solat.config as config_mod
from solat.channel import SET_ALARMS, MessageChannel, refresh_message
from solat.clock import ManualClock
from solat.foreground import STATUS_CACHED, STATUS_LIVE, STATUS_UNAVAILABLE, ScheduleController, ScheduleState
from solat.location import LocationError
from solat.prayer_api import PRAYER_NAMES, Countdown, ScheduleError
from solat.timings_cache import load_cached_schedule, save_cached_schedule

TIMINGS = {"Fajr": "05:50", "Dhuhr": "13:10", "Asr": "16:30", "Maghrib": "19:15", "Isha": "20:25"}
KL = {
    "city": "Kuala Lumpur", "region": "Kuala Lumpur", "country": "MY",
    "lat": 3.139, "lon": 101.6869, "timezone": "Asia/Kuala_Lumpur",
}
JAKARTA = {
    "city": "Jakarta", "region": "Jakarta", "country": "ID",
    "lat": -6.2, "lon": 106.8, "timezone": "Asia/Jakarta",
}
PROVIDER_RESULT = {
    "timings": TIMINGS,
    "hijri": {"day": "1", "month_name": "Ramadan", "month_ar": "", "year": "1446"},
    "gregorian": {},
    "timezone": "Asia/Kuala_Lumpur",
}


def _clock_factory(tz):
    return ManualClock(tz.localize(datetime.datetime(2025, 3, 1, 9, 0)))


class ForegroundTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self._orig_config_dir = config_mod.CONFIG_DIR
        config_mod.CONFIG_DIR = self._tmpdir
        self.channel = MessageChannel()
        self.background = MagicMock()
        self.channel.attach_background(self.background)
        self.on_update = MagicMock()
        self.controller = ScheduleController(
            self.channel,
            clock_factory=_clock_factory,
            on_update=self.on_update,
            on_refresh_requested=MagicMock(),
        )

    def tearDown(self):
        config_mod.CONFIG_DIR = self._orig_config_dir
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def pushed(self):
        return self.background.call_args[0][0]


@patch("solat.foreground.load_manual_location", return_value=None)
class TestRefresh(ForegroundTestCase):
    @patch("solat.foreground.fetch_prayer_times", return_value=PROVIDER_RESULT)
    @patch("solat.foreground.get_location", return_value=KL)
    def test_live_refresh_pushes_alarms_and_caches(self, _loc, mock_fetch, _manual):
        state = self.controller.refresh()

        self.assertEqual(state.status, STATUS_LIVE)
        self.assertFalse(state.degraded)
        self.assertEqual(state.label, "Kuala Lumpur, Kuala Lumpur, MY")
        self.assertEqual(mock_fetch.call_args[0][2], datetime.date(2025, 3, 1))
        message = self.pushed()
        self.assertEqual(message["kind"], SET_ALARMS)
        self.assertEqual([a["name"] for a in message["alarms"]], PRAYER_NAMES[1:])
        self.assertEqual(load_cached_schedule(), (TIMINGS, KL))
        self.on_update.assert_called_once_with(state)

    @patch("solat.foreground.fetch_prayer_times", side_effect=requests.ConnectionError("offline"))
    @patch("solat.foreground.get_location", return_value=KL)
    def test_provider_failure_uses_cached_times(self, _loc, _fetch, _manual):
        save_cached_schedule(TIMINGS, KL)
        with self.assertLogs("solat.foreground", level="WARNING"):
            state = self.controller.refresh()
        self.assertTrue(state.degraded)
        self.assertEqual(state.status, STATUS_CACHED)
        self.assertEqual(state.timings, TIMINGS)
        self.background.assert_called_once()

    @patch("solat.foreground.fetch_prayer_times", side_effect=requests.ConnectionError("offline"))
    @patch("solat.foreground.get_location", side_effect=LocationError("denied"))
    def test_location_denied_uses_cached_location(self, _loc, _fetch, _manual):
        save_cached_schedule(TIMINGS, JAKARTA)
        with self.assertLogs("solat.foreground", level="WARNING"):
            state = self.controller.refresh()
        self.assertEqual(state.location, JAKARTA)
        self.assertEqual(state.tz.zone, "Asia/Jakarta")
        self.assertEqual(state.status, STATUS_CACHED)

    @patch("solat.foreground.fetch_prayer_times", side_effect=requests.ConnectionError("offline"))
    @patch("solat.foreground.get_location", return_value=KL)
    def test_nothing_cached_reports_unavailable(self, _loc, _fetch, _manual):
        with self.assertLogs("solat.foreground", level="WARNING"):
            state = self.controller.refresh()
        self.assertEqual(state.status, STATUS_UNAVAILABLE)
        self.background.assert_not_called()

    @patch("solat.foreground.get_location", return_value=KL)
    def test_incomplete_provider_data_falls_back(self, _loc, _manual):
        partial = dict(PROVIDER_RESULT, timings={"Fajr": "05:50"})
        save_cached_schedule(TIMINGS, KL)
        with patch("solat.foreground.fetch_prayer_times", return_value=partial):
            with self.assertLogs("solat.foreground", level="WARNING"):
                state = self.controller.refresh()
        self.assertEqual(state.timings, TIMINGS)
        self.assertTrue(state.degraded)


class TestLocationOrder(ForegroundTestCase):
    @patch("solat.foreground.get_location")
    @patch("solat.foreground.load_manual_location", return_value=JAKARTA)
    def test_manual_location_wins(self, _manual, mock_get):
        self.assertEqual(self.controller.resolve_location(), (JAKARTA, False))
        mock_get.assert_not_called()

    @patch("solat.foreground.get_location", side_effect=LocationError("denied"))
    @patch("solat.foreground.load_manual_location", return_value=None)
    def test_default_when_nothing_cached(self, _manual, _get):
        with self.assertLogs("solat.foreground", level="WARNING"):
            location, degraded = self.controller.resolve_location()
        self.assertTrue(degraded)
        self.assertEqual(location["city"], "Kuala Lumpur")


class TestRefreshMessage(ForegroundTestCase):
    def test_refresh_message_triggers_recompute(self):
        self.channel.broadcast(refresh_message())
        self.controller.on_refresh_requested.assert_called_once()

    def test_other_views_are_asked_too(self):
        other = ScheduleController(self.channel, on_refresh_requested=MagicMock())
        self.assertEqual(self.channel.broadcast(refresh_message()), 2)
        other.on_refresh_requested.assert_called_once()
        other.close()
        self.assertEqual(self.channel.client_count(), 1)

    def test_push_uses_given_time_zone(self):
        now = pytz.timezone("Asia/Kuala_Lumpur").localize(datetime.datetime(2025, 3, 1, 9, 0))
        alarms = self.controller.push(TIMINGS, now)
        dhuhr = pytz.timezone("Asia/Kuala_Lumpur").localize(datetime.datetime(2025, 3, 1, 13, 10))
        self.assertEqual(alarms[0], {"name": "Dhuhr", "time": int(dhuhr.timestamp() * 1000)})


class TestNextPrayer(ForegroundTestCase):
    def test_countdown_follows_the_injected_clock(self):
        self.controller.state = ScheduleState(timings=TIMINGS, tz=pytz.timezone("Asia/Kuala_Lumpur"))
        self.assertEqual(self.controller.next_prayer(), ("Dhuhr", Countdown(4, 10, 0)))

    def test_now_uses_the_schedule_zone(self):
        self.controller.state = ScheduleState(timings=TIMINGS, tz=pytz.timezone("Asia/Jakarta"))
        self.assertEqual(self.controller.now().utcoffset(), datetime.timedelta(hours=7))

    def test_utc_before_any_schedule(self):
        self.assertEqual(self.controller.now().utcoffset(), datetime.timedelta(0))
        self.assertIsNone(self.controller.next_prayer())

    def test_advancing_the_clock_moves_the_countdown(self):
        tz = pytz.timezone("Asia/Kuala_Lumpur")
        clock = ManualClock(tz.localize(datetime.datetime(2025, 3, 1, 20, 20)))
        controller = ScheduleController(self.channel, clock_factory=lambda _tz: clock)
        controller.state = ScheduleState(timings=TIMINGS, tz=tz)
        self.assertEqual(controller.next_prayer(), ("Isha", Countdown(0, 5, 0)))
        clock.advance(seconds=301)
        self.assertEqual(controller.next_prayer()[0], "Fajr")
        controller.close()

    def test_incomplete_timings_raise(self):
        self.controller.state = ScheduleState(timings={"Fajr": "05:50"}, tz=pytz.utc)
        with self.assertRaises(ScheduleError):
            self.controller.next_prayer()


class TestTimingsCache(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self.path = f"{self._tmpdir}/cache.json"

    def tearDown(self):
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def test_empty_when_missing(self):
        self.assertEqual(load_cached_schedule(self.path), (None, None))

    def test_corrupt_file(self):
        with open(self.path, "w") as f:
            f.write("[")
        with self.assertLogs("solat.timings_cache", level="WARNING"):
            self.assertEqual(load_cached_schedule(self.path), (None, None))

    def test_incomplete_location_is_dropped(self):
        save_cached_schedule(TIMINGS, {"city": "X"}, self.path)
        self.assertEqual(load_cached_schedule(self.path), (TIMINGS, None))


if __name__ == "__main__":
    unittest.main()

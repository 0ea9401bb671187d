import asyncio
import datetime as dt
import unittest

from weather_fakes import FakeSettings, FakeWeatherClient, make_current, make_historical, make_location, make_weekly

from weather_sync.cache import CacheStore
from weather_sync.errors import HttpClientError
from weather_sync.fetch_coordinator import FetchCoordinator
from weather_sync.records import WeatherRecord
from weather_sync.refresh_scheduler import RefreshScheduler
from weather_sync.state import WeatherState

NOW = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


class FakeToken:
    def __init__(self, interval, fn, name):
        self.interval = interval
        self.fn = fn
        self.name = name
        self.active = True

    def cancel(self):
        self.active = False


class FakeScheduler:
    """Stands in for weather_sync.scheduling.schedule; timers never fire on their own."""

    def __init__(self):
        self.tokens = []

    def __call__(self, interval, fn, *, name=None):
        token = FakeToken(interval, fn, name)
        self.tokens.append(token)
        return token

    def active(self, name):
        return [t for t in self.tokens if t.name == name and t.active]


def _record(location, age_minutes):
    return WeatherRecord(
        current=make_current(location.latitude, location.longitude),
        weekly=make_weekly(location.latitude, location.longitude),
        historical=make_historical(location.latitude, location.longitude),
        last_updated=NOW - dt.timedelta(minutes=age_minutes),
    )


class SchedulerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.api = FakeWeatherClient()
        self.state = WeatherState()
        self.coordinator = FetchCoordinator(CacheStore(), self.api, self.state, settings=FakeSettings())
        self.timers = FakeScheduler()
        self.scheduler = RefreshScheduler(
            self.coordinator,
            self.state,
            now=lambda: NOW,
            scheduler=self.timers,
        )
        self.london = make_location()
        self.paris = make_location("Paris", 48.85, 2.35)


class TestArming(SchedulerTestCase):
    def test_no_timers_without_locations(self):
        self.scheduler.start()
        self.assertFalse(self.scheduler.auto_refresh_armed)
        self.assertFalse(self.scheduler.staleness_sweep_armed)

    def test_adding_location_arms_both_timers(self):
        self.scheduler.start()
        self.state.add_location(self.london)

        [auto] = self.timers.active("auto_refresh")
        [stale] = self.timers.active("staleness_sweep")
        self.assertEqual(auto.interval, 15 * 60)
        self.assertEqual(stale.interval, 300)

    def test_changing_interval_re_arms_auto_refresh_only(self):
        self.state.add_location(self.london)
        self.scheduler.start()
        [old_auto] = self.timers.active("auto_refresh")
        [stale] = self.timers.active("staleness_sweep")

        self.state.update_refresh_settings(refresh_interval=5)

        self.assertFalse(old_auto.active)
        [new_auto] = self.timers.active("auto_refresh")
        self.assertEqual(new_auto.interval, 5 * 60)
        self.assertTrue(stale.active)

    def test_disabling_auto_refresh_cancels_its_timer(self):
        self.state.add_location(self.london)
        self.scheduler.start()

        self.state.update_refresh_settings(auto_refresh=False)

        self.assertFalse(self.scheduler.auto_refresh_armed)
        self.assertTrue(self.scheduler.staleness_sweep_armed)

    def test_removing_last_location_cancels_timers(self):
        self.state.add_location(self.london)
        self.scheduler.start()

        self.state.remove_location(self.london.id)

        self.assertFalse(self.scheduler.auto_refresh_armed)
        self.assertFalse(self.scheduler.staleness_sweep_armed)

    def test_stop_cancels_and_unsubscribes(self):
        self.state.add_location(self.london)
        self.scheduler.start()

        [auto] = self.timers.active("auto_refresh")
        [stale] = self.timers.active("staleness_sweep")

        cancelled = self.scheduler.stop()
        self.assertEqual(cancelled, [auto, stale])
        self.assertFalse(self.scheduler.running)
        self.assertEqual(self.timers.active("auto_refresh"), [])
        self.assertEqual(self.timers.active("staleness_sweep"), [])

        created = len(self.timers.tokens)
        self.state.add_location(self.paris)
        self.assertEqual(len(self.timers.tokens), created)

    def test_from_settings_uses_configured_staleness(self):
        settings = FakeSettings(staleness_threshold_seconds=60.0, staleness_sweep_interval_seconds=30.0)
        scheduler = RefreshScheduler.from_settings(self.coordinator, self.state, settings, scheduler=self.timers)
        self.assertEqual(scheduler.staleness_threshold, dt.timedelta(seconds=60))
        self.assertEqual(scheduler.staleness_interval, 30.0)


class TestAutoRefreshTick(SchedulerTestCase):
    async def test_tick_refreshes_all_locations(self):
        self.state.add_location(self.london)
        self.state.add_location(self.paris)

        ran = await self.scheduler.run_auto_refresh_tick()

        self.assertTrue(ran)
        self.assertEqual(len(self.api.calls["current"]), 2)

    async def test_tick_skipped_when_disabled(self):
        self.state.add_location(self.london)
        self.state.update_refresh_settings(auto_refresh=False)

        self.assertFalse(await self.scheduler.run_auto_refresh_tick())
        self.assertEqual(self.api.calls["current"], [])

    async def test_tick_skipped_while_loading(self):
        self.state.add_location(self.london)
        self.api.gate = asyncio.Event()
        pending = asyncio.ensure_future(self.coordinator.fetch_weather_data(self.london))
        await asyncio.sleep(0)

        self.assertFalse(await self.scheduler.run_auto_refresh_tick())

        self.api.gate.set()
        await pending
        self.assertEqual(len(self.api.calls["current"]), 1)


class TestStalenessSweep(SchedulerTestCase):
    def test_only_records_past_threshold_are_stale(self):
        self.state.add_location(self.london)
        self.state.add_location(self.paris)
        self.state.set_weather_data(self.london.id, _record(self.london, age_minutes=5))
        self.state.set_weather_data(self.paris.id, _record(self.paris, age_minutes=11))

        self.assertEqual(self.scheduler.stale_locations(), [self.paris])

    def test_staleness_follows_record_age_at_given_time(self):
        self.state.add_location(self.london)
        record = _record(self.london, age_minutes=9.5)
        self.state.set_weather_data(self.london.id, record)

        self.assertEqual(record.age(NOW), dt.timedelta(minutes=9.5))
        self.assertEqual(self.scheduler.stale_locations(NOW), [])
        self.assertEqual(self.scheduler.stale_locations(NOW + dt.timedelta(minutes=1)), [self.london])

    def test_locations_without_records_are_not_stale(self):
        self.state.add_location(self.london)
        self.assertEqual(self.scheduler.stale_locations(), [])

    async def test_sweep_refetches_stale_locations_only(self):
        self.state.add_location(self.london)
        self.state.add_location(self.paris)
        self.state.set_weather_data(self.london.id, _record(self.london, age_minutes=5))
        self.state.set_weather_data(self.paris.id, _record(self.paris, age_minutes=11))

        refreshed = await self.scheduler.run_staleness_sweep()

        self.assertEqual(refreshed, [self.paris])
        self.assertEqual(self.api.calls["current"], [(48.85, 2.35)])

    async def test_sweep_swallows_fetch_failures(self):
        self.state.add_location(self.paris)
        self.state.set_weather_data(self.paris.id, _record(self.paris, age_minutes=30))
        self.api.errors["current"] = HttpClientError("nope", 400)

        refreshed = await self.scheduler.run_staleness_sweep()

        self.assertEqual(refreshed, [self.paris])
        self.assertEqual(len(self.state.errors), 1)


if __name__ == "__main__":
    unittest.main()

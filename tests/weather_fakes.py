"""Shared fakes for engine tests: sample records and a scripted API client."""

import asyncio
from collections import defaultdict

from weather_sync.domain import Location
from weather_sync.records import (
    CurrentWeather,
    DailyForecast,
    HistoricalData,
    MonthlyAverage,
    PrecipitationData,
    WeeklyForecast,
)

NO_PRECIP = PrecipitationData(type="none", intensity=0.0, probability=0.0, rate=0.0, total_1h=0.0, total_24h=0.0)


def make_location(name="London", lat=51.5, lon=-0.12, **kwargs):
    return Location(name=name, country="GB", latitude=lat, longitude=lon, **kwargs)


def make_current(lat, lon, temperature=12.0):
    return CurrentWeather(
        temperature=temperature,
        feels_like=11.0,
        humidity=70.0,
        wind_speed=10.0,
        wind_gust=15.0,
        precipitation=NO_PRECIP,
        cloud_cover=40.0,
        pressure=1013.0,
        uv_index=0.0,
        sunrise="2024-01-01T08:00",
        sunset="2024-01-01T16:00",
        timestamp="2024-01-01T12:00",
        weather_code=2,
    )


def make_weekly(lat, lon):
    day = DailyForecast(
        date="2024-01-01",
        temp_min=5.0,
        temp_max=12.0,
        precipitation=NO_PRECIP,
        humidity=0.0,
        wind_speed=10.0,
        wind_gust=15.0,
        weather_code=2,
        uv_index_max=1.0,
        sunrise="2024-01-01T08:00",
        sunset="2024-01-01T16:00",
    )
    return WeeklyForecast(daily=[day], location=f"{lat}, {lon}", timezone="Europe/London")


def make_historical(lat, lon):
    month = MonthlyAverage(
        month="2023-12",
        year=2023,
        temp_min=3.0,
        temp_max=9.0,
        temp_mean=6.0,
        precipitation_total=60.0,
        precipitation_days=12,
        humidity=0.0,
        wind_speed=14.0,
    )
    return HistoricalData(monthly=[month], location=f"{lat}, {lon}", start_date="2023-12-01", end_date="2023-12-31")


class FakeWeatherClient:
    """Records calls per endpoint; `errors[endpoint]` is raised when set,
    and `failing_coords[(lat, lon)]` fails current/weekly for one place.

    When `gate` is set, current/weekly calls block until it is released so
    tests can observe in-flight state.
    """

    def __init__(self):
        self.calls = defaultdict(list)
        self.errors = {}
        self.failing_coords = {}
        self.gate = None
        self.search_results = []

    async def _maybe_wait(self):
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

    def _maybe_raise(self, endpoint, lat=None, lon=None):
        error = self.errors.get(endpoint) or self.failing_coords.get((lat, lon))
        if error is not None:
            raise error

    async def get_current_weather(self, lat, lon):
        self.calls["current"].append((lat, lon))
        await self._maybe_wait()
        self._maybe_raise("current", lat, lon)
        return make_current(lat, lon)

    async def get_weekly_forecast(self, lat, lon):
        self.calls["weekly"].append((lat, lon))
        await self._maybe_wait()
        self._maybe_raise("weekly", lat, lon)
        return make_weekly(lat, lon)

    async def get_historical_data(self, lat, lon, months):
        self.calls["historical"].append((lat, lon, months))
        self._maybe_raise("historical")
        return make_historical(lat, lon)

    async def search_locations(self, query):
        self.calls["search"].append(query)
        self._maybe_raise("search")
        return list(self.search_results)


class FakeSettings:
    """Attribute bag mirroring weather_sync.config.Settings with test-friendly values."""

    def __init__(self, **overrides):
        self.retry_max_retries = 0
        self.retry_base_delay_seconds = 0.0
        self.retry_max_delay_seconds = 0.0
        self.retry_backoff_factor = 2.0
        self.retry_max_jitter_seconds = 0.0
        self.breaker_failure_threshold = 5
        self.breaker_reset_timeout_seconds = 60.0
        self.breaker_monitoring_period_seconds = 10.0
        self.historical_months = 24
        self.staleness_threshold_seconds = 600.0
        self.staleness_sweep_interval_seconds = 300.0
        for key, value in overrides.items():
            setattr(self, key, value)

"""Interface the engine expects from a weather/geocoding provider."""

from __future__ import annotations

from typing import List, Protocol

from weather_sync.domain import Location
from weather_sync.records import CurrentWeather, HistoricalData, WeeklyForecast


class WeatherAPIClient(Protocol):
    """Anything that can serve current, weekly, historical and search data.

    Failures are raised as weather_sync.errors.WeatherApiError subclasses;
    a missing `status` means the request never got a response.
    """

    async def get_current_weather(self, lat: float, lon: float) -> CurrentWeather:
        """Return the latest observation."""
        ...

    async def get_weekly_forecast(self, lat: float, lon: float) -> WeeklyForecast:
        """Return the daily forecast."""
        ...

    async def get_historical_data(self, lat: float, lon: float, months: int) -> HistoricalData:
        """Return monthly aggregates covering the last `months` months."""
        ...

    async def search_locations(self, query: str) -> List[Location]:
        """Return geocoding matches for a free-text query."""
        ...

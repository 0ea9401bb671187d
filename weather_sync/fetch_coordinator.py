"""Cache-aware, deduplicated fetching of per-location weather records.

For each location the coordinator answers from cache when `current` and
`weekly` are both fresh. Otherwise it fetches them in parallel, each through
retry + circuit breaker, then fetches `historical` on a best-effort basis.
At most one fetch per location id is outstanding at any time; callers that
arrive while one is running await the same shared task.
"""
from __future__ import annotations

import asyncio
import datetime as dt
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from weather_sync import config
from weather_sync.cache import CacheKeys, CacheStore, CacheTTL, InvalidationPatterns
from weather_sync.data_sources.base import WeatherAPIClient
from weather_sync.domain import Location
from weather_sync.errors import CacheError, LocationNotFoundError, WeatherApiError
from weather_sync.records import HistoricalData, WeatherRecord
from weather_sync.resilience import CircuitBreaker, RetryConfig, RetryExecutor
from weather_sync.state import WeatherState
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="fetch_coordinator")

T = TypeVar("T")

ENDPOINTS = ("current", "weekly", "historical", "search")


def _consume_outcome(task: asyncio.Future) -> None:
    # Every joiner may have been cancelled; mark the exception as retrieved.
    if not task.cancelled():
        task.exception()


class FetchCoordinator:
    """Produces WeatherRecords for tracked locations and keeps the cache warm."""

    def __init__(
        self,
        cache: CacheStore,
        api_client: WeatherAPIClient,
        state: WeatherState,
        *,
        retry_executor: Optional[RetryExecutor] = None,
        retry_config: Optional[RetryConfig] = None,
        breakers: Optional[Dict[str, CircuitBreaker]] = None,
        settings: Optional[config.Settings] = None,
    ) -> None:
        settings = settings or config.settings
        self.cache = cache
        self.api = api_client
        self.state = state
        self.retry = retry_executor or RetryExecutor(RetryConfig.from_settings(settings))
        self.retry_config = retry_config
        self.breakers = breakers or {name: CircuitBreaker.from_settings(name, settings) for name in ENDPOINTS}
        self.historical_months = settings.historical_months
        self._in_flight: Dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_location_data_loading(self, location_id: str) -> bool:
        return location_id in self._in_flight

    @property
    def is_loading(self) -> bool:
        """True while any location has a fetch outstanding."""
        return bool(self._in_flight)

    async def drain(self) -> None:
        """Wait for every outstanding fetch to settle; outcomes are not raised."""
        pending = list(self._in_flight.values())
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight fetches")
            await asyncio.gather(*pending, return_exceptions=True)

    def get_location_weather_data(self, location_id: str) -> Optional[WeatherRecord]:
        return self.state.get_weather_data(location_id)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch_weather_data(self, location: Location) -> WeatherRecord:
        """Return a record for `location`, touching the network only when needed."""
        pending = self._in_flight.get(location.id)
        if pending is not None:
            logger.debug("Joining in-flight fetch", extra={"location_id": location.id})
            return await asyncio.shield(pending)

        cached = self._cached_record(location)
        if cached is not None:
            logger.debug("Serving weather from cache", extra={"location_id": location.id})
            self.state.set_weather_data(location.id, cached)
            return cached

        task = asyncio.ensure_future(self._fetch_and_store(location))
        task.add_done_callback(_consume_outcome)
        self._in_flight[location.id] = task
        return await asyncio.shield(task)

    async def refresh_weather_data(self, location_id: str) -> None:
        """Drop cached data for one location and fetch it again."""
        location = self.state.get_location(location_id)
        if location is None:
            raise LocationNotFoundError(location_id)
        self._invalidate(InvalidationPatterns.location_data(location.latitude, location.longitude))
        await self.fetch_weather_data(location)

    async def refresh_all_weather_data(self) -> None:
        """Expire all current-weather entries and refetch every location.

        A failing location is logged and does not affect the others.
        """
        locations = self.state.locations
        if not locations:
            return
        self._invalidate(InvalidationPatterns.ALL_CURRENT_WEATHER)
        await self._fetch_each(locations, reason="refresh")

    async def fetch_missing_weather_data(self) -> None:
        """Fetch locations that have no record yet and no fetch in flight."""
        missing = [
            loc for loc in self.state.locations
            if self.state.get_weather_data(loc.id) is None and not self.is_location_data_loading(loc.id)
        ]
        if missing:
            await self._fetch_each(missing, reason="auto-fetch")

    async def fetch_locations_quietly(self, locations: Iterable[Location], *, reason: str) -> None:
        """Fetch several locations concurrently, logging failures instead of raising."""
        await self._fetch_each(list(locations), reason=reason)

    async def search_locations(self, query: str) -> List[Location]:
        """Geocode `query`, cached for an hour per exact query string."""
        if not query.strip():
            return []
        key = CacheKeys.location_search(query)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)
        results = await self._call("search", lambda: self.api.search_locations(query))
        self.cache.set(key, list(results), CacheTTL.LOCATION_SEARCH)
        return list(results)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, endpoint: str, fn: Callable[[], Awaitable[T]]) -> T:
        breaker = self.breakers[endpoint]
        return await self.retry.execute(lambda: breaker.call(fn), self.retry_config, label=f"{endpoint} fetch")

    def _cached_record(self, location: Location) -> Optional[WeatherRecord]:
        lat, lon = location.latitude, location.longitude
        current = self.cache.get(CacheKeys.current_weather(lat, lon))
        if current is None:
            return None
        weekly = self.cache.get(CacheKeys.weekly_forecast(lat, lon))
        if weekly is None:
            return None
        historical = self.cache.get(CacheKeys.historical_data(lat, lon, self.historical_months))
        if historical is None:
            historical = HistoricalData.empty(location.coordinates_label)
        previous = self.state.get_weather_data(location.id)
        last_updated = previous.last_updated if previous else dt.datetime.now(dt.timezone.utc)
        return WeatherRecord(current=current, weekly=weekly, historical=historical, last_updated=last_updated)

    async def _fetch_and_store(self, location: Location) -> WeatherRecord:
        lat, lon = location.latitude, location.longitude
        try:
            try:
                current_task = asyncio.ensure_future(
                    self._call("current", lambda: self.api.get_current_weather(lat, lon))
                )
                weekly_task = asyncio.ensure_future(
                    self._call("weekly", lambda: self.api.get_weekly_forecast(lat, lon))
                )
                try:
                    current, weekly = await asyncio.gather(current_task, weekly_task)
                except BaseException:
                    current_task.cancel()
                    weekly_task.cancel()
                    raise
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                details = exc.message if isinstance(exc, WeatherApiError) else "Failed to fetch weather data"
                self.state.add_error("network", f"Failed to load weather data for {location.name}", details)
                logger.error(
                    f"Failed to load weather data for {location.name}",
                    extra={"location_id": location.id, "error": str(exc)},
                )
                raise

            historical_fetched = True
            try:
                historical = await self._call(
                    "historical", lambda: self.api.get_historical_data(lat, lon, self.historical_months)
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    f"Historical data not available for {location.name}",
                    extra={"location_id": location.id, "error": str(exc)},
                )
                historical = HistoricalData.empty(location.coordinates_label)
                historical_fetched = False

            record = WeatherRecord(
                current=current,
                weekly=weekly,
                historical=historical,
                last_updated=dt.datetime.now(dt.timezone.utc),
            )

            self.cache.set(CacheKeys.current_weather(lat, lon), current, CacheTTL.CURRENT_WEATHER)
            self.cache.set(CacheKeys.weekly_forecast(lat, lon), weekly, CacheTTL.WEEKLY_FORECAST)
            if historical_fetched:
                self.cache.set(
                    CacheKeys.historical_data(lat, lon, self.historical_months),
                    historical,
                    CacheTTL.HISTORICAL_DATA,
                )
            self.state.set_weather_data(location.id, record)
            logger.info("Weather data updated", extra={"location_id": location.id})
            return record
        finally:
            self._in_flight.pop(location.id, None)

    async def _fetch_each(self, locations: List[Location], *, reason: str) -> None:
        async def _one(location: Location) -> None:
            try:
                await self.fetch_weather_data(location)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    f"Failed to {reason} data for {location.name}",
                    extra={"location_id": location.id, "error": str(exc)},
                )

        await asyncio.gather(*(_one(loc) for loc in locations))

    def _invalidate(self, pattern: str) -> None:
        try:
            self.cache.invalidate(pattern)
        except CacheError as exc:
            logger.warning("Cache invalidation failed; continuing", extra={"pattern": pattern, "error": str(exc)})

"""Wiring: one cache, one client, one coordinator, one scheduler per process."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from weather_sync import config
from weather_sync.cache import CacheStore
from weather_sync.data_sources import WeatherAPIClient, build_api_client
from weather_sync.domain import RefreshSettings
from weather_sync.fetch_coordinator import FetchCoordinator
from weather_sync.refresh_scheduler import RefreshScheduler
from weather_sync.state import WeatherState
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="engine")


@dataclass
class WeatherEngine:
    """The synchronization engine and the state it publishes into."""
    settings: config.Settings
    cache: CacheStore
    api_client: WeatherAPIClient
    state: WeatherState
    coordinator: FetchCoordinator
    scheduler: RefreshScheduler

    def start(self) -> None:
        """Arm the cache sweep and refresh timers. Needs a running loop."""
        self.cache.start()
        self.scheduler.start()
        logger.info("Weather engine started")

    async def stop(self) -> None:
        """Cancel the timers, let outstanding fetches settle, then drop the cache."""
        tokens = self.scheduler.stop()
        await self.coordinator.drain()
        sweep = self.cache.destroy()
        if sweep is not None:
            tokens.append(sweep)
        await asyncio.gather(*(token.wait_closed() for token in tokens))
        logger.info("Weather engine stopped")


def build_engine(
    settings: Optional[config.Settings] = None,
    *,
    api_client: Optional[WeatherAPIClient] = None,
) -> WeatherEngine:
    """Construct every component from settings; `api_client` overrides the configured source."""
    settings = settings or config.settings
    cache = CacheStore(sweep_interval=settings.cache_sweep_interval_seconds)
    client = api_client or build_api_client(settings)
    state = WeatherState(
        max_locations=settings.max_locations,
        refresh_settings=RefreshSettings(
            auto_refresh=settings.auto_refresh,
            refresh_interval=settings.refresh_interval_minutes,
        ),
    )
    coordinator = FetchCoordinator(cache, client, state, settings=settings)
    scheduler = RefreshScheduler.from_settings(coordinator, state, settings)
    return WeatherEngine(
        settings=settings,
        cache=cache,
        api_client=client,
        state=state,
        coordinator=coordinator,
        scheduler=scheduler,
    )

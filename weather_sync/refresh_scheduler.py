"""Periodic auto-refresh and staleness sweep for tracked locations."""

from __future__ import annotations

import datetime as dt
from typing import Callable, List, Optional, Tuple

from weather_sync.domain import Location
from weather_sync.fetch_coordinator import FetchCoordinator
from weather_sync.scheduling import CancelToken, schedule
from weather_sync.state import WeatherState
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="refresh_scheduler")

STALENESS_THRESHOLD_SECONDS = 10 * 60
STALENESS_SWEEP_INTERVAL_SECONDS = 5 * 60


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class RefreshScheduler:
    """
    Drives two independently cancellable timers.

    - auto-refresh: every `refresh_interval` minutes while enabled and at
      least one location is tracked; the tick is skipped while any fetch is
      in flight.
    - staleness sweep: every 5 minutes, refetch locations whose record is
      older than 10 minutes, unless a fetch is already in flight.

    Both timers re-arm when their driving configuration changes in the
    WeatherState and are released by stop(). Failures are logged, never raised.
    """

    def __init__(
        self,
        coordinator: FetchCoordinator,
        state: WeatherState,
        *,
        staleness_threshold: float = STALENESS_THRESHOLD_SECONDS,
        staleness_interval: float = STALENESS_SWEEP_INTERVAL_SECONDS,
        now: Callable[[], dt.datetime] = _utcnow,
        scheduler: Callable[..., CancelToken] = schedule,
    ) -> None:
        self.coordinator = coordinator
        self.state = state
        self.staleness_threshold = dt.timedelta(seconds=staleness_threshold)
        self.staleness_interval = staleness_interval
        self._now = now
        self._schedule = scheduler
        self._auto_token: Optional[CancelToken] = None
        self._stale_token: Optional[CancelToken] = None
        self._auto_key: Optional[Tuple] = None
        self._stale_key: Optional[Tuple] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    def from_settings(cls, coordinator: FetchCoordinator, state: WeatherState, settings, **kwargs) -> "RefreshScheduler":
        return cls(
            coordinator,
            state,
            staleness_threshold=settings.staleness_threshold_seconds,
            staleness_interval=settings.staleness_sweep_interval_seconds,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    @property
    def auto_refresh_armed(self) -> bool:
        return self._auto_token is not None and self._auto_token.active

    @property
    def staleness_sweep_armed(self) -> bool:
        return self._stale_token is not None and self._stale_token.active

    def start(self) -> None:
        """Arm both timers and follow state changes. Needs a running loop."""
        if self.running:
            return
        self._unsubscribe = self.state.subscribe(self._on_state_change)
        self._sync_timers(force=True)
        logger.info("Refresh scheduler started")

    def stop(self) -> List[CancelToken]:
        """Release both timers and stop following state changes.

        Returns the cancelled tokens so the caller can await their shutdown.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        cancelled = [token for token in (self._cancel_auto(), self._cancel_stale()) if token is not None]
        self._auto_key = self._stale_key = None
        logger.info("Refresh scheduler stopped")
        return cancelled

    # ------------------------------------------------------------------
    # Timer bodies
    # ------------------------------------------------------------------

    async def run_auto_refresh_tick(self) -> bool:
        """One auto-refresh pass; returns False when the tick was skipped."""
        prefs = self.state.refresh_settings
        if not prefs.auto_refresh or not self.state.locations:
            return False
        if self.coordinator.is_loading:
            logger.debug("Skipping auto-refresh; a fetch is in flight")
            return False
        try:
            await self.coordinator.refresh_all_weather_data()
        except Exception as exc:
            logger.error("Auto-refresh failed", extra={"error": str(exc)})
        return True

    def stale_locations(self, now: Optional[dt.datetime] = None) -> List[Location]:
        """Tracked locations whose record is older than the staleness threshold."""
        now = now or self._now()
        stale: List[Location] = []
        for location in self.state.locations:
            record = self.state.get_weather_data(location.id)
            if record is None:
                continue
            if record.age(now) > self.staleness_threshold:
                stale.append(location)
        return stale

    async def run_staleness_sweep(self) -> List[Location]:
        """Refetch stale locations in the background; returns the ones refetched."""
        if self.coordinator.is_loading:
            return []
        stale = self.stale_locations()
        if not stale:
            return []
        logger.info(f"Background refreshing {len(stale)} stale locations")
        try:
            await self.coordinator.fetch_locations_quietly(stale, reason="background refresh")
        except Exception as exc:
            logger.warning("Background refresh failed", extra={"error": str(exc)})
        return stale

    # ------------------------------------------------------------------
    # Arming
    # ------------------------------------------------------------------

    def _on_state_change(self) -> None:
        self._sync_timers()

    def _sync_timers(self, *, force: bool = False) -> None:
        prefs = self.state.refresh_settings
        location_ids = tuple(sorted(loc.id for loc in self.state.locations))

        auto_key = (prefs.auto_refresh, prefs.refresh_interval, location_ids)
        if force or auto_key != self._auto_key:
            self._auto_key = auto_key
            self._cancel_auto()
            if prefs.auto_refresh and location_ids:
                self._auto_token = self._schedule(
                    prefs.refresh_interval * 60, self.run_auto_refresh_tick, name="auto_refresh"
                )
                logger.info(f"Auto-refresh armed every {prefs.refresh_interval} min")

        stale_key = (location_ids,)
        if force or stale_key != self._stale_key:
            self._stale_key = stale_key
            self._cancel_stale()
            if location_ids:
                self._stale_token = self._schedule(
                    self.staleness_interval, self.run_staleness_sweep, name="staleness_sweep"
                )

    def _cancel_auto(self) -> Optional[CancelToken]:
        token, self._auto_token = self._auto_token, None
        if token is not None:
            token.cancel()
        return token

    def _cancel_stale(self) -> Optional[CancelToken]:
        token, self._stale_token = self._stale_token, None
        if token is not None:
            token.cancel()
        return token

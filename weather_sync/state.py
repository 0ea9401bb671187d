"""Consumer-side state: tracked locations, their records, refresh settings."""

from __future__ import annotations

import datetime as dt
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from weather_sync.domain import Location, RefreshSettings
from weather_sync.errors import LocationLimitError
from weather_sync.records import WeatherRecord
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="state")

Listener = Callable[[], None]


@dataclass(frozen=True)
class ErrorNotice:
    """A failure worth showing to the user."""
    type: str
    message: str
    details: Optional[str] = None
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


class WeatherState:
    """Holds what the UI renders. Listeners fire when locations or settings change."""

    def __init__(
        self,
        max_locations: int = 3,
        refresh_settings: Optional[RefreshSettings] = None,
        max_errors: int = 50,
    ) -> None:
        self.max_locations = max_locations
        self._locations: List[Location] = []
        self._records: Dict[str, WeatherRecord] = {}
        self._refresh_settings = refresh_settings or RefreshSettings()
        self._errors: Deque[ErrorNotice] = deque(maxlen=max_errors)
        self._listeners: List[Listener] = []

    @property
    def locations(self) -> Tuple[Location, ...]:
        return tuple(self._locations)

    def get_location(self, location_id: str) -> Optional[Location]:
        for location in self._locations:
            if location.id == location_id:
                return location
        return None

    def add_location(self, location: Location) -> None:
        """Track a new location; raises LocationLimitError when full or duplicated."""
        if self.get_location(location.id) is not None:
            raise LocationLimitError(f"Location already added: {location.id}")
        if len(self._locations) >= self.max_locations:
            raise LocationLimitError(f"At most {self.max_locations} locations can be compared")
        self._locations.append(location)
        logger.info("Location added", extra={"location_id": location.id})
        self._notify()

    def remove_location(self, location_id: str) -> bool:
        location = self.get_location(location_id)
        if location is None:
            return False
        self._locations.remove(location)
        self._records.pop(location_id, None)
        logger.info("Location removed", extra={"location_id": location_id})
        self._notify()
        return True

    def get_weather_data(self, location_id: str) -> Optional[WeatherRecord]:
        return self._records.get(location_id)

    def set_weather_data(self, location_id: str, record: WeatherRecord) -> None:
        """Publish a record; dropped if the location stopped being tracked meanwhile."""
        if self.get_location(location_id) is None:
            logger.debug("Discarding record for untracked location", extra={"location_id": location_id})
            return
        self._records[location_id] = record

    @property
    def refresh_settings(self) -> RefreshSettings:
        return self._refresh_settings

    def update_refresh_settings(self, **changes) -> RefreshSettings:
        """Apply partial changes (validated) and notify listeners."""
        merged = {**self._refresh_settings.model_dump(), **changes}
        self._refresh_settings = RefreshSettings.model_validate(merged)
        self._notify()
        return self._refresh_settings

    def add_error(self, type: str, message: str, details: Optional[str] = None) -> ErrorNotice:
        notice = ErrorNotice(type=type, message=message, details=details)
        self._errors.append(notice)
        return notice

    @property
    def errors(self) -> List[ErrorNotice]:
        return list(self._errors)

    def clear_errors(self) -> None:
        self._errors.clear()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                logger.error("State listener failed", extra={"error": str(exc)})

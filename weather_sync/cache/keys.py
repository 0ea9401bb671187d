"""Cache key grammar, TTL table and invalidation patterns for weather data."""

from __future__ import annotations

import re
from urllib.parse import quote

MINUTE = 60.0
HOUR = 60 * MINUTE


def format_coordinate(value: float) -> str:
    """Render a coordinate the way the key grammar expects: 10, 51.5, -0.12."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _encode_query(query: str) -> str:
    # Same safe set as JavaScript's encodeURIComponent.
    return quote(query, safe="-_.!~*'()")


class CacheKeys:
    """Key builders; pattern-based invalidation depends on these exact shapes."""

    @staticmethod
    def current_weather(lat: float, lon: float) -> str:
        return f"weather:current:{format_coordinate(lat)}:{format_coordinate(lon)}"

    @staticmethod
    def weekly_forecast(lat: float, lon: float) -> str:
        return f"weather:weekly:{format_coordinate(lat)}:{format_coordinate(lon)}"

    @staticmethod
    def historical_data(lat: float, lon: float, months: int) -> str:
        return f"weather:historical:{format_coordinate(lat)}:{format_coordinate(lon)}:{months}"

    @staticmethod
    def location_search(query: str) -> str:
        return f"location:search:{_encode_query(query)}"


class CacheTTL:
    """Entry lifetimes in seconds."""
    CURRENT_WEATHER = 15 * MINUTE
    WEEKLY_FORECAST = 15 * MINUTE
    HISTORICAL_DATA = 24 * HOUR
    LOCATION_SEARCH = 1 * HOUR


class InvalidationPatterns:
    """Regular expressions accepted by CacheStore.invalidate()."""

    ALL_CURRENT_WEATHER = "weather:current:.*"

    @staticmethod
    def location_data(lat: float, lon: float) -> str:
        """Every weather entry (current, weekly, historical) for one coordinate pair."""
        lat_s = re.escape(format_coordinate(lat))
        lon_s = re.escape(format_coordinate(lon))
        return f"^weather:[a-z]+:{lat_s}:{lon_s}(:\\d+)?$"

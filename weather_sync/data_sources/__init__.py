"""Weather API clients the fetch coordinator can talk to."""

from .base import WeatherAPIClient
from .factory import build_api_client
from .open_meteo_client import OpenMeteoClient

__all__ = [
    "build_api_client",
    "OpenMeteoClient",
    "WeatherAPIClient",
]

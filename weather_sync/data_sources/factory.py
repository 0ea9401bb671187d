"""Factory helpers for choosing the weather API client at startup."""

from __future__ import annotations

from weather_sync import config
from weather_sync.data_sources.base import WeatherAPIClient
from weather_sync.data_sources.open_meteo_client import OpenMeteoClient
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/factory")


DEFAULT_SOURCE_NAME = "open_meteo"


def build_api_client(settings: config.Settings | None = None) -> WeatherAPIClient:
    """Instantiate the configured weather API client."""
    settings = settings or config.settings
    source = (settings.data_source or DEFAULT_SOURCE_NAME).lower()

    if source == "open_meteo":
        logger.info("Using Open-Meteo data source", extra={"forecast_url": settings.forecast_base_url})
        return OpenMeteoClient(settings)

    raise ValueError(f"Unknown weather data source '{source}'")

"""Service configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the weather sync engine."""
    model_config = SettingsConfigDict(env_prefix="WEATHER_", extra="ignore")

    data_source: str = "open_meteo"  # options: open_meteo
    forecast_base_url: str = "https://api.open-meteo.com/v1"
    archive_base_url: str = "https://archive-api.open-meteo.com/v1"
    geocoding_base_url: str = "https://geocoding-api.open-meteo.com/v1"
    http_timeout_seconds: float = 10.0
    user_agent: str = "WeatherCompareApp/1.0"

    # Retry defaults; individual call sites may override with their own RetryConfig.
    retry_max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    retry_backoff_factor: float = 2.0
    retry_max_jitter_seconds: float = 1.0

    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 60.0
    breaker_monitoring_period_seconds: float = 10.0

    cache_sweep_interval_seconds: float = 300.0
    staleness_threshold_seconds: float = 600.0
    staleness_sweep_interval_seconds: float = 300.0
    historical_months: int = 24

    max_locations: int = 3
    auto_refresh: bool = True
    refresh_interval_minutes: int = 15

    api_key: str | None = None
    log_level: str = "INFO"

    @field_validator("forecast_base_url", "archive_base_url", "geocoding_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("refresh_interval_minutes", mode="after")
    @classmethod
    def clamp_refresh_interval(cls, v: int) -> int:
        """Keep the auto-refresh interval within 1..60 minutes."""
        return max(1, min(60, int(v)))


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")

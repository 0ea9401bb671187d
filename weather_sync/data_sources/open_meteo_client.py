"""Open-Meteo implementation of the WeatherAPIClient protocol.

HTTP goes through a `requests.Session`; each blocking call runs in a worker
thread so the event loop stays free. Payloads are validated against the
schemas in `schemas.py` and transformed into `weather_sync.records` types.
Retries and caching live in the fetch coordinator, not here.
"""
from __future__ import annotations

import asyncio
import datetime as dt
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from weather_sync.cache.keys import format_coordinate
from weather_sync.config import Settings, settings as default_settings
from weather_sync.domain import Location
from weather_sync.errors import InvalidResponseError, TransportError, error_for_status
from weather_sync.records import (
    CurrentWeather,
    DailyForecast,
    HistoricalData,
    MonthlyAverage,
    PrecipitationData,
    WeeklyForecast,
)
from weather_sync.data_sources.schemas import (
    CurrentBlock,
    OpenMeteoCurrentResponse,
    OpenMeteoForecastResponse,
    OpenMeteoGeocodingResponse,
    OpenMeteoHistoricalResponse,
)
from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="open_meteo_client")

SchemaT = TypeVar("SchemaT", bound=BaseModel)

CURRENT_VARS = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "surface_pressure",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
]

FORECAST_DAILY_VARS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "sunrise",
    "sunset",
    "uv_index_max",
    "precipitation_sum",
    "rain_sum",
    "showers_sum",
    "snowfall_sum",
    "precipitation_hours",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
]

ARCHIVE_DAILY_VARS = [
    "temperature_2m_mean",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "wind_speed_10m_max",
]

FORECAST_DAYS = 10
SEARCH_RESULT_COUNT = 10
# The archive lags real time by several days.
ARCHIVE_LAG_DAYS = 7
# Days with at least this much precipitation (mm) count as wet days.
WET_DAY_THRESHOLD_MM = 1.0

session = requests.Session()


def _precipitation(
    *,
    rain: Optional[float] = None,
    showers: Optional[float] = None,
    snowfall: Optional[float] = None,
    precipitation: Optional[float] = None,
    probability: Optional[float] = None,
    hours: Optional[float] = None,
) -> PrecipitationData:
    """Summarize precipitation components into a typed bundle."""
    rain = rain or 0.0
    showers = showers or 0.0
    snowfall = snowfall or 0.0
    total = precipitation or (rain + showers + snowfall)

    if snowfall > 0 and (rain > 0 or showers > 0):
        kind = "mixed"
    elif snowfall > 0:
        kind = "snow"
    elif rain > 0 or showers > 0:
        kind = "rain"
    else:
        kind = "none"

    return PrecipitationData(
        type=kind,
        intensity=total,
        probability=probability or 0.0,
        rate=total / (hours or 1),
        total_1h=total,
        total_24h=total,
    )


def _first(values: List[str]) -> str:
    return values[0] if values else ""


def _transform_current(data: OpenMeteoCurrentResponse) -> CurrentWeather:
    cur: CurrentBlock = data.current
    sunrise = _first(data.daily.sunrise) if data.daily else ""
    sunset = _first(data.daily.sunset) if data.daily else ""
    return CurrentWeather(
        temperature=cur.temperature_2m,
        feels_like=cur.apparent_temperature,
        humidity=cur.relative_humidity_2m,
        wind_speed=cur.wind_speed_10m,
        wind_gust=cur.wind_gusts_10m,
        precipitation=_precipitation(
            rain=cur.rain,
            showers=cur.showers,
            snowfall=cur.snowfall,
            precipitation=cur.precipitation,
        ),
        cloud_cover=cur.cloud_cover,
        pressure=cur.pressure_msl,
        uv_index=0.0,  # not part of the current block
        sunrise=sunrise,
        sunset=sunset,
        timestamp=cur.time,
        weather_code=cur.weather_code,
    )


def _transform_weekly(data: OpenMeteoForecastResponse) -> WeeklyForecast:
    daily = data.daily
    days: List[DailyForecast] = []
    for i, date in enumerate(daily.time):
        days.append(
            DailyForecast(
                date=date,
                temp_min=daily.temperature_2m_min[i],
                temp_max=daily.temperature_2m_max[i],
                precipitation=_precipitation(
                    rain=daily.rain_sum[i],
                    showers=daily.showers_sum[i],
                    snowfall=daily.snowfall_sum[i],
                    precipitation=daily.precipitation_sum[i],
                    probability=daily.precipitation_probability_max[i],
                    hours=daily.precipitation_hours[i],
                ),
                humidity=0.0,  # not available in the daily block
                wind_speed=daily.wind_speed_10m_max[i],
                wind_gust=daily.wind_gusts_10m_max[i],
                weather_code=daily.weather_code[i],
                uv_index_max=daily.uv_index_max[i],
                sunrise=daily.sunrise[i],
                sunset=daily.sunset[i],
            )
        )
    return WeeklyForecast(
        daily=days,
        location=f"{format_coordinate(data.latitude)}, {format_coordinate(data.longitude)}",
        timezone=data.timezone,
    )


def _mean(values: List[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _transform_historical(data: OpenMeteoHistoricalResponse) -> HistoricalData:
    """Fold the daily archive series into per-month averages."""
    daily = data.daily
    buckets: "OrderedDict[str, List[int]]" = OrderedDict()
    for i, day in enumerate(daily.time):
        buckets.setdefault(day[:7], []).append(i)

    monthly: List[MonthlyAverage] = []
    for month, idx in buckets.items():
        precip = [daily.precipitation_sum[i] or 0.0 for i in idx]
        monthly.append(
            MonthlyAverage(
                month=month,
                year=int(month[:4]),
                temp_min=_mean([daily.temperature_2m_min[i] for i in idx]),
                temp_max=_mean([daily.temperature_2m_max[i] for i in idx]),
                temp_mean=_mean([daily.temperature_2m_mean[i] for i in idx]),
                precipitation_total=sum(precip),
                precipitation_days=sum(1 for p in precip if p >= WET_DAY_THRESHOLD_MM),
                humidity=0.0,  # not available in the archive daily block
                wind_speed=_mean([daily.wind_speed_10m_max[i] for i in idx]),
            )
        )

    return HistoricalData(
        monthly=monthly,
        location=f"{format_coordinate(data.latitude)}, {format_coordinate(data.longitude)}",
        start_date=_first(daily.time),
        end_date=daily.time[-1] if daily.time else "",
    )


def _transform_locations(data: OpenMeteoGeocodingResponse) -> List[Location]:
    return [
        Location(
            name=r.name,
            country=r.country,
            latitude=r.latitude,
            longitude=r.longitude,
            timezone=r.timezone,
            region=r.admin1,
            admin1=r.admin1,
            admin2=r.admin2,
        )
        for r in data.results
    ]


def _months_before(day: dt.date, months: int) -> dt.date:
    """Same day-of-month `months` earlier, clamped to the month's length."""
    total = day.year * 12 + (day.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    for candidate in (day.day, 30, 29, 28):
        try:
            return dt.date(year, month, min(day.day, candidate))
        except ValueError:
            continue
    raise ValueError(f"cannot shift {day} by {months} months")


class OpenMeteoClient:
    """Async facade over the Open-Meteo forecast, archive and geocoding APIs."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http_session: Any = None,
        today: Any = dt.date.today,
    ) -> None:
        self.settings = settings or default_settings
        self._session = http_session
        self._today = today

    @property
    def http(self):
        return self._session if self._session is not None else session

    def _get_json(self, url: str, params: Dict[str, Any], context: str) -> Any:
        """Blocking GET returning decoded JSON; maps failures onto the error taxonomy."""
        headers = {"Accept": "application/json", "User-Agent": self.settings.user_agent}
        try:
            resp = self.http.get(url, params=params, headers=headers, timeout=self.settings.http_timeout_seconds)
        except requests.Timeout as exc:
            raise TransportError(f"Timed out fetching {context}: {exc}", timeout=True) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Failed to fetch {context}: {exc}") from exc

        if resp.status_code >= 400:
            reason = getattr(resp, "reason", "") or ""
            raise error_for_status(f"Failed to fetch {context}: {resp.status_code} {reason}".strip(), resp.status_code)

        try:
            return resp.json()
        except ValueError as exc:
            raise InvalidResponseError(f"Invalid JSON in {context} response") from exc

    async def _fetch(self, url: str, params: Dict[str, Any], schema: Type[SchemaT], context: str) -> SchemaT:
        payload = await asyncio.to_thread(self._get_json, url, params, context)
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Open-Meteo payload failed validation", extra={"context": context, "error": str(exc)})
            raise InvalidResponseError(f"Unexpected {context} payload", details=exc.errors()) from exc

    async def get_current_weather(self, lat: float, lon: float) -> CurrentWeather:
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": ",".join(CURRENT_VARS),
            "daily": "sunrise,sunset",
            "timezone": "auto",
            "forecast_days": 1,
        }
        data = await self._fetch(
            f"{self.settings.forecast_base_url}/forecast", params, OpenMeteoCurrentResponse, "current weather"
        )
        return _transform_current(data)

    async def get_weekly_forecast(self, lat: float, lon: float) -> WeeklyForecast:
        params = {
            "latitude": lat,
            "longitude": lon,
            "daily": ",".join(FORECAST_DAILY_VARS),
            "timezone": "auto",
            "forecast_days": FORECAST_DAYS,
        }
        data = await self._fetch(
            f"{self.settings.forecast_base_url}/forecast", params, OpenMeteoForecastResponse, "weekly forecast"
        )
        return _transform_weekly(data)

    async def get_historical_data(self, lat: float, lon: float, months: int) -> HistoricalData:
        end_date = self._today() - dt.timedelta(days=ARCHIVE_LAG_DAYS)
        start_date = _months_before(end_date, months)
        params = {
            "latitude": lat,
            "longitude": lon,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "daily": ",".join(ARCHIVE_DAILY_VARS),
            "timezone": "auto",
        }
        data = await self._fetch(
            f"{self.settings.archive_base_url}/archive", params, OpenMeteoHistoricalResponse, "historical data"
        )
        return _transform_historical(data)

    async def search_locations(self, query: str) -> List[Location]:
        if not query.strip():
            return []
        params = {
            "name": query,
            "count": SEARCH_RESULT_COUNT,
            "language": "en",
            "format": "json",
        }
        data = await self._fetch(
            f"{self.settings.geocoding_base_url}/search", params, OpenMeteoGeocodingResponse, "location search"
        )
        return _transform_locations(data)

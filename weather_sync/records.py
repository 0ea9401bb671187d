"""Internal weather shapes produced by the API client and cached by the engine."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Literal, Optional

PrecipitationType = Literal["rain", "snow", "mixed", "none"]


@dataclass(frozen=True)
class PrecipitationData:
    """Precipitation summary for one observation or forecast day."""
    type: PrecipitationType
    intensity: float
    probability: float
    rate: float
    total_1h: float
    total_24h: float


@dataclass(frozen=True)
class CurrentWeather:
    """Latest observation for a coordinate pair."""
    temperature: float
    feels_like: Optional[float]
    humidity: Optional[float]
    wind_speed: Optional[float]
    wind_gust: Optional[float]
    precipitation: PrecipitationData
    cloud_cover: Optional[float]
    pressure: Optional[float]
    uv_index: float
    sunrise: str
    sunset: str
    timestamp: str  # local ISO time as reported upstream
    weather_code: Optional[int]
    visibility: Optional[float] = None


@dataclass(frozen=True)
class DailyForecast:
    date: str
    temp_min: Optional[float]
    temp_max: Optional[float]
    precipitation: PrecipitationData
    humidity: float
    wind_speed: Optional[float]
    wind_gust: Optional[float]
    weather_code: Optional[int]
    uv_index_max: Optional[float]
    sunrise: str
    sunset: str


@dataclass(frozen=True)
class WeeklyForecast:
    daily: List[DailyForecast]
    location: str
    timezone: str


@dataclass(frozen=True)
class MonthlyAverage:
    """Aggregated climate figures for one calendar month."""
    month: str  # YYYY-MM
    year: int
    temp_min: Optional[float]
    temp_max: Optional[float]
    temp_mean: Optional[float]
    precipitation_total: float
    precipitation_days: int
    humidity: float
    wind_speed: Optional[float]


@dataclass(frozen=True)
class HistoricalData:
    monthly: List[MonthlyAverage]
    location: str
    start_date: str
    end_date: str

    @classmethod
    def empty(cls, location: str) -> "HistoricalData":
        """Well-formed placeholder used when the archive fetch fails."""
        return cls(monthly=[], location=location, start_date="", end_date="")


@dataclass(frozen=True)
class WeatherRecord:
    """Everything the UI shows for one location."""
    current: CurrentWeather
    weekly: WeeklyForecast
    historical: HistoricalData
    last_updated: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    def age(self, now: Optional[dt.datetime] = None) -> dt.timedelta:
        """Time since the record was assembled."""
        now = now or dt.datetime.now(dt.timezone.utc)
        return now - self.last_updated

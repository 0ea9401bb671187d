"""Wire schemas for Open-Meteo payloads, validated before any transformation.

Each endpoint gets its own model so that raw dicts never leave the client.
Unknown fields are ignored; missing required fields fail validation.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _WireModel(BaseModel):
    """Base model that tolerates extra upstream fields."""

    model_config = ConfigDict(extra="ignore")


class _AlignedSeries(_WireModel):
    """Daily blocks are column-oriented; every series must match `time`."""

    time: List[str]

    @model_validator(mode="after")
    def _check_lengths(self):
        expected = len(self.time)
        for name, value in self:
            if name != "time" and isinstance(value, list) and len(value) != expected:
                raise ValueError(f"series '{name}' has {len(value)} values, expected {expected}")
        return self


class CurrentBlock(_WireModel):
    time: str
    temperature_2m: float
    relative_humidity_2m: Optional[float] = None
    apparent_temperature: Optional[float] = None
    is_day: Optional[int] = None
    precipitation: Optional[float] = None
    rain: Optional[float] = None
    showers: Optional[float] = None
    snowfall: Optional[float] = None
    weather_code: Optional[int] = None
    cloud_cover: Optional[float] = None
    pressure_msl: Optional[float] = None
    surface_pressure: Optional[float] = None
    wind_speed_10m: Optional[float] = None
    wind_direction_10m: Optional[float] = None
    wind_gusts_10m: Optional[float] = None


class SunBlock(_AlignedSeries):
    sunrise: List[str] = Field(default_factory=list)
    sunset: List[str] = Field(default_factory=list)


class OpenMeteoCurrentResponse(_WireModel):
    latitude: float
    longitude: float
    timezone: str = "UTC"
    current: CurrentBlock
    daily: Optional[SunBlock] = None


class ForecastDailyBlock(_AlignedSeries):
    weather_code: List[Optional[int]]
    temperature_2m_max: List[Optional[float]]
    temperature_2m_min: List[Optional[float]]
    sunrise: List[str]
    sunset: List[str]
    uv_index_max: List[Optional[float]]
    precipitation_sum: List[Optional[float]]
    rain_sum: List[Optional[float]]
    showers_sum: List[Optional[float]]
    snowfall_sum: List[Optional[float]]
    precipitation_hours: List[Optional[float]]
    precipitation_probability_max: List[Optional[float]]
    wind_speed_10m_max: List[Optional[float]]
    wind_gusts_10m_max: List[Optional[float]]


class OpenMeteoForecastResponse(_WireModel):
    latitude: float
    longitude: float
    timezone: str = "UTC"
    daily: ForecastDailyBlock


class ArchiveDailyBlock(_AlignedSeries):
    temperature_2m_mean: List[Optional[float]]
    temperature_2m_max: List[Optional[float]]
    temperature_2m_min: List[Optional[float]]
    precipitation_sum: List[Optional[float]]
    wind_speed_10m_max: List[Optional[float]]


class OpenMeteoHistoricalResponse(_WireModel):
    latitude: float
    longitude: float
    timezone: str = "UTC"
    daily: ArchiveDailyBlock


class GeocodingResult(_WireModel):
    name: str
    latitude: float
    longitude: float
    country: str = ""
    timezone: str = "auto"
    admin1: Optional[str] = None
    admin2: Optional[str] = None


class OpenMeteoGeocodingResponse(_WireModel):
    results: List[GeocodingResult] = Field(default_factory=list)

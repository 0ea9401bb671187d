"""Pydantic models for locations and user-facing refresh settings."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from weather_sync.cache.keys import format_coordinate


class Location(BaseModel):
    """A place the user is comparing; `id` defaults to "<lat>-<lon>"."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str
    country: str = ""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timezone: str = "auto"
    region: Optional[str] = None
    admin1: Optional[str] = None
    admin2: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def default_id(cls, data):
        """Derive the id from coordinates when the caller did not supply one."""
        if isinstance(data, dict) and not data.get("id"):
            lat, lon = data.get("latitude"), data.get("longitude")
            if lat is not None and lon is not None:
                data = {**data, "id": f"{format_coordinate(lat)}-{format_coordinate(lon)}"}
        return data

    @property
    def coordinates_label(self) -> str:
        """Location string used by forecast/historical payloads."""
        return f"{format_coordinate(self.latitude)}, {format_coordinate(self.longitude)}"


class RefreshSettings(BaseModel):
    """Auto-refresh preferences; `refresh_interval` is in minutes."""

    model_config = ConfigDict(extra="forbid")

    auto_refresh: bool = True
    refresh_interval: int = Field(default=15, ge=1, le=60)

"""HTTP API exposing the weather sync engine to the UI."""

import hmac
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from .config import settings
from .domain import Location, RefreshSettings
from .engine import WeatherEngine
from .errors import CircuitOpenError, LocationLimitError, LocationNotFoundError, WeatherApiError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="api")


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Validate X-API-Key against the configured static key, if any."""
    if not settings.api_key:
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def get_engine(request: Request) -> WeatherEngine:
    return request.app.state.engine


router = APIRouter(dependencies=[Depends(require_api_key)])


class RefreshSettingsUpdate(BaseModel):
    """Partial update for auto-refresh preferences."""
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = Field(default=None, ge=1, le=60)


class LoadingStatus(BaseModel):
    location_id: str
    loading: bool
    last_updated: Optional[str] = None


class ErrorNoticeOut(BaseModel):
    type: str
    message: str
    details: Optional[str] = None
    timestamp: str


def _upstream_failure(exc: Exception) -> HTTPException:
    """Translate engine errors into HTTP errors the UI can show."""
    if isinstance(exc, CircuitOpenError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Weather service temporarily unavailable; retry in {exc.retry_in:.0f}s",
        )
    if isinstance(exc, WeatherApiError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch weather data")


def _require_location(engine: WeatherEngine, location_id: str) -> Location:
    location = engine.state.get_location(location_id)
    if location is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Location not found: {location_id}")
    return location


@router.get("/locations/search", response_model=list[Location])
async def search_locations(q: str = Query(default=""), engine: WeatherEngine = Depends(get_engine)):
    """Geocode a free-text query."""
    try:
        return await engine.coordinator.search_locations(q)
    except (WeatherApiError, CircuitOpenError) as exc:
        logger.warning("Location search failed", extra={"error": str(exc)})
        raise _upstream_failure(exc)


@router.get("/locations", response_model=list[Location])
def list_locations(engine: WeatherEngine = Depends(get_engine)):
    return list(engine.state.locations)


@router.post("/locations", response_model=Location, status_code=status.HTTP_201_CREATED)
async def add_location(
    location: Location,
    background_tasks: BackgroundTasks,
    engine: WeatherEngine = Depends(get_engine),
):
    """Track a location and fetch its weather in the background."""
    try:
        engine.state.add_location(location)
    except LocationLimitError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    background_tasks.add_task(engine.coordinator.fetch_missing_weather_data)
    return location


@router.delete("/locations/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_location(location_id: str, engine: WeatherEngine = Depends(get_engine)):
    if not engine.state.remove_location(location_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Location not found: {location_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/weather/{location_id}")
async def get_weather(location_id: str, engine: WeatherEngine = Depends(get_engine)):
    """Return the location's record, from cache when fresh."""
    location = _require_location(engine, location_id)
    try:
        return await engine.coordinator.fetch_weather_data(location)
    except (WeatherApiError, CircuitOpenError) as exc:
        raise _upstream_failure(exc)


@router.get("/weather/{location_id}/status", response_model=LoadingStatus)
def get_weather_status(location_id: str, engine: WeatherEngine = Depends(get_engine)):
    _require_location(engine, location_id)
    record = engine.coordinator.get_location_weather_data(location_id)
    return LoadingStatus(
        location_id=location_id,
        loading=engine.coordinator.is_location_data_loading(location_id),
        last_updated=record.last_updated.isoformat() if record else None,
    )


@router.post("/weather/refresh", status_code=status.HTTP_202_ACCEPTED)
async def refresh_all(engine: WeatherEngine = Depends(get_engine)):
    """Refetch every location; per-location failures are logged, not returned."""
    await engine.coordinator.refresh_all_weather_data()
    return {"locations": len(engine.state.locations)}


@router.post("/weather/{location_id}/refresh")
async def refresh_location(location_id: str, engine: WeatherEngine = Depends(get_engine)):
    try:
        await engine.coordinator.refresh_weather_data(location_id)
    except LocationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except (WeatherApiError, CircuitOpenError) as exc:
        raise _upstream_failure(exc)
    return engine.coordinator.get_location_weather_data(location_id)


@router.get("/settings", response_model=RefreshSettings)
def get_settings(engine: WeatherEngine = Depends(get_engine)):
    return engine.state.refresh_settings


@router.put("/settings", response_model=RefreshSettings)
async def update_settings(update: RefreshSettingsUpdate, engine: WeatherEngine = Depends(get_engine)):
    """Change auto-refresh preferences; the scheduler re-arms itself."""
    changes = update.model_dump(exclude_none=True)
    return engine.state.update_refresh_settings(**changes)


@router.get("/errors", response_model=list[ErrorNoticeOut])
def list_errors(engine: WeatherEngine = Depends(get_engine)):
    return [
        ErrorNoticeOut(type=e.type, message=e.message, details=e.details, timestamp=e.timestamp.isoformat())
        for e in engine.state.errors
    ]


@router.delete("/errors", status_code=status.HTTP_204_NO_CONTENT)
def clear_errors(engine: WeatherEngine = Depends(get_engine)):
    engine.state.clear_errors()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/cache/stats")
def cache_stats(engine: WeatherEngine = Depends(get_engine)):
    return engine.cache.stats()

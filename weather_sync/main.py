"""FastAPI application setup for the weather sync service."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import router as api_router
from .config import settings
from .engine import WeatherEngine, build_engine
from utils.logging_utils import setup_logging


def create_app(engine: Optional[WeatherEngine] = None) -> FastAPI:
    """Build the app; a prebuilt `engine` replaces the one made from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, job_name="weather_sync")
        active = getattr(app.state, "engine", None) or build_engine(settings)
        app.state.engine = active
        active.start()
        try:
            yield
        finally:
            await active.stop()

    app = FastAPI(title="Weather Compare Sync", lifespan=lifespan)
    if engine is not None:
        app.state.engine = engine

    # API routes
    app.include_router(api_router, prefix="/v1")
    return app


app = create_app()

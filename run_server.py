import os

import uvicorn

from utils.logging_utils import get_tagged_logger, redact_secret
from weather_sync.config import settings

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    logger.info(
        "Starting weather sync server",
        extra={
            "data_source": settings.data_source,
            "auto_refresh": settings.auto_refresh,
            "api_key": redact_secret(settings.api_key),
        },
    )

    uvicorn.run(
        "weather_sync.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )

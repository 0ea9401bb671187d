"""
Logging for the weather sync service.

Call `setup_logging()` once from the process entrypoint (the FastAPI
lifespan does it for the server):

    from utils.logging_utils import setup_logging
    setup_logging(level="INFO", job_name="weather_sync")

Modules get a tagged logger and pass structured context through `extra`:

    from utils.logging_utils import get_tagged_logger
    logger = get_tagged_logger(__name__, tag="fetch_coordinator")
    logger.info("Weather data updated", extra={"location_id": loc.id})

The context is appended to the line as `key=value` pairs, so the output of
the cache sweep, the retry layer and the scheduler stays greppable by
location or pattern.
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Mapping, MutableMapping, Optional, Tuple


# Logs emitted at import time, before setup_logging(), still get a timestamp.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(job_name)s | %(tag)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else on a record came from `extra`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "tag", "job_name", "taskName"}

_CONFIGURED: bool = False


class MaxLevelFilter(logging.Filter):
    """Drop records above `max_level`; keeps warnings off stdout."""

    def __init__(self, max_level: int) -> None:
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return record.levelno <= self.max_level


class EnsureTagFilter(logging.Filter):
    """Give untagged records (uvicorn, urllib3) a tag from their logger name."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "tag"):
            record.tag = record.name.rsplit(".", 1)[-1] if record.name else "-"
        return True


class JobNameFilter(logging.Filter):
    def __init__(self, job_name: Optional[str] = None) -> None:
        super().__init__()
        self._job_name = job_name or "-"

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "job_name"):
            record.job_name = self._job_name
        return True


class ContextFormatter(logging.Formatter):
    """Formatter that appends `extra` context as sorted `key=value` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = context_fields(record)
        if not context:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{line} | {rendered}"


def context_fields(record: logging.LogRecord) -> dict:
    """The `extra` fields attached to `record`, minus logging's own attributes."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class TaggedLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call `extra` with the adapter's tag.

    The stock adapter replaces a caller's `extra` with its own before
    Python 3.13, which would silently drop context such as `location_id`.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def build_logging_config(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = None,
) -> Mapping[str, Any]:
    """
    dictConfig mapping for the service.

    DEBUG/INFO go to stdout and WARNING+ to stderr, so refresh failures and
    breaker transitions stand out from routine sweep and cache chatter. Both
    handlers share the tag/job filters and the context formatter.
    """
    shared_filters = ["ensure_tag", "job_name"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "ensure_tag": {"()": EnsureTagFilter},
            "job_name": {"()": JobNameFilter, "job_name": job_name},
            "stdout_max_info": {"()": MaxLevelFilter, "max_level": logging.INFO},
        },
        "formatters": {
            "context": {"()": ContextFormatter, "fmt": log_format, "datefmt": date_format},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "context",
                "filters": shared_filters + ["stdout_max_info"],
                "level": "DEBUG",
                "stream": "ext://sys.stdout",
            },
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "context",
                "filters": shared_filters,
                "level": "WARNING",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {"level": level, "handlers": ["stdout", "stderr"]},
    }


def setup_logging(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = None,
    override_existing: bool = False,
) -> None:
    """Apply build_logging_config() once per process; later calls are ignored
    unless `override_existing` is set."""
    global _CONFIGURED

    if _CONFIGURED and not override_existing:
        return

    logging.config.dictConfig(
        build_logging_config(level=level, log_format=log_format, date_format=date_format, job_name=job_name)
    )
    _CONFIGURED = True


def get_tagged_logger(name: str, *, tag: Optional[str] = None) -> TaggedLoggerAdapter:
    """Logger for `name` whose records carry `tag` (default: last name segment)."""
    if tag is None:
        tag = name.rsplit(".", 1)[-1]
    return TaggedLoggerAdapter(logging.getLogger(name), {"tag": tag})


def redact_secret(value: Optional[str], *, keep: int = 4) -> str:
    """Log-safe rendering of a secret: "abcdef123456" -> "********3456"."""
    if not value:
        return "<unset>"
    if len(value) <= keep:
        return "*" * len(value)
    return "*" * (len(value) - keep) + value[-keep:]

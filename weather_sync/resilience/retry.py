"""Bounded retries with exponential backoff and jitter for async operations."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception, stop_after_attempt

from weather_sync.errors import CircuitOpenError, InvalidResponseError, RetryExhausted, TransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="resilience/retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy. Delays are in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    max_jitter: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0 or self.max_jitter < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        """Build the default policy from service settings."""
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            backoff_factor=settings.retry_backoff_factor,
            max_jitter=settings.retry_max_jitter_seconds,
        )


def is_retryable(error: BaseException) -> bool:
    """Return True if another attempt could plausibly succeed.

    Transport failures, timeouts, HTTP 5xx and 429 are retryable; other 4xx
    responses, malformed payloads and open circuits are not. Unknown errors default to retryable.
    """
    if isinstance(error, (CircuitOpenError, InvalidResponseError)):
        return False
    if isinstance(error, (TransportError, TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    status = getattr(error, "status", None)
    if isinstance(status, int):
        if status == 429 or 500 <= status < 600:
            return True
        if 400 <= status < 500:
            return False
    return True


class RetryExecutor:
    """Run an async operation until it succeeds or the retry budget runs out.

    Attempts, waits and the retry decision are delegated to tenacity; this
    class supplies the backoff curve and the error classification, and turns
    tenacity's RetryError into RetryExhausted.
    """

    def __init__(
        self,
        default_config: Optional[RetryConfig] = None,
        *,
        classifier: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.default_config = default_config or RetryConfig()
        self._classifier = classifier
        self._sleep = sleep
        self._jitter = jitter

    def compute_delay(self, attempt: int, config: RetryConfig) -> float:
        """Delay before the retry following zero-indexed failed `attempt`."""
        exponential = config.base_delay * (config.backoff_factor ** attempt)
        return min(exponential + self._jitter(0.0, config.max_jitter), config.max_delay)

    def _should_retry(self, error: BaseException) -> bool:
        # Cancellation is never retried, whatever the classifier says.
        return isinstance(error, Exception) and self._classifier(error)

    def _retrying(self, cfg: RetryConfig, label: str) -> AsyncRetrying:
        total_attempts = cfg.max_retries + 1

        def wait(retry_state: RetryCallState) -> float:
            return self.compute_delay(retry_state.attempt_number - 1, cfg)

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"{label} failed (attempt {retry_state.attempt_number}/{total_attempts}), "
                f"retrying in {delay:.2f}s",
                extra={"label": label, "error": str(exc)},
            )

        return AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(total_attempts),
            wait=wait,
            retry=retry_if_exception(self._should_retry),
            before_sleep=log_retry,
            reraise=False,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        config: Optional[RetryConfig] = None,
        *,
        label: str = "operation",
    ) -> T:
        """
        Await `operation()` up to `max_retries + 1` times.

        Non-retryable errors propagate immediately. When every attempt fails
        with a retryable error, RetryExhausted is raised with the last error
        as its cause.
        """
        cfg = config or self.default_config
        try:
            return await self._retrying(cfg, label)(operation)
        except RetryError as err:
            last_error = err.last_attempt.exception()
            attempts = err.last_attempt.attempt_number
            logger.warning(
                f"{label} failed after {attempts} attempts",
                extra={"label": label, "error": str(last_error)},
            )
            raise RetryExhausted(last_error, attempts) from last_error

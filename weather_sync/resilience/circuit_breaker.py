"""Circuit breaker state machine guarding calls to the weather API.

One breaker exists per endpoint class (current, weekly, historical, search).
It performs no I/O itself: it wraps an arbitrary async operation and decides
whether the operation may run.

CLOSED
    Calls pass through. Failures are counted within a rolling monitoring
    period (the count resets once the period elapses after the last failure).
    Reaching the failure threshold opens the breaker.
OPEN
    Calls are rejected with CircuitOpenError until `reset_timeout` has passed
    since the last failure; the next call then moves the breaker to HALF_OPEN.
HALF_OPEN
    Calls pass through as trial requests. Two consecutive successes close the breaker;
    any failure reopens it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from weather_sync.errors import CircuitOpenError, HttpClientError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="resilience/circuit_breaker")

T = TypeVar("T")

SUCCESSES_TO_CLOSE = 2


class CircuitState(str, Enum):
    """Breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """Mutable bookkeeping for one breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    consecutive_successes: int = 0


def _counts_as_failure(error: BaseException) -> bool:
    """Caller mistakes (4xx other than 429) say nothing about upstream health."""
    return not isinstance(error, HttpClientError)


class CircuitBreaker:
    """Fail fast after repeated failures, then let trial calls through once the reset timeout passes."""

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        monitoring_period: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        is_failure: Callable[[BaseException], bool] = _counts_as_failure,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.monitoring_period = monitoring_period
        self._clock = clock
        self._is_failure = is_failure
        self._state = CircuitBreakerState()

    @classmethod
    def from_settings(cls, name: str, settings, **kwargs) -> "CircuitBreaker":
        return cls(
            name,
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=settings.breaker_reset_timeout_seconds,
            monitoring_period=settings.breaker_monitoring_period_seconds,
            **kwargs,
        )

    @property
    def state(self) -> CircuitState:
        return self._state.state

    def snapshot(self) -> CircuitBreakerState:
        """Copy of the current bookkeeping, safe to hand out."""
        return replace(self._state)

    def reset(self) -> None:
        """Force the breaker back to CLOSED with zeroed counters."""
        self._transition(CircuitState.CLOSED)
        self._state = CircuitBreakerState()

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` if the breaker allows it and record the outcome."""
        self._before_call()
        try:
            result = await operation()
        except Exception as exc:
            if self._is_failure(exc):
                self._on_failure()
            raise
        self._on_success()
        return result

    def _before_call(self) -> None:
        now = self._clock()
        st = self._state

        if (
            st.state == CircuitState.CLOSED
            and st.failure_count
            and now - st.last_failure_time > self.monitoring_period
        ):
            st.failure_count = 0

        if st.state == CircuitState.OPEN:
            elapsed = now - st.last_failure_time
            if elapsed < self.reset_timeout:
                raise CircuitOpenError(self.name, retry_in=self.reset_timeout - elapsed)
            self._transition(CircuitState.HALF_OPEN)
            st.consecutive_successes = 0

    def _on_success(self) -> None:
        st = self._state
        if st.state == CircuitState.HALF_OPEN:
            st.consecutive_successes += 1
            if st.consecutive_successes >= SUCCESSES_TO_CLOSE:
                self._transition(CircuitState.CLOSED)
                st.failure_count = 0
                st.consecutive_successes = 0
        else:
            st.failure_count = 0

    def _on_failure(self) -> None:
        st = self._state
        st.last_failure_time = self._clock()
        st.consecutive_successes = 0
        if st.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        st.failure_count += 1
        if st.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        if old_state == new_state:
            return
        self._state.state = new_state
        if new_state == CircuitState.OPEN:
            logger.error(
                f"CircuitBreaker '{self.name}' OPENED after {self._state.failure_count} failures; "
                f"rejecting calls for {self.reset_timeout:.0f}s"
            )
        elif new_state == CircuitState.HALF_OPEN:
            logger.warning(f"CircuitBreaker '{self.name}' HALF-OPEN. Allowing trial calls.")
        else:
            logger.info(f"CircuitBreaker '{self.name}' CLOSED.")

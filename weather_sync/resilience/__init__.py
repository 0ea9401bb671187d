"""Retry and circuit-breaker wrappers for upstream calls."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerState, CircuitState
from .retry import RetryConfig, RetryExecutor, is_retryable

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "CircuitState",
    "RetryConfig",
    "RetryExecutor",
    "is_retryable",
]

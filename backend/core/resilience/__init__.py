"""Resilience Patterns

Fault tolerance for calls to an unreliable external dependency:
- Circuit breaker that fails fast while the dependency is unhealthy
- Retry policies with configurable backoff and jitter
"""
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitStats,
    is_circuit_open,
)

from .retry import (
    BackoffStrategy,
    RetryAttempt,
    RetryConfig,
    RetryPolicy,
    RetryResult,
    is_transient,
)

__all__ = [
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitStats",
    "is_circuit_open",
    # Retry
    "BackoffStrategy",
    "RetryAttempt",
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "is_transient",
]

"""Circuit Breaker Pattern Implementation

Guards calls to an external dependency with a three-state breaker that
fails fast once the dependency is judged unhealthy, then lets a single
trial call through after a cooldown.

State checks and transitions are plain synchronous methods: under a
single event loop they run to completion without interleaving, so the
breaker can be shared by every call targeting the same dependency.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, TypeVar

from core.errors import (
    AppError,
    AppErrorException,
    ErrorCode,
    ErrorKind,
    ErrorMapper,
    Err,
    Ok,
    Result,
    capture,
    circuit_open,
    precondition_failed,
)
from core.logging import resilience_logger

if TYPE_CHECKING:
    from core.config import Settings

T = TypeVar("T")

log = resilience_logger()


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, requests pass through
    OPEN = "open"            # Failing, requests rejected immediately
    HALF_OPEN = "half_open"  # One trial call in flight


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""
    failure_threshold: int = 5                    # Consecutive failures before opening
    open_timeout_seconds: float = 30.0            # Time since last failure before a trial
    monitor_window_seconds: float | None = 60.0   # Max gap between failures that still chain
    excluded_kinds: frozenset[ErrorKind] = field(
        default_factory=lambda: frozenset({ErrorKind.VALIDATION})
    )

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise AppErrorException(precondition_failed(
                "failure_threshold >= 1", f"got {self.failure_threshold}", origin="circuit_breaker",
            ).error)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> CircuitBreakerConfig:
        """Build a config from application settings."""
        values = {
            "failure_threshold": settings.BREAKER_FAILURE_THRESHOLD,
            "open_timeout_seconds": settings.BREAKER_OPEN_TIMEOUT,
            "monitor_window_seconds": settings.BREAKER_MONITOR_WINDOW,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class CircuitStats:
    """Statistics for a circuit breaker."""
    state: CircuitState
    consecutive_failures: int
    last_failure_at: float | None
    last_success_at: float | None
    last_state_change_at: float
    total_requests: int
    total_failures: int
    total_successes: int
    total_rejected: int


class CircuitBreaker(Generic[T]):
    """Circuit breaker for external service protection.

    Tracks consecutive failures and opens when the threshold is reached.
    After open_timeout_seconds since the last failure, one trial call is
    allowed through; its outcome closes or re-opens the circuit.

    Usage:
        breaker = CircuitBreaker("product-api", config)

        async def create():
            return Ok(await api.create(payload))

        result = await breaker.call(create)
        match result:
            case Ok(created):
                ...
            case Err(error) if error.code is ErrorCode.E1012_CIRCUIT_OPEN:
                ...
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        mapper: ErrorMapper | None = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._mapper = mapper
        self._reset_state()
        self._total_requests = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_rejected = 0

    def _reset_state(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trial_in_flight = False
        self._last_failure: float | None = None
        self._last_success: float | None = None
        self._last_state_change = self._now()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure

    @property
    def stats(self) -> CircuitStats:
        return CircuitStats(
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            last_failure_at=self._last_failure,
            last_success_at=self._last_success,
            last_state_change_at=self._last_state_change,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            total_rejected=self._total_rejected,
        )

    def _now(self) -> float:
        return self._clock()

    def _open_timeout_elapsed(self) -> bool:
        if self._last_failure is None:
            return True
        return self._now() - self._last_failure >= self.config.open_timeout_seconds

    def retry_after(self) -> float:
        """Seconds until an open circuit admits a trial call."""
        if self._state is not CircuitState.OPEN or self._last_failure is None:
            return 0.0
        return max(0.0, self.config.open_timeout_seconds - (self._now() - self._last_failure))

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_state_change = self._now()

        if new_state is CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._trial_in_flight = False
        elif new_state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False

        log_method = log.warning if new_state is CircuitState.OPEN else log.info
        log_method(
            "circuit_state_changed",
            breaker=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            consecutive_failures=self._consecutive_failures,
        )

    def _counts_as_failure(self, error: AppError) -> bool:
        """Errors of an excluded kind mean the dependency answered."""
        return error.kind not in self.config.excluded_kinds

    def allow_request(self) -> bool:
        """Check if a call may proceed, moving OPEN -> HALF_OPEN when due.

        Never suspends. A rejected call does not touch the failure count.
        """
        self._total_requests += 1

        if self._state is CircuitState.OPEN:
            if not self._open_timeout_elapsed():
                self._total_rejected += 1
                return False
            self._transition_to(CircuitState.HALF_OPEN)

        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._total_rejected += 1
                return False
            self._trial_in_flight = True

        return True

    def record_success(self) -> None:
        """Record a healthy response."""
        self._total_successes += 1
        self._last_success = self._now()

        if self._state is CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)
        else:
            self._consecutive_failures = 0

    def record_failure(self) -> None:
        """Record a failed call."""
        now = self._now()
        self._total_failures += 1

        if self._state is CircuitState.HALF_OPEN:
            self._last_failure = now
            self._transition_to(CircuitState.OPEN)
            return

        window = self.config.monitor_window_seconds
        if (
            window is not None
            and self._last_failure is not None
            and now - self._last_failure > window
        ):
            self._consecutive_failures = 0

        self._consecutive_failures += 1
        self._last_failure = now

        if self._state is CircuitState.CLOSED and self._consecutive_failures >= self.config.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    async def call(
        self,
        fn: Callable[[], Awaitable[Result[T, AppError]]],
    ) -> Result[T, AppError]:
        """Execute function through circuit breaker.

        Returns the function result if circuit allows execution.
        Returns Err(circuit_open) without invoking fn if circuit is open.
        """
        if not self.allow_request():
            log.debug("circuit_rejected", breaker=self.name, state=self._state.value)
            return circuit_open(self.name, retry_after=self.retry_after(), origin="circuit_breaker")

        try:
            result = await capture(fn, self._mapper)
        except asyncio.CancelledError:
            # a cancelled trial must not pin the breaker half-open
            self._trial_in_flight = False
            raise

        match result:
            case Ok(_):
                self.record_success()
            case Err(error) if self._counts_as_failure(error):
                self.record_failure()
            case Err(_):
                self.record_success()

        return result

    def reset(self) -> None:
        """Manually reset circuit to closed state with zeroed counters."""
        self._reset_state()
        log.info("circuit_reset", breaker=self.name)


def is_circuit_open(error: AppError) -> bool:
    return error.code is ErrorCode.E1012_CIRCUIT_OPEN

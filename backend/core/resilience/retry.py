"""Retry Policies with Exponential Backoff and Jitter

Wraps a single fallible async operation with bounded retries. Delays grow
by the configured backoff strategy, are capped at max_delay_seconds and
optionally scaled by a random factor in [0.5, 1.0) to decorrelate callers.
"""
from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, TypeVar

from core.errors import (
    AppError,
    AppErrorException,
    ErrorKind,
    ErrorMapper,
    Err,
    Ok,
    Result,
    capture,
    precondition_failed,
)
from core.logging import resilience_logger

if TYPE_CHECKING:
    from core.config import Settings

T = TypeVar("T")

log = resilience_logger()


def is_transient(error: AppError) -> bool:
    """Default retry predicate: only transient failures are retried."""
    return error.kind is ErrorKind.TRANSIENT


class BackoffStrategy(Enum):
    """Available backoff strategies."""
    CONSTANT = auto()     # Fixed delay between retries
    LINEAR = auto()       # Linearly increasing delay
    EXPONENTIAL = auto()  # base * factor ** (attempt - 1)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    retry_predicate: Callable[[AppError], bool] = field(default=is_transient, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise AppErrorException(precondition_failed(
                "max_attempts >= 1", f"got {self.max_attempts}", origin="retry_config",
            ).error)
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise AppErrorException(precondition_failed(
                "delays must be non-negative", origin="retry_config",
            ).error)
        if self.backoff_factor < 1:
            raise AppErrorException(precondition_failed(
                "backoff_factor >= 1", f"got {self.backoff_factor}", origin="retry_config",
            ).error)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> RetryConfig:
        """Build a config from application settings."""
        values = {
            "max_attempts": settings.RETRY_MAX_ATTEMPTS,
            "base_delay_seconds": settings.RETRY_BASE_DELAY,
            "max_delay_seconds": settings.RETRY_MAX_DELAY,
            "backoff_factor": settings.RETRY_BACKOFF_FACTOR,
            "jitter": settings.RETRY_JITTER,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class RetryAttempt:
    """Information about a single attempt."""
    attempt_number: int
    started_at: datetime
    delay_seconds: float = 0.0  # wait before the next attempt, 0 if none followed
    error: AppError | None = None


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation with full attempt history."""
    result: Result[T, AppError]
    attempts: list[RetryAttempt]
    total_duration_seconds: float

    @property
    def succeeded(self) -> bool:
        return self.result.is_ok()

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def delays(self) -> list[float]:
        return [a.delay_seconds for a in self.attempts if a.delay_seconds > 0]


class BackoffCalculator(ABC):
    """Abstract base for backoff delay calculation."""

    @abstractmethod
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        """Calculate delay in seconds after given attempt number (1-indexed)."""


class ConstantBackoff(BackoffCalculator):
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        return min(config.base_delay_seconds, config.max_delay_seconds)


class LinearBackoff(BackoffCalculator):
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        delay = config.base_delay_seconds * attempt
        return min(delay, config.max_delay_seconds)


class ExponentialBackoff(BackoffCalculator):
    def calculate(self, attempt: int, config: RetryConfig) -> float:
        delay = config.base_delay_seconds * (config.backoff_factor ** (attempt - 1))
        return min(delay, config.max_delay_seconds)


_CALCULATORS: dict[BackoffStrategy, BackoffCalculator] = {
    BackoffStrategy.CONSTANT: ConstantBackoff(),
    BackoffStrategy.LINEAR: LinearBackoff(),
    BackoffStrategy.EXPONENTIAL: ExponentialBackoff(),
}


def get_backoff_calculator(strategy: BackoffStrategy) -> BackoffCalculator:
    """Factory for backoff calculators."""
    return _CALCULATORS[strategy]


class RetryPolicy(Generic[T]):
    """Configurable retry policy for operations that may fail transiently.

    Usage:
        policy = RetryPolicy(RetryConfig(max_attempts=3))

        async def create_product():
            return Ok(await api.create(payload))

        outcome = await policy.execute(create_product)
        match outcome.result:
            case Ok(created):
                process(created)
            case Err(error):
                log.error("create_failed", attempts=outcome.attempt_count)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        mapper: ErrorMapper | None = None,
    ):
        self.config = config or RetryConfig()
        self._calculator = get_backoff_calculator(self.config.strategy)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._mapper = mapper

    def base_delay(self, attempt: int) -> float:
        """Delay after `attempt` before jitter is applied."""
        return self._calculator.calculate(attempt, self.config)

    def delay(self, attempt: int) -> float:
        """Delay to wait after failed `attempt`, jitter included."""
        delay = self.base_delay(attempt)
        if self.config.jitter:
            delay *= 0.5 + self._rng.random() * 0.5
        return delay

    def should_retry(self, error: AppError, attempt: int) -> bool:
        """Determine if retry should be attempted."""
        if attempt >= self.config.max_attempts:
            return False
        return bool(self.config.retry_predicate(error))

    async def execute(
        self,
        fn: Callable[[], Awaitable[Result[T, AppError]]],
        on_retry: Callable[[int, AppError, float], Awaitable[None]] | None = None,
    ) -> RetryResult[T]:
        """Execute function with retry policy.

        Args:
            fn: Async function returning Result; raised exceptions are classified
            on_retry: Optional callback before each retry (attempt, error, delay)

        Returns:
            RetryResult with final result and attempt history. A final Err
            carries the attempt count in its metadata.
        """
        attempts: list[RetryAttempt] = []
        start_time = datetime.now(timezone.utc)

        for attempt in range(1, self.config.max_attempts + 1):
            record = RetryAttempt(attempt_number=attempt, started_at=datetime.now(timezone.utc))
            attempts.append(record)

            result = await capture(fn, self._mapper)

            match result:
                case Ok(_):
                    return self._finish(result, attempts, start_time)

                case Err(error):
                    record.error = error

                    if not self.should_retry(error, attempt):
                        if attempt >= self.config.max_attempts and self.config.retry_predicate(error):
                            log.warning(
                                "retry_exhausted",
                                attempts=attempt,
                                error_code=error.code.name,
                                message=error.message,
                            )
                        annotated = error.with_metadata(attempts=attempt)
                        return self._finish(Err(annotated), attempts, start_time)

                    delay = self.delay(attempt)
                    record.delay_seconds = delay
                    log.info(
                        "retry_scheduled",
                        attempt=attempt,
                        max_attempts=self.config.max_attempts,
                        delay_seconds=round(delay, 3),
                        error_code=error.code.name,
                    )

                    if on_retry:
                        await on_retry(attempt, error, delay)

                    await self._sleep(delay)

        # Unreachable: the final attempt always returns above
        raise AssertionError("retry loop exited without a result")

    def _finish(
        self,
        result: Result[T, AppError],
        attempts: list[RetryAttempt],
        start_time: datetime,
    ) -> RetryResult[T]:
        end_time = datetime.now(timezone.utc)
        return RetryResult(
            result=result,
            attempts=attempts,
            total_duration_seconds=(end_time - start_time).total_seconds(),
        )

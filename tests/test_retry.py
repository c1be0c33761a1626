"""Tests for ``core.resilience.retry``: retry policy and backoff."""

from __future__ import annotations

import random

import pytest

from core.errors import (
    AppErrorException,
    ErrorKind,
    Err,
    Ok,
    circuit_open,
    http_error,
    network_error,
    validation_error,
)
from core.resilience import BackoffStrategy, RetryConfig, RetryPolicy, is_transient


class FlakyOperation:
    """Fails with the given errors in order, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            error = self.errors.pop(0)
            if isinstance(error, Exception):
                raise error
            return error
        return Ok("created")


class TestRetryConfig:
    def test_rejects_zero_attempts(self):
        with pytest.raises(AppErrorException):
            RetryConfig(max_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(AppErrorException):
            RetryConfig(base_delay_seconds=-1)

    def test_rejects_shrinking_backoff(self):
        with pytest.raises(AppErrorException):
            RetryConfig(backoff_factor=0.5)

    def test_from_settings_with_overrides(self):
        from core.config import Settings

        config = RetryConfig.from_settings(Settings(RETRY_MAX_ATTEMPTS=7), jitter=False)
        assert config.max_attempts == 7
        assert config.jitter is False


class TestExecute:
    @pytest.mark.asyncio
    async def test_transient_failures_then_success(self, sleep):
        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay_seconds=0.1, jitter=False), sleep=sleep)
        operation = FlakyOperation(network_error("reset"), network_error("reset"))

        outcome = await policy.execute(operation)

        assert outcome.succeeded
        assert outcome.result == Ok("created")
        assert outcome.attempt_count == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_never_exceeds_max_attempts(self, sleep):
        policy = RetryPolicy(RetryConfig(max_attempts=4, jitter=False), sleep=sleep)
        operation = FlakyOperation(*[network_error("down")] * 10)

        outcome = await policy.execute(operation)

        assert operation.calls == 4
        assert outcome.attempt_count == 4
        assert len(sleep.delays) == 3
        match outcome.result:
            case Err(error):
                assert error.metadata["attempts"] == 4
            case _:
                pytest.fail("expected the last error")

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, sleep):
        policy = RetryPolicy(RetryConfig(max_attempts=1), sleep=sleep)
        outcome = await policy.execute(FlakyOperation(network_error("down")))

        assert not outcome.succeeded
        assert sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        validation_error("Name is required").error,
        http_error(422, "unprocessable").error,
        http_error(404).error,
        circuit_open("api", retry_after=5).error,
    ])
    async def test_non_transient_errors_are_not_retried(self, sleep, error):
        policy = RetryPolicy(RetryConfig(max_attempts=5), sleep=sleep)
        operation = FlakyOperation(Err(error))

        outcome = await policy.execute(operation)

        assert operation.calls == 1
        assert outcome.attempt_count == 1
        assert not outcome.succeeded
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_raised_exceptions_are_classified(self, sleep):
        policy = RetryPolicy(RetryConfig(max_attempts=3, jitter=False), sleep=sleep)
        operation = FlakyOperation(ConnectionError("reset by peer"), TimeoutError())

        outcome = await policy.execute(operation)

        assert outcome.succeeded
        assert operation.calls == 3
        assert [a.error.kind for a in outcome.attempts[:2]] == [ErrorKind.TRANSIENT, ErrorKind.TRANSIENT]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_permanent(self, sleep):
        policy = RetryPolicy(RetryConfig(max_attempts=3), sleep=sleep)
        operation = FlakyOperation(KeyError("price"))

        outcome = await policy.execute(operation)

        assert operation.calls == 1
        match outcome.result:
            case Err(error):
                assert error.kind is ErrorKind.PERMANENT
                assert isinstance(error.cause, KeyError)
            case _:
                pytest.fail("expected an error")

    @pytest.mark.asyncio
    async def test_custom_predicate(self, sleep):
        config = RetryConfig(max_attempts=3, retry_predicate=lambda e: e.status_code == 409)
        policy = RetryPolicy(config, sleep=sleep)
        operation = FlakyOperation(http_error(409, "conflict"))

        outcome = await policy.execute(operation)

        assert outcome.succeeded
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, sleep):
        seen = []

        async def on_retry(attempt, error, delay):
            seen.append((attempt, error.code.name, delay))

        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay_seconds=1.0, jitter=False), sleep=sleep)
        await policy.execute(FlakyOperation(network_error("x")), on_retry=on_retry)

        assert seen == [(1, "E1000_NETWORK_GENERIC", 1.0)]


class TestBackoff:
    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy(RetryConfig(
            max_attempts=10, base_delay_seconds=1.0, max_delay_seconds=5.0, backoff_factor=2.0, jitter=False,
        ))
        assert [policy.delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_delays_are_non_decreasing(self):
        policy = RetryPolicy(RetryConfig(
            max_attempts=20, base_delay_seconds=0.3, max_delay_seconds=7.0, backoff_factor=1.7, jitter=False,
        ))
        delays = [policy.delay(n) for n in range(1, 20)]
        assert delays == sorted(delays)
        assert max(delays) <= 7.0

    def test_linear_and_constant(self):
        linear = RetryPolicy(RetryConfig(base_delay_seconds=2.0, strategy=BackoffStrategy.LINEAR, jitter=False))
        constant = RetryPolicy(RetryConfig(base_delay_seconds=2.0, strategy=BackoffStrategy.CONSTANT, jitter=False))

        assert [linear.delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]
        assert [constant.delay(n) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]

    def test_jitter_stays_within_half_to_full_delay(self):
        policy = RetryPolicy(
            RetryConfig(base_delay_seconds=1.0, max_delay_seconds=8.0, jitter=True),
            rng=random.Random(42),
        )
        for attempt in range(1, 6):
            base = policy.base_delay(attempt)
            for _ in range(50):
                delay = policy.delay(attempt)
                assert 0.5 * base <= delay <= base

    def test_jitter_is_reproducible_with_seeded_rng(self):
        config = RetryConfig(base_delay_seconds=1.0, jitter=True)
        first = RetryPolicy(config, rng=random.Random(7))
        second = RetryPolicy(config, rng=random.Random(7))
        assert [first.delay(n) for n in range(1, 4)] == [second.delay(n) for n in range(1, 4)]


def test_is_transient():
    assert is_transient(network_error("x").error)
    assert is_transient(http_error(503).error)
    assert is_transient(http_error(429).error)
    assert not is_transient(http_error(400).error)
    assert not is_transient(circuit_open("api").error)

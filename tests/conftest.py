"""
Shared pytest fixtures for bulk-dispatch tests.

This module provides:
- A controllable clock for circuit breaker timing
- A recording sleep so retry backoff never waits
- A product schema and record builders
- A scripted submit function with call tracking
"""

import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure backend packages are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from core.resilience import CircuitBreaker, CircuitBreakerConfig, RetryConfig, RetryPolicy
from core.validation import FieldConstraints, FieldRule, FieldType, ValidationSchema
from engines import BatchDispatcher
from models import Record


# =============================================================================
# Time Control
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# Submit Doubles
# =============================================================================


class ScriptedSubmit:
    """Submit function driven by a script of exceptions per call.

    Each call pops the next scripted entry: an exception instance is raised,
    anything else is returned. When the script runs out, calls succeed with
    a server payload echoing the record.
    """

    def __init__(self, *script: Any):
        self.script = list(script)
        self.calls: list[str] = []

    async def __call__(self, record: Record) -> Any:
        self.calls.append(record.client_id)
        if self.script:
            step = self.script.pop(0)
            if isinstance(step, BaseException):
                raise step
            return step
        return {"id": f"srv-{len(self.calls)}", **record.to_dict()}


@pytest.fixture
def submit_ok() -> ScriptedSubmit:
    return ScriptedSubmit()


@pytest.fixture
def scripted_submit() -> type[ScriptedSubmit]:
    return ScriptedSubmit


# =============================================================================
# Schema and Records
# =============================================================================


@pytest.fixture
def product_schema() -> ValidationSchema:
    return ValidationSchema(
        [
            FieldRule("name", required=True),
            FieldRule(
                "code",
                type=FieldType.PATTERN,
                required=True,
                constraints=FieldConstraints(pattern=r"[A-Z]{3}-\d{4}", unique=True),
            ),
            FieldRule("price", type=FieldType.NUMBER, required=True, constraints=FieldConstraints(min=0)),
            FieldRule("contact_email", type=FieldType.EMAIL),
        ],
        name="product",
    )


def make_product(n: int = 1, **overrides: Any) -> Record:
    values = {"name": f"Product {n}", "code": f"PRD-{n:04d}", "price": 10 * n}
    values.update(overrides)
    return Record(values, client_id=f"rec-{n}")


@pytest.fixture
def make_record():
    return make_product


@pytest.fixture
def products() -> list[Record]:
    return [make_product(n) for n in range(1, 4)]


# =============================================================================
# Resilience
# =============================================================================


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(
        "test-api",
        CircuitBreakerConfig(failure_threshold=5, open_timeout_seconds=30.0, monitor_window_seconds=60.0),
        clock=clock,
    )


@pytest.fixture
def retry_policy(sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(RetryConfig(max_attempts=3, base_delay_seconds=0.1, jitter=False), sleep=sleep)


@pytest.fixture
def dispatcher(retry_policy: RetryPolicy, breaker: CircuitBreaker) -> BatchDispatcher:
    return BatchDispatcher(retry_policy, breaker)

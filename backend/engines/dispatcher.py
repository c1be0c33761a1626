"""Batch Dispatch Engine

Validates a batch of records, then submits each valid record in input
order through a retry policy wrapped around a circuit breaker:

    retry_policy.execute(lambda: breaker.call(lambda: submit_fn(record)))

Every retry attempt passes the breaker's fast-fail check on its own, so a
breaker that opens mid-batch cuts short later retries and later records.
A record's failure is captured in its OperationOutcome and never aborts
the batch. Only contract violations (duplicate record ids, a non-schema
schema) raise out of the dispatcher.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterable, Mapping

from core.config import Settings, settings as default_settings
from core.errors import (
    AppError,
    AppErrorException,
    Err,
    Ok,
    Result,
    internal_error,
    precondition_failed,
    record_invalid,
    state_conflict,
)
from core.logging import bind_context, dispatch_logger, generate_batch_id, unbind_context
from core.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    RetryPolicy,
    is_circuit_open,
)
from core.validation import RuleContext, ValidationSchema, validate_batch
from models import BatchRun, OperationOutcome, OutcomeStatus, ProgressEvent, Record

log = dispatch_logger()

SubmitFn = Callable[[Record], Awaitable[Any]]
ProgressCallback = Callable[[ProgressEvent], "Awaitable[None] | None"]


@dataclass(frozen=True)
class DispatchOptions:
    """Per-run switches.

    require_full_validity: submit nothing unless every record is valid.
    should_cancel: polled before each record; True cancels the rest.
    """
    require_full_validity: bool = False
    should_cancel: Callable[[], bool] | None = None

    def cancel_requested(self) -> bool:
        return bool(self.should_cancel and self.should_cancel())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: datetime) -> float:
    return (_now() - start).total_seconds() * 1000


def _cancelled(
    index: int,
    record: Record,
    errors: Mapping[str, str] | None = None,
    reason: str = "cancelled",
) -> OperationOutcome:
    return OperationOutcome(
        record_id=record.client_id,
        index=index,
        status=OutcomeStatus.CANCELLED,
        result={"reason": reason},
        validation_errors=dict(errors or {}),
    )


def _close_run(run: BatchRun) -> int:
    """Record every unreached record as cancelled and stamp completion.

    Returns how many records were cancelled this way.
    """
    missing = range(len(run.outcomes), run.total)
    for index in missing:
        run.outcomes.append(_cancelled(index, run.records[index], reason="stream_closed"))
    if run.completed_at is None:
        run.completed_at = _now()
    return len(missing)


class BatchStream:
    """A single dispatch run exposed as an async iterator of ProgressEvents.

    Finite and non-restartable: it can be iterated once. The BatchRun it
    fills is available as `.run` throughout. A consumer that stops early
    should call aclose(); the records not yet reached are then recorded
    as cancelled.
    """

    def __init__(self, run: BatchRun, events: AsyncGenerator[ProgressEvent, None]):
        self.run = run
        self._events = events
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        if self._consumed:
            raise AppErrorException(state_conflict(
                f"Batch {self.run.batch_id}", "consumed", "fresh", origin="dispatcher",
            ).error)
        self._consumed = True
        return self._events

    async def drain(self, on_progress: ProgressCallback | None = None) -> BatchRun:
        """Consume every event, forwarding each to on_progress."""
        async for event in self:
            if on_progress is not None:
                maybe = on_progress(event)
                if inspect.isawaitable(maybe):
                    await maybe
        return self.run

    async def aclose(self) -> None:
        """Stop the stream, started or not; unreached records become cancelled."""
        await self._events.aclose()
        self._consumed = True
        # An unstarted generator closes without running its cleanup
        cancelled = _close_run(self.run)
        if cancelled:
            log.info("batch_closed", batch_id=self.run.batch_id, cancelled=cancelled, total=self.run.total)


class BatchDispatcher:
    """Sequential, resilient bulk submission of records.

    Usage:
        breaker = CircuitBreaker("product-api", CircuitBreakerConfig(failure_threshold=5))
        dispatcher = BatchDispatcher(RetryPolicy(RetryConfig(max_attempts=3)), breaker)

        run = await dispatcher.run(records, schema, api.create_product, on_progress=show)
        print(run.summary())
    """

    __slots__ = ("retry_policy", "breaker")

    def __init__(self, retry_policy: RetryPolicy, breaker: CircuitBreaker):
        self.retry_policy = retry_policy
        self.breaker = breaker

    @classmethod
    def from_settings(cls, name: str, settings: Settings | None = None) -> BatchDispatcher:
        """Dispatcher with a fresh breaker and retry policy built from settings."""
        s = settings or default_settings
        return cls(
            RetryPolicy(RetryConfig.from_settings(s)),
            CircuitBreaker(name, CircuitBreakerConfig.from_settings(s)),
        )

    async def run(
        self,
        records: Iterable[Record],
        schema: ValidationSchema,
        submit_fn: SubmitFn,
        *,
        context: RuleContext | None = None,
        options: DispatchOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchRun:
        """Dispatch a batch and return the completed BatchRun."""
        stream = self.stream(records, schema, submit_fn, context=context, options=options)
        return await stream.drain(on_progress)

    def stream(
        self,
        records: Iterable[Record],
        schema: ValidationSchema,
        submit_fn: SubmitFn,
        *,
        context: RuleContext | None = None,
        options: DispatchOptions | None = None,
    ) -> BatchStream:
        """Prepare a dispatch run; nothing happens until it is iterated.

        Raises AppErrorException on contract violations.
        """
        batch = tuple(records)
        self._check_contract(batch, schema)
        run = BatchRun(batch_id=generate_batch_id(), records=batch)
        events = self._events(run, schema, submit_fn, context or RuleContext(), options or DispatchOptions())
        return BatchStream(run, events)

    def _check_contract(self, records: tuple[Record, ...], schema: ValidationSchema) -> None:
        if not isinstance(schema, ValidationSchema):
            raise AppErrorException(precondition_failed(
                "schema is a ValidationSchema", f"got {type(schema).__name__}", origin="dispatcher",
            ).error)
        seen: set[str] = set()
        duplicates: list[str] = []
        for record in records:
            if not isinstance(record, Record):
                raise AppErrorException(precondition_failed(
                    "batch items are Records", f"got {type(record).__name__}", origin="dispatcher",
                ).error)
            if record.client_id in seen:
                duplicates.append(record.client_id)
            seen.add(record.client_id)
        if duplicates:
            raise AppErrorException(precondition_failed(
                "record client ids are unique", f"duplicated: {', '.join(duplicates[:5])}",
                origin="dispatcher", duplicates=duplicates,
            ).error)

    async def _events(
        self,
        run: BatchRun,
        schema: ValidationSchema,
        submit_fn: SubmitFn,
        context: RuleContext,
        options: DispatchOptions,
    ) -> AsyncGenerator[ProgressEvent, None]:
        bind_context(batch_id=run.batch_id)
        run.started_at = _now()
        try:
            for record in run.records:
                record.freeze()

            log.info("batch_started", total=run.total, schema=schema.name, breaker=self.breaker.name)
            invalid = validate_batch(run.records, schema, context)

            if invalid and options.require_full_validity:
                run.aborted = True
                log.warning("batch_aborted", invalid=len(invalid), total=run.total)
                for index, record in enumerate(run.records):
                    errors = invalid.get(record.client_id)
                    outcome = (
                        self._skipped(run, index, record, errors) if errors
                        else _cancelled(index, record, reason="batch_invalid")
                    )
                    yield self._append(run, outcome)
                return

            cancelled = False
            for index, record in enumerate(run.records):
                if not cancelled and options.cancel_requested():
                    cancelled = True
                    log.info("batch_cancelled", completed=len(run.outcomes), total=run.total)

                if cancelled:
                    outcome = _cancelled(index, record, invalid.get(record.client_id))
                elif record.client_id in invalid:
                    outcome = self._skipped(run, index, record, invalid[record.client_id])
                else:
                    outcome = await self._dispatch(run, index, record, submit_fn)
                yield self._append(run, outcome)
        finally:
            _close_run(run)
            log.info(
                "batch_completed",
                duration_seconds=round(run.duration_seconds or 0.0, 3),
                breaker_state=self.breaker.state.value,
                **run.summary(),
            )
            unbind_context("batch_id")

    def _append(self, run: BatchRun, outcome: OperationOutcome) -> ProgressEvent:
        run.outcomes.append(outcome)
        progress = run.progress
        return ProgressEvent(completed=progress.completed, total=progress.total, last_outcome=outcome)

    def _skipped(
        self, run: BatchRun, index: int, record: Record, errors: Mapping[str, str],
    ) -> OperationOutcome:
        log.info("record_skipped", record_id=record.client_id, index=index, fields=sorted(errors))
        error = record_invalid(record.client_id, dict(errors), origin="dispatcher").error
        return OperationOutcome(
            record_id=record.client_id,
            index=index,
            status=OutcomeStatus.SKIPPED,
            error=error.with_context(batch_id=run.batch_id, record_id=record.client_id),
            validation_errors=dict(errors),
        )

    async def _dispatch(
        self, run: BatchRun, index: int, record: Record, submit_fn: SubmitFn,
    ) -> OperationOutcome:
        started = _now()

        async def submit() -> Result[Any, AppError]:
            return Ok(await submit_fn(record))

        async def guarded() -> Result[Any, AppError]:
            return await self.breaker.call(submit)

        async def on_retry(attempt: int, error: AppError, delay: float) -> None:
            log.info(
                "record_retry",
                record_id=record.client_id,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error_code=error.code.name,
            )

        try:
            retry = await self.retry_policy.execute(guarded, on_retry=on_retry)
            result, attempt_count = retry.result, retry.attempt_count
        except Exception as e:
            result = internal_error(f"Dispatch failed: {e}", origin="dispatcher", cause=e)
            attempt_count = 0

        match result:
            case Ok(value):
                if isinstance(value, Mapping) and value.get("id") is not None:
                    record.server_id = str(value["id"])
                log.info("record_succeeded", record_id=record.client_id, index=index, attempts=attempt_count)
                return OperationOutcome(
                    record_id=record.client_id,
                    index=index,
                    status=OutcomeStatus.SUCCEEDED,
                    attempt_count=attempt_count,
                    result=value,
                    duration_ms=_elapsed_ms(started),
                )
            case Err(error):
                log.warning(
                    "record_failed",
                    record_id=record.client_id,
                    index=index,
                    attempts=attempt_count,
                    error_code=error.code.name,
                    circuit_open=is_circuit_open(error),
                    message=error.message,
                )
                return OperationOutcome(
                    record_id=record.client_id,
                    index=index,
                    status=OutcomeStatus.FAILED,
                    attempt_count=attempt_count,
                    error=error.with_context(batch_id=run.batch_id, record_id=record.client_id),
                    duration_ms=_elapsed_ms(started),
                )

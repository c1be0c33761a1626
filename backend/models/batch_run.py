"""Batch Run Models

Outcome bookkeeping for one dispatcher invocation. A BatchRun is owned
by the run that created it; its to_dict() form is the reporting contract
(counts, per-record errors, per-record server results).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.errors import AppError

from .record import Record


class OutcomeStatus(str, Enum):
    """Terminal state of one record in a batch."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"      # failed pre-submit validation, never submitted
    CANCELLED = "cancelled"  # never attempted


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """What happened to one record. Produced exactly once per record."""
    record_id: str
    index: int
    status: OutcomeStatus
    attempt_count: int = 0
    result: Any = None
    error: AppError | None = None
    validation_errors: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "record_id": self.record_id,
            "index": self.index,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.validation_errors:
            data["validation_errors"] = dict(self.validation_errors)
        return data


@dataclass(frozen=True, slots=True)
class Progress:
    completed: int
    total: int

    @property
    def fraction(self) -> float:
        return 1.0 if self.total == 0 else self.completed / self.total


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Emitted after every record."""
    completed: int
    total: int
    last_outcome: OperationOutcome


@dataclass
class BatchRun:
    """State and result of one batch dispatch."""
    batch_id: str
    records: tuple[Record, ...]
    outcomes: list[OperationOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    aborted: bool = False

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def progress(self) -> Progress:
        return Progress(completed=len(self.outcomes), total=self.total)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def cancelled(self) -> int:
        return self._count(OutcomeStatus.CANCELLED)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def outcome_for(self, record_id: str) -> OperationOutcome | None:
        for outcome in self.outcomes:
            if outcome.record_id == record_id:
                return outcome
        return None

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reporting collaborators."""
        return {
            "batch_id": self.batch_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "aborted": self.aborted,
            "counts": self.summary(),
            "progress": {"completed": self.progress.completed, "total": self.progress.total},
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

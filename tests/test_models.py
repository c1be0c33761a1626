"""Tests for ``models``: records and batch run bookkeeping."""

from __future__ import annotations

import pytest

from core.errors import AppErrorException, ErrorCode, network_error
from models import BatchRun, OperationOutcome, OutcomeStatus, Record


class TestRecord:
    def test_generates_client_id(self):
        first, second = Record(), Record()
        assert first.client_id and second.client_id
        assert first.client_id != second.client_id
        assert first.server_id is None

    def test_mapping_behaviour(self):
        record = Record({"name": "Lamp"}, price=3)
        record["stock"] = 4
        del record["price"]

        assert dict(record) == {"name": "Lamp", "stock": 4}
        assert record.get("price") is None
        assert len(record) == 2

    def test_frozen_record_rejects_edits(self):
        record = Record({"name": "Lamp"}).freeze()

        with pytest.raises(AppErrorException) as exc_info:
            record["name"] = "Chair"
        assert exc_info.value.error.code is ErrorCode.E5002_STATE_CONFLICT

        with pytest.raises(AppErrorException):
            del record["name"]
        assert record["name"] == "Lamp"

    def test_to_dict_is_a_copy(self):
        record = Record({"name": "Lamp"})
        data = record.to_dict()
        data["name"] = "Chair"
        assert record["name"] == "Lamp"


def outcome(index: int, status: OutcomeStatus, **kwargs) -> OperationOutcome:
    return OperationOutcome(record_id=f"r{index}", index=index, status=status, **kwargs)


class TestBatchRun:
    def test_counts_and_progress(self):
        records = tuple(Record(client_id=f"r{i}") for i in range(4))
        run = BatchRun(batch_id="b1", records=records)
        run.outcomes.extend([
            outcome(0, OutcomeStatus.SUCCEEDED, attempt_count=1),
            outcome(1, OutcomeStatus.FAILED, attempt_count=3, error=network_error("down").error),
        ])

        assert run.progress.completed == 2
        assert run.progress.fraction == 0.5
        assert run.summary() == {"total": 4, "succeeded": 1, "failed": 1, "skipped": 0, "cancelled": 0}
        assert not run.is_complete
        assert run.duration_seconds is None
        assert run.outcome_for("r1").attempt_count == 3
        assert run.outcome_for("missing") is None

    def test_to_dict(self):
        run = BatchRun(batch_id="b1", records=(Record(client_id="r0"),))
        run.outcomes.append(outcome(
            0, OutcomeStatus.SKIPPED, validation_errors={"name": "Name is required"},
        ))

        data = run.to_dict()

        assert data["batch_id"] == "b1"
        assert data["counts"]["skipped"] == 1
        assert data["progress"] == {"completed": 1, "total": 1}
        assert data["outcomes"][0]["status"] == "skipped"
        assert data["outcomes"][0]["validation_errors"] == {"name": "Name is required"}
        assert "error" not in data["outcomes"][0]

    def test_failed_outcome_serializes_error(self):
        failed = outcome(0, OutcomeStatus.FAILED, error=network_error("down").error)
        data = failed.to_dict()
        assert data["error"]["code"] == "E1000_NETWORK_GENERIC"
        assert data["error"]["kind"] == "transient"
        assert not failed.succeeded

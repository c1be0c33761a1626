from models.record import Record
from models.batch_run import (
    BatchRun,
    OperationOutcome,
    OutcomeStatus,
    Progress,
    ProgressEvent,
)

__all__ = [
    "Record",
    "BatchRun", "OperationOutcome", "OutcomeStatus", "Progress", "ProgressEvent",
]

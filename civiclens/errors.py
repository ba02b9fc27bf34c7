"""
Error taxonomy for CivicLens.

ValidationError   - user-correctable input, carries a reason string
NotFoundError     - referenced record id is absent
StageError        - a pipeline stage failed; aborts the current workflow
StorageError      - a record store operation failed
AnalysisInProgressError - another analysis run currently holds the writer slot

Nothing here is retried automatically.
"""

from typing import Optional


class CivicLensError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(CivicLensError):
    """Complaint payload or text rejected."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(CivicLensError):
    """Referenced id does not exist in the store."""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"{table} record not found: {record_id}")
        self.table = table
        self.record_id = record_id


class StageError(CivicLensError):
    """A pipeline stage raised; remaining stages are not executed."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage} stage failed: {message}")
        self.stage = stage
        self.cause = cause


class StorageError(CivicLensError):
    """Persistence operation failed."""


class AnalysisInProgressError(CivicLensError):
    """Raised when analyze_all is invoked while another run is processing."""

    def __init__(self, run_id: Optional[str] = None):
        message = "An analysis run is already in progress"
        if run_id:
            message += f" (run {run_id})"
        super().__init__(message)
        self.run_id = run_id

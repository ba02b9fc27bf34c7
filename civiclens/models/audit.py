"""
Audit data models.

AgentExecutionLog records one stage invocation; AnalysisRun records one
analyze_all invocation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from civiclens.utils.timestamps import parse_timestamp, to_iso, utc_now

STAGE_NAMES = ("ingestion", "understanding", "discovery", "priority", "explainability")
LOG_STATUSES = ("running", "completed", "failed")
RUN_STATUSES = ("processing", "completed", "failed")


@dataclass
class AgentExecutionLog:
    """
    Append-only audit record of one stage invocation.
    Only observability consumers read these; later stages never do.
    """
    id: str
    stage_name: str
    status: str = "running"
    input: dict = field(default_factory=dict)
    output: dict = field(default_factory=dict)
    duration_ms: int = 0
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.stage_name not in STAGE_NAMES:
            raise ValueError(f"Invalid stage_name: {self.stage_name}")

        if self.status not in LOG_STATUSES:
            raise ValueError(f"Invalid status: {self.status}. Must be 'running', 'completed', or 'failed'")

    @property
    def is_final(self) -> bool:
        return self.status != "running"

    @classmethod
    def from_dict(cls, data: dict) -> "AgentExecutionLog":
        return cls(
            id=data["id"],
            stage_name=data["stage_name"],
            status=data.get("status", "running"),
            input=data.get("input", {}),
            output=data.get("output", {}),
            duration_ms=data.get("duration_ms", 0),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stage_name": self.stage_name,
            "status": self.status,
            "input": self.input,
            "output": self.output,
            "duration_ms": self.duration_ms,
            "created_at": to_iso(self.created_at),
        }


@dataclass
class AnalysisRun:
    """One end-to-end discovery -> priority -> explainability execution."""
    id: str
    status: str = "processing"
    total_complaints: int = 0
    problems_discovered: int = 0
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.status not in RUN_STATUSES:
            raise ValueError(f"Invalid status: {self.status}. Must be 'processing', 'completed', or 'failed'")

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisRun":
        return cls(
            id=data["id"],
            status=data.get("status", "processing"),
            total_complaints=data.get("total_complaints", 0),
            problems_discovered=data.get("problems_discovered", 0),
            started_at=parse_timestamp(data.get("started_at")) or utc_now(),
            completed_at=parse_timestamp(data.get("completed_at")),
            error=data.get("error"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "total_complaints": self.total_complaints,
            "problems_discovered": self.problems_discovered,
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "error": self.error,
        }

"""
Complaint data model.

Represents a citizen complaint and its membership link to a discovered problem.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from civiclens.utils.timestamps import parse_timestamp, to_iso, utc_now

COMPLAINT_STATUSES = ("processing", "analyzed", "rejected")


@dataclass
class Complaint:
    """
    One citizen-submitted report.
    Created by the orchestrator after the ingestion agent accepts it.
    """
    id: str
    text: str  # Raw text as submitted
    cleaned_text: str  # Output of the ingestion agent
    location: str = ""  # Free text, may be empty
    status: str = "processing"
    fingerprint: Optional[List[float]] = None  # Set by the understanding agent
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.status not in COMPLAINT_STATUSES:
            raise ValueError(
                f"Invalid status: {self.status}. Must be one of {', '.join(COMPLAINT_STATUSES)}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "Complaint":
        return cls(
            id=data["id"],
            text=data["text"],
            cleaned_text=data.get("cleaned_text", ""),
            location=data.get("location") or "",
            status=data.get("status", "processing"),
            fingerprint=data.get("fingerprint"),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
            updated_at=parse_timestamp(data.get("updated_at")) or utc_now(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "cleaned_text": self.cleaned_text,
            "location": self.location,
            "status": self.status,
            "fingerprint": self.fingerprint,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class ComplaintProblemLink:
    """Exclusive membership of a complaint in a problem cluster."""
    complaint_id: str
    problem_id: str
    confidence: float
    created_at: datetime = field(default_factory=utc_now)

    @property
    def id(self) -> str:
        # A complaint has at most one active link, so its id keys the row
        return self.complaint_id

    @classmethod
    def from_dict(cls, data: dict) -> "ComplaintProblemLink":
        return cls(
            complaint_id=data["complaint_id"],
            problem_id=data["problem_id"],
            confidence=data.get("confidence", 0.0),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "problem_id": self.problem_id,
            "confidence": self.confidence,
            "created_at": to_iso(self.created_at),
        }

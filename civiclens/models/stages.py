"""
Stage payload models.

Each pipeline stage exchanges an explicit record instead of an ad hoc dict.
`stage` tags every output so audit entries and orchestrator responses can be
traced back to the agent that produced them.
"""

from dataclasses import asdict, dataclass, field
from typing import ClassVar, Dict, List, Optional

from civiclens.errors import ValidationError


@dataclass
class ComplaintSubmission:
    """Inbound payload for the submit workflow."""
    text: str
    location: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "ComplaintSubmission":
        """
        Validate payload shape at the orchestrator boundary.

        Raises:
            ValidationError: If text is missing or either field has the wrong type
        """
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be an object")

        text = payload.get("text")
        location = payload.get("location")
        if location is None:
            location = ""

        if not isinstance(text, str):
            raise ValidationError("Field 'text' is required and must be a string")
        if not isinstance(location, str):
            raise ValidationError("Field 'location' must be a string")

        return cls(text=text, location=location)


@dataclass
class IngestionResult:
    stage: ClassVar[str] = "ingestion"

    cleaned_text: str
    location: str
    is_valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FingerprintResult:
    stage: ClassVar[str] = "understanding"

    complaint_id: Optional[str]
    fingerprint: List[float]
    tokens: List[str]

    def to_log_dict(self) -> dict:
        """Audit output without the full vector."""
        return {
            "complaint_id": self.complaint_id,
            "tokens": self.tokens,
            "fingerprint_dimensions": len(self.fingerprint),
        }


@dataclass
class ClusterSummary:
    problem_id: str
    title: str
    cluster_index: int
    complaint_count: int


@dataclass
class DiscoveryResult:
    stage: ClassVar[str] = "discovery"

    total_complaints: int
    clusters: List[ClusterSummary] = field(default_factory=list)

    @property
    def problems_created(self) -> int:
        return len(self.clusters)

    def to_dict(self) -> dict:
        return {
            "total_complaints": self.total_complaints,
            "problems_created": self.problems_created,
            "clusters": [asdict(c) for c in self.clusters],
        }


@dataclass
class PriorityFactors:
    complaint_count: int
    severity_score: float
    recency_score: float
    location_density: float


@dataclass
class ProblemPriority:
    problem_id: str
    title: str
    priority_score: int
    trend: str
    factors: PriorityFactors


@dataclass
class PriorityResult:
    stage: ClassVar[str] = "priority"

    updated: List[ProblemPriority] = field(default_factory=list)

    @property
    def highest_priority(self) -> int:
        return max((p.priority_score for p in self.updated), default=0)

    def to_dict(self) -> dict:
        return {
            "problems_updated": len(self.updated),
            "highest_priority": self.highest_priority,
            "updated": [asdict(p) for p in self.updated],
        }


@dataclass
class Explanation:
    problem_id: str
    reason: str
    keywords: List[str]
    sample_complaints: List[str]
    priority_explanation: str


@dataclass
class ExplainabilityResult:
    stage: ClassVar[str] = "explainability"

    explanations: List[Explanation] = field(default_factory=list)

    def by_problem(self) -> Dict[str, Explanation]:
        return {e.problem_id: e for e in self.explanations}

    def to_dict(self) -> dict:
        return {
            "explanations_generated": len(self.explanations),
            "explanations": [asdict(e) for e in self.explanations],
        }

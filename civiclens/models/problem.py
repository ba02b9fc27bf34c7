"""
Problem data model.

A problem is one cluster of similar complaints discovered by a re-analysis run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from civiclens.utils.timestamps import parse_timestamp, to_iso, utc_now

TRENDS = ("rising", "stable", "falling")


@dataclass
class Problem:
    """
    A discovered problem cluster.
    The full set is replaced by every analysis run, never merged.
    """
    id: str
    title: str
    cluster_index: int  # Position within the producing run, not stable across runs
    description: str = ""
    complaint_count: int = 0
    priority_score: int = 0  # 0-100
    trend: str = "stable"
    keywords: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.trend not in TRENDS:
            raise ValueError(f"Invalid trend: {self.trend}. Must be 'rising', 'stable', or 'falling'")

        if not (0 <= self.priority_score <= 100):
            raise ValueError(f"Invalid priority_score: {self.priority_score}. Must be 0-100")

    @classmethod
    def from_dict(cls, data: dict) -> "Problem":
        return cls(
            id=data["id"],
            title=data["title"],
            cluster_index=data.get("cluster_index", 0),
            description=data.get("description", ""),
            complaint_count=data.get("complaint_count", 0),
            priority_score=int(data.get("priority_score", 0)),
            trend=data.get("trend", "stable"),
            keywords=list(data.get("keywords", [])),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
            updated_at=parse_timestamp(data.get("updated_at")) or utc_now(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "cluster_index": self.cluster_index,
            "complaint_count": self.complaint_count,
            "priority_score": self.priority_score,
            "trend": self.trend,
            "keywords": list(self.keywords),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

"""
Priority Agent.

Scores each problem's urgency (0-100) and classifies its arrival trend.
"""

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from civiclens.models.complaint import Complaint
from civiclens.models.stages import PriorityFactors, PriorityResult, ProblemPriority
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.audit import AuditTrail
from civiclens.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


URGENT_KEYWORDS = [
    "urgent", "emergency", "critical", "immediate", "severe", "dangerous",
    "unsafe", "health", "hospital", "children", "death", "injury",
]

IMPORTANT_KEYWORDS = [
    "important", "serious", "concern", "problem", "broken", "damage",
    "leak", "overflow", "stuck",
]

WEIGHTS = {
    "complaint_count": 0.4,
    "severity_score": 0.35,
    "recency_score": 0.15,
    "location_density": 0.1,
}

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


def severity_score(complaints: Sequence[Complaint]) -> float:
    """
    Average keyword severity per complaint, capped at 10.

    Each urgent keyword found in a complaint's cleaned text adds 3, each
    important keyword adds 1. Keywords match as substrings.
    """
    if not complaints:
        return 0.0

    total = 0
    for complaint in complaints:
        text = complaint.cleaned_text.lower()
        total += 3 * sum(1 for keyword in URGENT_KEYWORDS if keyword in text)
        total += sum(1 for keyword in IMPORTANT_KEYWORDS if keyword in text)

    return min(total / len(complaints), 10)


def recency_score(complaints: Sequence[Complaint], now: datetime) -> float:
    """Average recency weight: under a day 3, under a week 1.5, older 0.5."""
    if not complaints:
        return 0.0

    total = 0.0
    for complaint in complaints:
        age = now - complaint.created_at
        if age < ONE_DAY:
            total += 3
        elif age < ONE_WEEK:
            total += 1.5
        else:
            total += 0.5

    return total / len(complaints)


def location_density(complaints: Sequence[Complaint]) -> float:
    """log10(largest same-location group + 1) * 3; the group size floor is 1."""
    counts = Counter(c.location for c in complaints if c.location)
    max_density = max(max(counts.values(), default=0), 1)
    return math.log10(max_density + 1) * 3


def composite_score(factors: PriorityFactors) -> int:
    """Weighted 0-100 priority score, rounded half up."""
    normalized_count = min(factors.complaint_count / 10, 1) * 100

    score = (
        normalized_count * WEIGHTS["complaint_count"]
        + factors.severity_score * 10 * WEIGHTS["severity_score"]
        + factors.recency_score * 10 * WEIGHTS["recency_score"]
        + factors.location_density * 10 * WEIGHTS["location_density"]
    )

    return int(math.floor(min(score, 100) + 0.5))


def determine_trend(complaints: Sequence[Complaint], now: datetime) -> str:
    """
    Classify the complaint arrival pattern as rising, stable or falling.

    Complaints are split by time into halves (the second half gets the odd
    one out). Rising needs the second half to be over 1.3x the first and the
    halves' mean timestamps to sit closer than 0.7x of half the elapsed time
    since the earliest complaint. Falling needs a ratio under 0.7.
    """
    if len(complaints) < 2:
        return "stable"

    ordered = sorted(complaints, key=lambda c: c.created_at)
    half_point = len(ordered) // 2
    first_half = ordered[:half_point]
    second_half = ordered[half_point:]

    def mean_seconds(group: List[Complaint]) -> float:
        return sum(c.created_at.timestamp() for c in group) / len(group)

    time_diff = mean_seconds(second_half) - mean_seconds(first_half)
    expected_diff = (now.timestamp() - ordered[0].created_at.timestamp()) / 2

    growth_rate = len(second_half) / len(first_half)

    if growth_rate > 1.3 and time_diff < expected_diff * 0.7:
        return "rising"
    elif growth_rate < 0.7:
        return "falling"

    return "stable"


class PriorityAgent:
    """
    Recomputes complaint_count, priority_score and trend for every problem.

    Problems with no linked complaints are skipped.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize priority agent.

        Args:
            repository: Pipeline repository
            audit: Audit trail for stage logging
            clock: Source of "now" for recency and trend calculations
        """
        self.repository = repository
        self.audit = audit
        self.clock = clock

    def prioritize(self) -> PriorityResult:
        """Score all current problems and write the results back."""
        if self.audit is None:
            return self._prioritize()

        with self.audit.track("priority", {"action": "calculate_priorities"}) as execution:
            result = self._prioritize()
            execution.output = {
                "problems_updated": len(result.updated),
                "highest_priority": result.highest_priority,
            }
        return result

    def _prioritize(self) -> PriorityResult:
        now = self.clock()
        result = PriorityResult()

        problems = self.repository.list_problems()
        if not problems:
            logger.info("No problems to prioritize")
            return result

        for problem in problems:
            complaints = self.repository.complaints_for_problem(problem.id)
            if not complaints:
                logger.warning(f"Problem {problem.id} has no linked complaints, skipping")
                continue

            factors = self.compute_factors(complaints, now)
            score = composite_score(factors)
            trend = determine_trend(complaints, now)

            self.repository.update_problem(
                problem.id,
                priority_score=score,
                trend=trend,
                complaint_count=len(complaints),
            )

            result.updated.append(ProblemPriority(
                problem_id=problem.id,
                title=problem.title,
                priority_score=score,
                trend=trend,
                factors=factors,
            ))
            logger.debug(f"Problem {problem.id}: score={score}, trend={trend}")

        logger.info(
            f"Prioritized {len(result.updated)} problems "
            f"(highest score: {result.highest_priority})"
        )
        return result

    @staticmethod
    def compute_factors(complaints: Sequence[Complaint], now: datetime) -> PriorityFactors:
        return PriorityFactors(
            complaint_count=len(complaints),
            severity_score=severity_score(complaints),
            recency_score=recency_score(complaints, now),
            location_density=location_density(complaints),
        )

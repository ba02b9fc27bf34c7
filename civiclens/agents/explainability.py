"""
Explainability Agent.

Derives keywords, representative samples and narrative text for each
problem so a reviewer can see why it was ranked where it was.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from civiclens.models.complaint import Complaint
from civiclens.models.problem import Problem
from civiclens.models.stages import ExplainabilityResult, Explanation
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.audit import AuditTrail
from civiclens.utils.timestamps import utc_now
import config.settings as settings

logger = logging.getLogger(__name__)


IMPORTANT_WORDS = frozenset([
    "water", "road", "garbage", "electric", "drain", "sewage", "urgent",
    "emergency", "broken", "damage", "leak", "overflow", "shortage", "supply",
    "power", "light", "street", "pothole", "safety", "health", "dangerous",
    "critical", "immediate", "hospital", "children", "school", "waste",
    "smell", "noise", "pollution",
])

SAFETY_KEYWORDS = frozenset([
    "urgent", "emergency", "critical", "dangerous", "unsafe", "health", "hospital",
])

PRIORITY_TIERS = [
    (80, "CRITICAL", "Requires immediate attention"),
    (60, "HIGH", "Should be addressed soon"),
    (40, "MEDIUM", "Needs attention within reasonable timeframe"),
    (0, "LOW", "Can be scheduled for later"),
]

TREND_SENTENCES = {
    "rising": "Problem is escalating and may worsen if not addressed.",
    "falling": "Problem appears to be improving or resolving.",
    "stable": "Problem is stable at current levels.",
}


def priority_label(score: int) -> str:
    """Bucket name for a priority score: CRITICAL, HIGH, MEDIUM or LOW."""
    for threshold, label, _ in PRIORITY_TIERS:
        if score >= threshold:
            return label
    return "LOW"


def extract_keywords(complaints: Sequence[Complaint], limit: int = settings.MAX_KEYWORDS) -> List[str]:
    """Most frequent vocabulary words; ties keep first-occurrence order."""
    word_freq = Counter(
        word
        for complaint in complaints
        for word in complaint.cleaned_text.split()
        if len(word) > 3 and word in IMPORTANT_WORDS
    )
    return [word for word, _ in word_freq.most_common(limit)]


def select_representative_complaints(
    complaints: Sequence[Complaint],
    limit: int = settings.MAX_SAMPLE_COMPLAINTS
) -> List[str]:
    """Longest complaints by cleaned text, shown with their original wording."""
    ordered = sorted(complaints, key=lambda c: len(c.cleaned_text), reverse=True)
    return [c.text or c.cleaned_text for c in ordered[:limit]]


def generate_reason(problem: Problem, complaints: Sequence[Complaint], keywords: Sequence[str],
                    now: datetime) -> str:
    reasons = []

    count = problem.complaint_count
    if count >= 5:
        reasons.append(f"High volume of reports ({count} complaints)")
    elif count >= 3:
        reasons.append(f"Multiple reports received ({count} complaints)")
    else:
        reasons.append(f"{count} report(s) received")

    if any(kw in SAFETY_KEYWORDS for kw in keywords):
        reasons.append("Contains safety or health-related concerns")

    locations = [c.location for c in complaints if c.location and c.location.strip()]
    unique_locations = list(dict.fromkeys(locations))

    if len(unique_locations) == 1 and len(locations) >= 3:
        reasons.append(f"Concentrated in specific area ({unique_locations[0]})")
    elif len(unique_locations) > 3:
        reasons.append(f"Widespread issue affecting {len(unique_locations)} locations")

    recent = [c for c in complaints if now - c.created_at < timedelta(days=1)]
    if len(recent) >= 2:
        reasons.append(f"{len(recent)} recent reports in the last 24 hours")

    if problem.trend == "rising":
        reasons.append("Increasing trend detected")

    return "; ".join(reasons)


def generate_priority_explanation(priority_score: int, trend: str) -> str:
    """
    Tiered priority message followed by a trend sentence.

    Example: "MEDIUM PRIORITY: Needs attention within reasonable timeframe.
    Problem is stable at current levels."
    """
    label = priority_label(priority_score)
    message = next(text for _, name, text in PRIORITY_TIERS if name == label)
    return f"{label} PRIORITY: {message}. {TREND_SENTENCES.get(trend, TREND_SENTENCES['stable'])}"


class ExplainabilityAgent:
    """
    Writes description and keywords onto every problem.

    The narrative reason is returned to the caller but not stored.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize explainability agent.

        Args:
            repository: Pipeline repository
            audit: Audit trail for stage logging
            clock: Source of "now" for the recent-report count
        """
        self.repository = repository
        self.audit = audit
        self.clock = clock

    def explain(self) -> ExplainabilityResult:
        if self.audit is None:
            return self._explain()

        with self.audit.track("explainability", {"action": "generate_explanations"}) as execution:
            result = self._explain()
            execution.output = {"explanations_generated": len(result.explanations)}
        return result

    def _explain(self) -> ExplainabilityResult:
        now = self.clock()
        result = ExplainabilityResult()

        problems = self.repository.list_problems()
        if not problems:
            logger.info("No problems to explain")
            return result

        for problem in problems:
            complaints = self.repository.complaints_for_problem(problem.id)
            if not complaints:
                continue

            explanation = self.explain_problem(problem, complaints, now)
            self.repository.update_problem(
                problem.id,
                keywords=explanation.keywords,
                description=explanation.priority_explanation,
            )
            result.explanations.append(explanation)

        logger.info(f"Generated {len(result.explanations)} explanations")
        return result

    @staticmethod
    def explain_problem(problem: Problem, complaints: Sequence[Complaint], now: datetime) -> Explanation:
        keywords = extract_keywords(complaints)
        return Explanation(
            problem_id=problem.id,
            reason=generate_reason(problem, complaints, keywords, now),
            keywords=keywords,
            sample_complaints=select_representative_complaints(complaints),
            priority_explanation=generate_priority_explanation(problem.priority_score, problem.trend),
        )

"""
Understanding Agent.

Turns cleaned complaint text into a deterministic 384-cell fingerprint
vector. No trained model is involved, so clustering stays reproducible and
every cell can be traced back to a keyword list or a hashed token.
"""

import logging
from typing import List, Optional

from civiclens.models.stages import FingerprintResult
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.audit import AuditTrail
from civiclens.utils.vectors import l2_normalize
import config.settings as settings

logger = logging.getLogger(__name__)


# Ten topic categories, one 30-cell band each (cells 0-299)
PROBLEM_CATEGORIES = [
    ["water", "tap", "supply", "pipe", "leak", "drinking", "dry", "shortage"],
    ["road", "street", "pothole", "crack", "damage", "broken", "repair", "pavement"],
    ["garbage", "trash", "waste", "dump", "smell", "dirty", "cleanliness", "bin"],
    ["electric", "power", "light", "street", "lamp", "dark", "outage", "wire"],
    ["drain", "sewage", "overflow", "block", "clog", "flood", "stagnant", "smell"],
    ["noise", "loud", "sound", "construction", "pollution", "disturbance"],
    ["health", "hospital", "clinic", "medicine", "doctor", "medical", "emergency"],
    ["safety", "crime", "theft", "danger", "security", "police", "unsafe"],
    ["park", "garden", "tree", "green", "playground", "maintenance"],
    ["transport", "bus", "traffic", "signal", "vehicle", "parking", "congestion"],
]

# Three urgency tiers, one 20-cell band each (cells 300-359)
URGENCY_TIERS = [
    ["urgent", "emergency", "critical", "immediate", "severe", "dangerous"],
    ["important", "serious", "concern", "problem", "issue", "need"],
    ["help", "please", "request", "require", "necessary"],
]


def string_hash(word: str) -> int:
    """
    32-bit multiplicative string hash (h * 31 + c), absolute value.

    Stable across processes, unlike the built-in hash().
    """
    h = 0
    for char in word:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


class FingerprintGenerator:
    """
    Builds fingerprint vectors and attaches them to stored complaints.

    Layout:
    - cells 0-299: one band per topic category, every cell = category score
    - cells 300-359: one band per urgency tier, every cell = tier score
    - all cells: +0.1 per hashed token longer than 3 characters
    The result is L2-normalized unless it is all zeros.
    """

    def __init__(
        self,
        repository: Optional[PipelineRepository] = None,
        audit: Optional[AuditTrail] = None,
        dimensions: int = settings.FINGERPRINT_DIMENSIONS
    ):
        """
        Initialize fingerprint generator.

        Args:
            repository: Repository to persist fingerprints into (optional)
            audit: Audit trail for stage logging
            dimensions: Vector length; must cover the category and urgency bands
        """
        self.repository = repository
        self.audit = audit
        self.dimensions = dimensions

        required = settings.URGENCY_BAND_OFFSET + len(URGENCY_TIERS) * settings.URGENCY_BAND_SIZE
        if dimensions < required:
            raise ValueError(f"Fingerprint needs at least {required} dimensions, got {dimensions}")

    def generate(self, cleaned_text: str, complaint_id: Optional[str] = None) -> FingerprintResult:
        """
        Fingerprint a complaint and, when a complaint id is given, persist it.

        Args:
            cleaned_text: Output of the ingestion agent
            complaint_id: Stored complaint to attach the fingerprint to

        Returns:
            FingerprintResult with the vector and the tokens longer than 2 characters
        """
        if self.audit is None:
            return self._generate(cleaned_text, complaint_id)

        input_data = {"cleaned_text": cleaned_text, "complaint_id": complaint_id}
        with self.audit.track("understanding", input_data) as execution:
            result = self._generate(cleaned_text, complaint_id)
            execution.output = result.to_log_dict()
        return result

    def _generate(self, cleaned_text: str, complaint_id: Optional[str]) -> FingerprintResult:
        fingerprint = self.fingerprint(cleaned_text)
        tokens = [w for w in cleaned_text.split() if len(w) > 2]

        if complaint_id is not None and self.repository is not None:
            self.repository.set_fingerprint(complaint_id, fingerprint)
            logger.debug(f"Attached fingerprint to complaint {complaint_id}")

        return FingerprintResult(complaint_id=complaint_id, fingerprint=fingerprint, tokens=tokens)

    def fingerprint(self, text: str) -> List[float]:
        """Compute the fingerprint vector for a piece of cleaned text."""
        vector = [0.0] * self.dimensions
        words = text.lower().split()
        word_set = set(words)

        for idx, category in enumerate(PROBLEM_CATEGORIES):
            score = 0.0
            for keyword in category:
                if keyword in word_set:
                    score += 1
                for word in words:
                    if keyword in word or word in keyword:
                        score += 0.5

            self._fill_band(vector, idx * settings.CATEGORY_BAND_SIZE, settings.CATEGORY_BAND_SIZE,
                            score / (len(category) + 1))

        for idx, tier in enumerate(URGENCY_TIERS):
            score = sum(1 for keyword in tier if keyword in word_set)
            self._fill_band(vector, settings.URGENCY_BAND_OFFSET + idx * settings.URGENCY_BAND_SIZE,
                            settings.URGENCY_BAND_SIZE, score / (len(tier) + 1))

        for word in words:
            if len(word) > 3:
                vector[string_hash(word) % self.dimensions] += settings.HASHED_TOKEN_INCREMENT

        return l2_normalize(vector)

    @staticmethod
    def _fill_band(vector: List[float], start: int, size: int, value: float) -> None:
        for i in range(start, start + size):
            vector[i] = value

"""
Ingestion Agent.

Cleans raw complaint text and decides whether it is worth keeping.
"""

import logging
import re
from typing import List, Optional

from civiclens.models.stages import IngestionResult
from civiclens.utils.audit import AuditTrail
import config.settings as settings

logger = logging.getLogger(__name__)


STOP_WORDS = frozenset([
    "the", "is", "at", "which", "on", "a", "an", "and", "or", "but",
    "in", "with", "to", "for", "of", "as", "by", "this", "that",
    "near", "are", "was", "were", "has", "have", "from",
])

REASON_TOO_SHORT = f"Text too short (minimum {settings.MIN_TEXT_LENGTH} characters)"
REASON_INSUFFICIENT = "Insufficient content: not enough meaningful words"
REASON_SPAM = "Repeated characters (spam detected)"

_WHITESPACE = re.compile(r"\s+")
_REPEATED_PREFIX = re.compile(r"^(.)\1{%d,}" % (settings.SPAM_REPEAT_LENGTH - 1))


def normalize_tokens(text: str) -> List[str]:
    """
    Lowercase, collapse whitespace, and drop stop-words and tokens of 2 chars or fewer.

    Applying this to its own joined output returns the same tokens.
    """
    collapsed = _WHITESPACE.sub(" ", text.strip().lower())
    return [
        word for word in collapsed.split(" ")
        if len(word) > 2 and word not in STOP_WORDS
    ]


class IngestionAgent:
    """
    Validates and normalizes raw complaint text.

    Checks run in order and the first failure wins:
    1. Raw text shorter than MIN_TEXT_LENGTH
    2. Fewer than MIN_MEANINGFUL_WORDS tokens after normalization
    3. Raw text starts with one character repeated SPAM_REPEAT_LENGTH+ times
    """

    def __init__(
        self,
        audit: Optional[AuditTrail] = None,
        min_length: int = settings.MIN_TEXT_LENGTH,
        min_words: int = settings.MIN_MEANINGFUL_WORDS
    ):
        """
        Initialize ingestion agent.

        Args:
            audit: Audit trail for stage logging (no logging when None)
            min_length: Minimum raw text length in characters
            min_words: Minimum meaningful tokens after normalization
        """
        self.audit = audit
        self.min_length = min_length
        self.min_words = min_words

    def validate(self, text: str, location: str = "") -> IngestionResult:
        """
        Clean a complaint and decide whether it is valid.

        Args:
            text: Raw complaint text
            location: Optional free-text location

        Returns:
            IngestionResult with cleaned text, trimmed location and verdict
        """
        if self.audit is None:
            return self._validate(text, location)

        with self.audit.track("ingestion", {"text": text, "location": location}) as execution:
            result = self._validate(text, location)
            execution.output = result.to_dict()
        return result

    def _validate(self, text: str, location: str) -> IngestionResult:
        tokens = normalize_tokens(text)
        reason = None

        if len(text) < self.min_length:
            reason = REASON_TOO_SHORT
        elif len(tokens) < self.min_words:
            reason = REASON_INSUFFICIENT
        elif _REPEATED_PREFIX.match(text):
            reason = REASON_SPAM

        result = IngestionResult(
            cleaned_text=" ".join(tokens),
            location=(location or "").strip(),
            is_valid=reason is None,
            reason=reason,
        )

        if result.is_valid:
            logger.debug(f"Accepted complaint with {len(tokens)} tokens")
        else:
            logger.info(f"Rejected complaint: {reason}")

        return result

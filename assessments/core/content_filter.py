"""
Pattern-based content filter for free-text submissions.

Text is classified against per-category regular expression sets. Callers
choose which categories to check; ``validate`` applies the two-tier policy
used for feedback comments:

- strict categories (hate speech, adult by default) reject the text outright
  with ``ContentPolicyError``
- warn categories (profanity, personal information, spam by default) are
  redacted, with every matched span replaced by the placeholder, and the
  redacted text is accepted

Severity: ``high`` if any strict category matched, ``medium`` if more than
one category or personal information matched, otherwise ``low``.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from assessments.core.exceptions import ContentPolicyError
from libs.domain_types import ContentCategory, ContentSeverity

logger = logging.getLogger(__name__)

REDACTION_PLACEHOLDER = "***"

DEFAULT_PATTERNS: Dict[ContentCategory, List[Pattern[str]]] = {
    ContentCategory.PROFANITY: [
        re.compile(r"\b(fuck\w*|shit\w*|bitch\w*|asshole\w*|bastard\w*)\b", re.I),
    ],
    ContentCategory.HATE_SPEECH: [
        re.compile(r"\b(subhuman|kill all|exterminate (them|all)|inferior race)\b", re.I),
    ],
    ContentCategory.PERSONAL_INFO: [
        re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # US SSN
        re.compile(r"\b\d{16,19}\b"),  # Card number
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),  # Email
        re.compile(r"\b(?:\+\d{1,3}[- ]?)?\(?\d{3}\)?[- ]?\d{3,5}[- ]?\d{4}\b"),  # Phone
    ],
    ContentCategory.SPAM: [
        re.compile(r"\b(buy now|click here|free money|limited time)\b", re.I),
    ],
    ContentCategory.ADULT: [
        re.compile(r"\b(porn\w*|xxx|nsfw|nude\w*)\b", re.I),
    ],
}

DEFAULT_STRICT_CATEGORIES = (ContentCategory.HATE_SPEECH, ContentCategory.ADULT)
DEFAULT_WARN_CATEGORIES = (
    ContentCategory.PROFANITY,
    ContentCategory.PERSONAL_INFO,
    ContentCategory.SPAM,
)


@dataclass
class FilterResult:
    """Outcome of classifying (and optionally redacting) a piece of text."""

    is_clean: bool
    detected_categories: List[ContentCategory] = field(default_factory=list)
    severity: ContentSeverity = ContentSeverity.LOW
    filtered_content: Optional[str] = None


class ContentFilter:
    """
    Classify and redact free text.

    Args:
        patterns: Category -> compiled patterns (defaults to DEFAULT_PATTERNS)
        strict_categories: Categories that reject text in ``validate``
        warn_categories: Categories that redact text in ``validate``
        placeholder: Replacement for redacted spans
    """

    def __init__(
        self,
        patterns: Optional[Dict[ContentCategory, List[Pattern[str]]]] = None,
        strict_categories: Sequence[ContentCategory] = DEFAULT_STRICT_CATEGORIES,
        warn_categories: Sequence[ContentCategory] = DEFAULT_WARN_CATEGORIES,
        placeholder: str = REDACTION_PLACEHOLDER,
    ):
        self.patterns = patterns if patterns is not None else DEFAULT_PATTERNS
        self.strict_categories = tuple(strict_categories)
        self.warn_categories = tuple(warn_categories)
        self.placeholder = placeholder

    def check(
        self, content: Optional[str], categories: Optional[Iterable[ContentCategory]] = None
    ) -> FilterResult:
        """
        Classify text without modifying it.

        Args:
            content: Text to check; empty text is clean
            categories: Categories to check (default: all)
        """
        if not content:
            return FilterResult(is_clean=True)

        detected = [
            category
            for category in self._resolve(categories)
            if any(p.search(content) for p in self.patterns.get(category, []))
        ]
        return FilterResult(
            is_clean=not detected,
            detected_categories=detected,
            severity=self.severity_for(detected),
        )

    def filter(
        self, content: Optional[str], categories: Optional[Iterable[ContentCategory]] = None
    ) -> FilterResult:
        """
        Classify text and redact every match of the checked categories.

        Args:
            content: Text to filter; empty text is clean
            categories: Categories to check and redact (default: all)
        """
        if not content:
            return FilterResult(is_clean=True, filtered_content="")

        detected: List[ContentCategory] = []
        filtered = content
        for category in self._resolve(categories):
            matched = False
            for pattern in self.patterns.get(category, []):
                filtered, count = pattern.subn(self.placeholder, filtered)
                matched = matched or count > 0
            if matched:
                detected.append(category)

        return FilterResult(
            is_clean=not detected,
            detected_categories=detected,
            severity=self.severity_for(detected),
            filtered_content=filtered,
        )

    def validate(self, content: Optional[str]) -> FilterResult:
        """
        Apply the strict/warn policy.

        Returns:
            FilterResult whose ``filtered_content`` is the text to store

        Raises:
            ContentPolicyError: If a strict category matched
        """
        strict = self.check(content, self.strict_categories)
        if not strict.is_clean:
            logger.info(
                f"Rejected content matching {[c.value for c in strict.detected_categories]}"
            )
            raise ContentPolicyError([c.value for c in strict.detected_categories])

        result = self.filter(content, self.warn_categories)
        if result.is_clean:
            result.filtered_content = content or ""
        return result

    def severity_for(self, detected: Sequence[ContentCategory]) -> ContentSeverity:
        """Derive severity from a list of matched categories."""
        if any(c in self.strict_categories for c in detected):
            return ContentSeverity.HIGH
        if len(detected) > 1 or ContentCategory.PERSONAL_INFO in detected:
            return ContentSeverity.MEDIUM
        return ContentSeverity.LOW

    def _resolve(
        self, categories: Optional[Iterable[ContentCategory]]
    ) -> List[ContentCategory]:
        if categories is None:
            return list(ContentCategory)
        return [ContentCategory(c) for c in categories]

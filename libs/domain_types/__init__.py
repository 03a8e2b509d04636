"""Shared domain types for the assessment services.

This package is the single source of truth for domain enums used by both
the client-side session machine and the submission API.

Usage:
    from libs.domain_types import TestStatus, QuestionFormat
"""

import enum


class TestStatus(str, enum.Enum):
    """Lifecycle status of a test session."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class QuestionFormat(str, enum.Enum):
    """Answer formats a question can declare."""

    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    SCALE = "scale"
    TEXT = "text"
    LIKERT = "likert"


class TestCategory(str, enum.Enum):
    """High-level grouping of test types."""

    PSYCHOLOGY = "psychology"
    CAREER = "career"
    RELATIONSHIP = "relationship"
    LEARNING = "learning"


class ContentCategory(str, enum.Enum):
    """Content filter pattern categories."""

    HATE_SPEECH = "hate_speech"
    ADULT = "adult"
    PROFANITY = "profanity"
    PERSONAL_INFO = "personal_info"
    SPAM = "spam"


class ContentSeverity(str, enum.Enum):
    """Severity derived from the content filter's matched categories."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FeedbackRating(str, enum.Enum):
    """Thumbs-up/down rating attached to a result."""

    LIKE = "like"
    DISLIKE = "dislike"


class Phq9Severity(str, enum.Enum):
    """PHQ-9 depression severity bands."""

    MINIMAL = "minimal"
    MILD = "mild"
    MODERATE = "moderate"
    MODERATELY_SEVERE = "moderately_severe"
    SEVERE = "severe"


__all__ = [
    "TestStatus",
    "QuestionFormat",
    "TestCategory",
    "ContentCategory",
    "ContentSeverity",
    "FeedbackRating",
    "Phq9Severity",
]

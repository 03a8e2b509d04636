"""Tests for shared domain types package."""

import json

from libs.domain_types import (
    ContentCategory,
    ContentSeverity,
    FeedbackRating,
    Phq9Severity,
    QuestionFormat,
    TestCategory,
    TestStatus,
)


class TestTestStatus:
    """Tests for TestStatus enum."""

    def test_values(self):
        assert [s.value for s in TestStatus] == [
            "not_started",
            "in_progress",
            "paused",
            "completed",
            "abandoned",
        ]

    def test_str_mixin(self):
        assert TestStatus("paused") == TestStatus.PAUSED

    def test_json_serializable(self):
        assert json.dumps(TestStatus.COMPLETED) == '"completed"'


class TestQuestionFormat:
    """Tests for QuestionFormat enum."""

    def test_values(self):
        assert {f.value for f in QuestionFormat} == {
            "single_choice",
            "multiple_choice",
            "scale",
            "text",
            "likert",
        }


class TestContentEnums:
    """Tests for content filter enums."""

    def test_categories(self):
        assert len(ContentCategory) == 5
        assert ContentCategory("personal_info") == ContentCategory.PERSONAL_INFO

    def test_severity_order_of_declaration(self):
        assert [s.value for s in ContentSeverity] == ["low", "medium", "high"]


class TestMiscEnums:
    """Tests for remaining shared enums."""

    def test_feedback_rating(self):
        assert FeedbackRating.LIKE.value == "like"
        assert FeedbackRating.DISLIKE.value == "dislike"

    def test_test_category(self):
        assert TestCategory.PSYCHOLOGY.value == "psychology"

    def test_phq9_severity(self):
        assert Phq9Severity.MODERATELY_SEVERE.value == "moderately_severe"

"""
Tests for deterministic dimension extraction.
"""
import random

import pytest
from dataclasses import dataclass
from typing import Any

from assessments.core.dimensions import (
    DimensionLookupTable,
    answer_weight,
    extract,
    find_uncovered_questions,
    get_lookup_table,
    numeric_value,
    table_from_questions,
)
from assessments.core.test_types import StaticQuestionCatalog


@dataclass(frozen=True)
class Answer:
    question_id: str
    value: Any


class TestLookupTable:
    """Tests for DimensionLookupTable resolution."""

    table = DimensionLookupTable(
        test_type="demo",
        version="2",
        default_label="other",
        exact={"q_special": "exact_label"},
        prefixes=(("q_", "short"), ("q_long_", "long")),
    )

    def test_exact_wins_over_prefix(self):
        assert self.table.label_for("q_special") == "exact_label"

    def test_longest_prefix_wins(self):
        assert self.table.label_for("q_long_1") == "long"
        assert self.table.label_for("q_1") == "short"

    def test_unknown_falls_back_to_default(self):
        assert self.table.label_for("zzz") == "other"
        assert self.table.covers("zzz") is False

    def test_labels_exclude_default(self):
        assert self.table.labels() == ["exact_label", "long", "short"]


class TestAnswerWeight:
    """Tests for answer value weighting."""

    def test_numbers(self):
        assert answer_weight(3) == 3.0
        assert answer_weight(-1.5) == -1.5

    def test_numeric_string(self):
        assert answer_weight("2") == 2.0

    def test_booleans(self):
        assert answer_weight(True) == 1.0
        assert answer_weight(False) == 0.0

    def test_choice_string_is_unit_weight(self):
        assert answer_weight("agree") == 1.0

    def test_each_selection_counts(self):
        assert answer_weight(["a", "b", "c"]) == 3.0

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan", float("inf"), float("nan"), "1e400"])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            answer_weight(value)


class TestNumericValue:
    """Tests for strict numeric coercion of answer values."""

    def test_numbers_and_numeric_strings(self):
        assert numeric_value(2) == 2.0
        assert numeric_value(" 1.5 ") == 1.5

    @pytest.mark.parametrize("value", [True, "agree", ["1"], None, "nan", float("inf"), 10**400])
    def test_non_numbers_are_none(self, value):
        assert numeric_value(value) is None


class TestExtract:
    """Tests for extract."""

    def test_holland_tally(self):
        answers = [
            Answer("holland_001", 5),
            Answer("holland_002", 4),
            Answer("holland_011", 2),
            Answer("holland_060", 1),
        ]

        tally = extract("holland", answers)

        assert tally["realistic"] == 9.0
        assert tally["investigative"] == 2.0
        assert tally["conventional"] == 1.0
        # Every label is present even without answers
        assert tally["artistic"] == 0.0
        assert list(tally) == sorted(tally)

    def test_love_language_prefixes(self):
        tally = extract(
            "love_language", [Answer("ll_time_1", 5), Answer("ll_touch_3", 2)]
        )

        assert tally["quality_time"] == 5.0
        assert tally["physical_touch"] == 2.0

    def test_unknown_question_goes_to_default_label(self):
        tally = extract("phq9", [Answer("phq9_1", 2), Answer("legacy_item", 1)])

        assert tally["anhedonia"] == 2.0
        assert tally["depression"] == 1.0

    def test_order_insensitive_and_deterministic(self):
        """Shuffled inputs give bit-identical tallies."""
        answers = [Answer(f"mbti_{i}", ((i * 7) % 5) - 2 + 0.1) for i in range(1, 21)]
        expected = extract("mbti", answers)

        rng = random.Random(1234)
        for _ in range(20):
            shuffled = list(answers)
            rng.shuffle(shuffled)
            assert extract("mbti", shuffled) == expected

    def test_unregistered_test_type_uses_general_label(self):
        assert extract("unknown", [Answer("x", 2), Answer("y", "pick")]) == {"general": 3.0}

    def test_table_from_questions(self):
        catalog = StaticQuestionCatalog()
        questions = catalog.get_questions("phq9")
        table = table_from_questions("phq9", questions)

        # Built-in PHQ-9 questions carry no dimension metadata
        assert find_uncovered_questions(table, questions) == [q.id for q in questions]


def test_builtin_tables_cover_builtin_catalogs():
    """Every built-in catalog question resolves without the default label."""
    catalog = StaticQuestionCatalog()
    for test_type in ("phq9", "holland", "disc", "mbti", "love_language"):
        table = get_lookup_table(test_type)
        questions = catalog.get_questions(test_type)
        assert find_uncovered_questions(table, questions) == []

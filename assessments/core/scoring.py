"""
Scoring strategies.

Scoring is pluggable per test type: each test-type descriptor carries a
``ScoringStrategy`` that turns the dimension tally (see
``assessments.core.dimensions``) into a ``ScoreResult``. Strategies are
pure; they never touch storage.

Built-in strategies
===================
- ``Phq9Scoring``: PHQ-9 depression screening. Total is the sum of the nine
  0-3 item scores; severity bands are minimal (0-4), mild (5-9),
  moderate (10-14), moderately severe (15-19) and severe (20-27).
- ``DimensionScoring``: profile tests (Holland, DISC, love languages). The
  tally is the score vector; primary and secondary labels are the two
  highest scores.
- ``MbtiScoring``: axis tallies resolved into a four-letter type.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from assessments.core.dimensions import DimensionTally, PHQ9_ITEMS
from assessments.core.error_responses import ErrorMessages
from assessments.core.exceptions import ValidationError
from libs.domain_types import Phq9Severity

logger = logging.getLogger(__name__)


@dataclass
class ScoreResult:
    """Output of a scoring strategy."""

    scores: Dict[str, Any]
    interpretation: str
    recommendations: List[str] = field(default_factory=list)
    categories: Dict[str, Any] = field(default_factory=dict)
    dimensions: Dict[str, float] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)


class ScoringStrategy(Protocol):
    """
    Protocol for per-test-type scoring.

    ``validate_answers`` runs before the session is persisted so malformed
    submissions are rejected without leaving a record behind.
    """

    def validate_answers(self, answers: Sequence[Any]) -> None:
        """Raise ValidationError if the answers cannot be scored."""
        ...

    def compute_score(self, tally: DimensionTally, answers: Sequence[Any]) -> ScoreResult:
        """Score a completed attempt."""
        ...


def _ranked(tally: DimensionTally) -> List[Tuple[str, float]]:
    """Labels by descending score, ties broken by label name."""
    return sorted(tally.items(), key=lambda item: (-item[1], item[0]))


class Phq9Scoring:
    """PHQ-9 depression screening."""

    ITEM_MIN = 0
    ITEM_MAX = 3

    SEVERITY_BANDS: Tuple[Tuple[int, Phq9Severity], ...] = (
        (4, Phq9Severity.MINIMAL),
        (9, Phq9Severity.MILD),
        (14, Phq9Severity.MODERATE),
        (19, Phq9Severity.MODERATELY_SEVERE),
    )

    INTERPRETATIONS = {
        Phq9Severity.MINIMAL: "Minimal or no depressive symptoms.",
        Phq9Severity.MILD: "Mild depressive symptoms.",
        Phq9Severity.MODERATE: "Moderate depressive symptoms.",
        Phq9Severity.MODERATELY_SEVERE: "Moderately severe depressive symptoms.",
        Phq9Severity.SEVERE: "Severe depressive symptoms.",
    }

    RECOMMENDATIONS = {
        Phq9Severity.MINIMAL: [
            "Keep up regular sleep, exercise and social contact.",
        ],
        Phq9Severity.MILD: [
            "Monitor your mood over the next few weeks.",
            "Consider talking with someone you trust about how you feel.",
        ],
        Phq9Severity.MODERATE: [
            "Consider contacting a mental health professional.",
            "Repeat the screening in two weeks to track changes.",
        ],
        Phq9Severity.MODERATELY_SEVERE: [
            "Contact a mental health professional for an assessment.",
        ],
        Phq9Severity.SEVERE: [
            "Contact a mental health professional as soon as possible.",
        ],
    }

    SELF_HARM_RECOMMENDATION = (
        "You reported thoughts of self-harm. Please reach out to a crisis line "
        "or emergency services right away."
    )

    @classmethod
    def severity_for(cls, total_score: int) -> Phq9Severity:
        """Map a total score onto its severity band."""
        for upper, severity in cls.SEVERITY_BANDS:
            if total_score <= upper:
                return severity
        return Phq9Severity.SEVERE

    def validate_answers(self, answers: Sequence[Any]) -> None:
        """Require exactly one whole-number 0-3 answer for each of the nine items."""
        violations = []
        expected = [f"phq9_{n}" for n in range(1, len(PHQ9_ITEMS) + 1)]
        for answer in answers:
            question_id = answer.question_id
            if question_id not in expected:
                violations.append(
                    {
                        "field": "answers",
                        "questionId": question_id,
                        "message": ErrorMessages.unknown_question("phq9", question_id),
                    }
                )
                continue
            value = answer.value
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or not self.ITEM_MIN <= value <= self.ITEM_MAX
                or value != int(value)
            ):
                violations.append(
                    {
                        "field": "answers",
                        "questionId": question_id,
                        "message": ErrorMessages.answer_out_of_range(
                            question_id, self.ITEM_MIN, self.ITEM_MAX
                        ),
                    }
                )
        answered = {answer.question_id for answer in answers}
        violations.extend(
            {
                "field": "answers",
                "questionId": question_id,
                "message": ErrorMessages.missing_answer(question_id),
            }
            for question_id in expected
            if question_id not in answered
        )
        if violations:
            raise ValidationError(
                "PHQ-9 needs a whole-number answer from 0 to 3 for each of its nine questions.",
                violations,
            )

    def compute_score(self, tally: DimensionTally, answers: Sequence[Any]) -> ScoreResult:
        item_scores = {item: int(tally.get(item, 0)) for item in PHQ9_ITEMS}
        total_score = sum(item_scores.values())
        severity = self.severity_for(total_score)

        recommendations = list(self.RECOMMENDATIONS[severity])
        self_harm_flag = item_scores["self_harm"] > 0
        if self_harm_flag:
            recommendations.insert(0, self.SELF_HARM_RECOMMENDATION)

        return ScoreResult(
            scores={"total_score": total_score, "items": item_scores},
            interpretation=self.INTERPRETATIONS[severity],
            recommendations=recommendations,
            categories={"severity": severity.value},
            dimensions={k: float(v) for k, v in item_scores.items()},
            data={
                "total_score": total_score,
                "max_score": self.ITEM_MAX * len(PHQ9_ITEMS),
                "severity": severity.value,
                "self_harm_flag": self_harm_flag,
            },
        )


class DimensionScoring:
    """
    Profile scoring: the tally is the score vector.

    Args:
        descriptions: Optional label -> one-line description used in the
            interpretation text
    """

    def __init__(self, descriptions: Optional[Dict[str, str]] = None):
        self.descriptions = descriptions or {}

    def validate_answers(self, answers: Sequence[Any]) -> None:
        if not answers:
            raise ValidationError(ErrorMessages.EMPTY_ANSWERS)

    def compute_score(self, tally: DimensionTally, answers: Sequence[Any]) -> ScoreResult:
        ranked = _ranked(tally)
        primary = ranked[0][0] if ranked else None
        secondary = ranked[1][0] if len(ranked) > 1 else None
        total = sum(tally.values())
        percentages = {
            label: (round(value / total * 100, 1) if total else 0.0)
            for label, value in tally.items()
        }

        description = self.descriptions.get(primary or "", "")
        interpretation = f"Your strongest dimension is {primary}."
        if description:
            interpretation = f"{interpretation} {description}"

        return ScoreResult(
            scores=dict(tally),
            interpretation=interpretation,
            recommendations=[
                f"Explore activities that draw on {label}." for label in (primary, secondary) if label
            ],
            categories={"primary": primary, "secondary": secondary},
            dimensions=dict(tally),
            data={"ranking": [label for label, _ in ranked], "percentages": percentages},
        )


class MbtiScoring(DimensionScoring):
    """Resolve axis tallies (EI, SN, TF, JP) into a four-letter type."""

    AXES = ("EI", "SN", "TF", "JP")

    def compute_score(self, tally: DimensionTally, answers: Sequence[Any]) -> ScoreResult:
        # Ties resolve to the first letter of the pair
        letters = [axis[0] if tally.get(axis, 0.0) >= 0 else axis[1] for axis in self.AXES]
        personality_type = "".join(letters)
        return ScoreResult(
            scores=dict(tally),
            interpretation=f"Your type is {personality_type}.",
            recommendations=[],
            categories={"type": personality_type},
            dimensions=dict(tally),
            data={"type": personality_type},
        )

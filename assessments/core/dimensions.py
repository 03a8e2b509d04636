"""
Deterministic answer -> dimension extraction.

Raw answers carry only a question id. Each test type owns a versioned
``DimensionLookupTable`` that maps question ids (exact id first, then the
longest matching prefix) to a dimension/category label. ``extract`` folds an
answer list into a ``DimensionTally`` (label -> accumulated weight) which is
the input to scoring.

Question ids missing from a table land in the table's ``default_label``.
That is a data-quality problem with the table, reported by
``find_uncovered_questions`` when a catalog is loaded, never a runtime error.

Determinism: answers are folded in ``question_id`` order, so the tally is
bit-identical regardless of the order the answers were given in.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

# Weight added for an answer whose value is a non-numeric choice
UNIT_WEIGHT = 1.0

# Label used when a test type has no lookup table at all
GENERAL_LABEL = "general"

DimensionTally = Dict[str, float]


class AnswerLike(Protocol):
    question_id: str
    value: Any


@dataclass(frozen=True)
class DimensionLookupTable:
    """
    Versioned question-id -> label mapping for one test type.

    Attributes:
        test_type: Test type identifier
        version: Table version, recorded alongside results
        default_label: Label for question ids the table does not cover
        exact: Question id -> label
        prefixes: (prefix, label) pairs; the longest matching prefix wins
    """

    test_type: str
    version: str
    default_label: str
    exact: Mapping[str, str] = field(default_factory=dict)
    prefixes: Tuple[Tuple[str, str], ...] = ()

    def label_for(self, question_id: str) -> str:
        """Resolve the label for a question id."""
        label = self.exact.get(question_id)
        if label is not None:
            return label
        best: Optional[Tuple[str, str]] = None
        for prefix, candidate in self.prefixes:
            if question_id.startswith(prefix) and (best is None or len(prefix) > len(best[0])):
                best = (prefix, candidate)
        return best[1] if best else self.default_label

    def covers(self, question_id: str) -> bool:
        """Whether the id resolves without falling back to the default label."""
        if question_id in self.exact:
            return True
        return any(question_id.startswith(prefix) for prefix, _ in self.prefixes)

    def labels(self) -> List[str]:
        """All labels the table can produce, sorted, excluding the default."""
        found = set(self.exact.values()) | {label for _, label in self.prefixes}
        return sorted(found)


def _numbered(prefix: str, blocks: Sequence[Tuple[int, int, str]], width: int = 0) -> Dict[str, str]:
    """Expand ``(first, last, label)`` blocks into ``{prefix + n: label}``."""
    table: Dict[str, str] = {}
    for first, last, label in blocks:
        for n in range(first, last + 1):
            table[f"{prefix}{str(n).zfill(width)}"] = label
    return table


PHQ9_ITEMS = (
    "anhedonia",
    "depressed_mood",
    "sleep",
    "fatigue",
    "appetite",
    "self_worth",
    "concentration",
    "psychomotor",
    "self_harm",
)

HOLLAND_TYPES = (
    "realistic",
    "investigative",
    "artistic",
    "social",
    "enterprising",
    "conventional",
)

DISC_STYLES = ("dominance", "influence", "steadiness", "conscientiousness")

# Each MBTI question scores along one axis; positive values lean to the
# first letter of the pair, negative values to the second.
MBTI_AXES = ("EI", "SN", "TF", "JP")

LOVE_LANGUAGES = {
    "ll_words_": "words_of_affirmation",
    "ll_acts_": "acts_of_service",
    "ll_gifts_": "receiving_gifts",
    "ll_time_": "quality_time",
    "ll_touch_": "physical_touch",
}

LOOKUP_TABLES: Dict[str, DimensionLookupTable] = {
    "phq9": DimensionLookupTable(
        test_type="phq9",
        version="1",
        default_label="depression",
        exact={f"phq9_{i + 1}": item for i, item in enumerate(PHQ9_ITEMS)},
    ),
    "holland": DimensionLookupTable(
        test_type="holland",
        version="1",
        default_label="unclassified",
        exact=_numbered(
            "holland_",
            [(i * 10 + 1, i * 10 + 10, label) for i, label in enumerate(HOLLAND_TYPES)],
            width=3,
        ),
    ),
    "disc": DimensionLookupTable(
        test_type="disc",
        version="1",
        default_label="unclassified",
        exact=_numbered(
            "disc_",
            [(i * 7 + 1, i * 7 + 7, label) for i, label in enumerate(DISC_STYLES)],
        ),
    ),
    "mbti": DimensionLookupTable(
        test_type="mbti",
        version="1",
        default_label="unclassified",
        exact=_numbered(
            "mbti_",
            [(i * 5 + 1, i * 5 + 5, axis) for i, axis in enumerate(MBTI_AXES)],
        ),
    ),
    "love_language": DimensionLookupTable(
        test_type="love_language",
        version="1",
        default_label="unclassified",
        prefixes=tuple(LOVE_LANGUAGES.items()),
    ),
}


def get_lookup_table(test_type: str) -> Optional[DimensionLookupTable]:
    """Return the registered table for a test type, if any."""
    return LOOKUP_TABLES.get(test_type)


def register_lookup_table(table: DimensionLookupTable) -> None:
    """Register (or replace) the table for ``table.test_type``."""
    LOOKUP_TABLES[table.test_type] = table


def table_from_questions(
    test_type: str, questions: Iterable[Any], version: str = "catalog"
) -> DimensionLookupTable:
    """
    Build a table from self-describing questions.

    Uses each question's ``dimension``, else its ``category``. Questions
    carrying neither are left uncovered.
    """
    exact = {}
    for question in questions:
        label = getattr(question, "dimension", None) or getattr(question, "category", None)
        if label:
            exact[question.id] = label
    return DimensionLookupTable(
        test_type=test_type, version=version, default_label=GENERAL_LABEL, exact=exact
    )


def find_uncovered_questions(table: DimensionLookupTable, questions: Iterable[Any]) -> List[str]:
    """Ids of catalog questions that would fall back to the default label."""
    return [q.id for q in questions if not table.covers(q.id)]


def numeric_value(value: Any) -> Optional[float]:
    """
    The answer value as a finite number, or None.

    Accepts ints, floats and numeric strings. Booleans, lists, ``nan`` and
    infinities are not numbers here.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def answer_weight(value: Any) -> float:
    """
    Numeric contribution of one answer value.

    Numbers count as themselves, booleans as 1/0, numeric strings as their
    number, other strings as ``UNIT_WEIGHT``, lists as ``UNIT_WEIGHT`` per
    selected option.

    Raises:
        ValueError: If the value is a non-finite number (``nan``, ``inf``)
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (list, tuple)):
        return UNIT_WEIGHT * len(value)
    if not isinstance(value, (int, float, str)):
        return 0.0
    number = numeric_value(value)
    if number is not None:
        return number
    if isinstance(value, str) and _is_plain_text(value):
        return UNIT_WEIGHT
    raise ValueError(f"Answer value {value!r} is not a finite number")


def _is_plain_text(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return True
    return False


def extract(
    test_type: str,
    answers: Iterable[AnswerLike],
    table: Optional[DimensionLookupTable] = None,
) -> DimensionTally:
    """
    Fold answers into a per-label tally.

    Args:
        test_type: Test type whose lookup table applies
        answers: Answers carrying ``question_id`` and ``value``
        table: Explicit table (defaults to the registered one)

    Returns:
        Label -> accumulated weight, keys sorted. Every label the table
        declares is present, even with no answers.
    """
    table = table or get_lookup_table(test_type)
    ordered = sorted(answers, key=lambda a: (str(a.question_id), repr(a.value)))

    buckets: Dict[str, float] = {}
    if table is not None:
        buckets = {label: 0.0 for label in table.labels()}

    for answer in ordered:
        label = table.label_for(answer.question_id) if table else GENERAL_LABEL
        buckets[label] = buckets.get(label, 0.0) + answer_weight(answer.value)

    return {label: buckets[label] for label in sorted(buckets)}

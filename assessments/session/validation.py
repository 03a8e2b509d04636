"""
Answer validation against a question's format contract.

``validate_answer`` is a pure function: it inspects the question and the raw
value and either returns normally or raises ``ValidationError`` with a
single field-level violation.
"""
import math
from typing import Any, List, Union

from assessments.core.exceptions import ValidationError
from assessments.schemas.questions import (
    LikertQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionOption,
    ScaleQuestion,
    SingleChoiceQuestion,
    TextQuestion,
)

AnswerValue = Union[str, int, float, bool, List[str]]


def _fail(question: Question, message: str, value: Any) -> None:
    raise ValidationError(
        message,
        violations=[
            {"field": "value", "questionId": question.id, "message": message, "input": value}
        ],
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _matches_option(value: Any, options: List[QuestionOption]) -> bool:
    for option in options:
        if value == option.id:
            return True
        if option.value is not None and value == option.value:
            return True
    return False


def _validate_single_choice(question: SingleChoiceQuestion, value: Any) -> None:
    if not (isinstance(value, str) or _is_number(value)):
        _fail(question, "Single-choice answers must be one option.", value)
    if not _matches_option(value, question.options):
        _fail(question, f"'{value}' is not an option of question '{question.id}'.", value)


def _validate_multiple_choice(question: MultipleChoiceQuestion, value: Any) -> None:
    if not isinstance(value, list):
        _fail(question, "Multiple-choice answers must be a list of options.", value)
    if len(set(map(str, value))) != len(value):
        _fail(question, "Multiple-choice answers must not repeat an option.", value)
    unknown = [v for v in value if not _matches_option(v, question.options)]
    if unknown:
        _fail(question, f"Unknown options for question '{question.id}': {unknown}.", value)

    low, high = question.min_selections, question.effective_max_selections
    if not low <= len(value) <= high:
        _fail(question, f"Select between {low} and {high} options.", value)


def _validate_scale(question: ScaleQuestion, value: Any) -> None:
    if not _is_number(value) or math.isnan(value):
        _fail(question, "Scale answers must be a number.", value)
    if not question.min_value <= value <= question.max_value:
        _fail(
            question,
            f"Value must be between {question.min_value} and {question.max_value}.",
            value,
        )
    if question.step:
        steps = (value - question.min_value) / question.step
        if not math.isclose(steps, round(steps), abs_tol=1e-9):
            _fail(question, f"Value must be a multiple of {question.step}.", value)


def _validate_likert(question: LikertQuestion, value: Any) -> None:
    if not (isinstance(value, str) or _is_number(value)):
        _fail(question, "Likert answers must be one scale point.", value)
    if not _matches_option(value, question.options):
        _fail(question, f"'{value}' is not a scale point of question '{question.id}'.", value)


def _validate_text(question: TextQuestion, value: Any) -> None:
    if not isinstance(value, str):
        _fail(question, "Text answers must be a string.", value)
    trimmed = value.strip()
    if not trimmed and question.required:
        _fail(question, "Text answers must not be empty.", value)
    if len(trimmed) > question.max_length:
        _fail(question, f"Text answers must be at most {question.max_length} characters.", value)


_VALIDATORS = {
    "single_choice": _validate_single_choice,
    "multiple_choice": _validate_multiple_choice,
    "scale": _validate_scale,
    "likert": _validate_likert,
    "text": _validate_text,
}


def validate_answer(question: Question, value: AnswerValue) -> None:
    """
    Check a raw answer against the question's format contract.

    Args:
        question: The question being answered
        value: Raw answer value

    Raises:
        ValidationError: If the value violates the contract
    """
    if value is None:
        _fail(question, "An answer value is required.", value)
    _VALIDATORS[question.format](question, value)

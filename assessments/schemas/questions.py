"""
Pydantic schemas for catalog questions.

A question is a tagged union on ``format``. Questions are frozen once
loaded: the session machine holds them for the lifetime of a session and
never mutates them.
"""

from typing import Annotated, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class QuestionOption(BaseModel):
    """One selectable option of a choice or likert question."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Option identifier")
    text: str = Field(..., description="Option label shown to the user")
    value: Optional[Union[int, float, str]] = Field(
        None, description="Value recorded when the option is chosen"
    )


class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1, description="Question identifier")
    text: str = Field(..., description="Question text")
    category: Optional[str] = Field(None, description="Category the question scores into")
    dimension: Optional[str] = Field(None, description="Dimension the question scores into")
    weight: float = Field(1.0, description="Relative weight in scoring")
    required: bool = Field(True, description="Whether an answer is required")


class SingleChoiceQuestion(_QuestionBase):
    """Exactly one option must be chosen."""

    format: Literal["single_choice"] = "single_choice"
    options: List[QuestionOption] = Field(..., min_length=1)


class MultipleChoiceQuestion(_QuestionBase):
    """Between ``min_selections`` and ``max_selections`` distinct options."""

    format: Literal["multiple_choice"] = "multiple_choice"
    options: List[QuestionOption] = Field(..., min_length=1)
    min_selections: int = Field(1, ge=0, alias="minSelections")
    max_selections: Optional[int] = Field(None, ge=1, alias="maxSelections")

    @model_validator(mode="after")
    def check_selection_bounds(self) -> "MultipleChoiceQuestion":
        upper = self.effective_max_selections
        if self.min_selections > upper:
            raise ValueError(
                f"min_selections ({self.min_selections}) exceeds max_selections ({upper})"
            )
        return self

    @property
    def effective_max_selections(self) -> int:
        """Upper bound on selections, defaulting to the option count."""
        if self.max_selections is None:
            return len(self.options)
        return min(self.max_selections, len(self.options))


class ScaleQuestion(_QuestionBase):
    """A number in ``[min_value, max_value]``, optionally on a ``step`` grid."""

    format: Literal["scale"] = "scale"
    min_value: float = Field(..., alias="minValue")
    max_value: float = Field(..., alias="maxValue")
    step: Optional[float] = Field(None, gt=0)
    min_label: Optional[str] = Field(None, alias="minLabel")
    max_label: Optional[str] = Field(None, alias="maxLabel")

    @model_validator(mode="after")
    def check_range(self) -> "ScaleQuestion":
        if self.min_value > self.max_value:
            raise ValueError("min_value must not exceed max_value")
        return self


class LikertQuestion(_QuestionBase):
    """One of a fixed set of scale points, each with a numeric value."""

    format: Literal["likert"] = "likert"
    options: List[QuestionOption] = Field(..., min_length=2)


class TextQuestion(_QuestionBase):
    """Free text, non-empty after trimming, at most ``max_length`` characters."""

    format: Literal["text"] = "text"
    max_length: int = Field(1000, ge=1, alias="maxLength")
    placeholder: Optional[str] = None


Question = Annotated[
    Union[
        SingleChoiceQuestion,
        MultipleChoiceQuestion,
        ScaleQuestion,
        LikertQuestion,
        TextQuestion,
    ],
    Field(discriminator="format"),
]

_question_list_adapter = TypeAdapter(List[Question])


def parse_questions(raw: Sequence[dict]) -> List[Question]:
    """Validate raw question dicts (e.g. from a JSON catalog) into models."""
    return _question_list_adapter.validate_python(list(raw))

"""
Pydantic schemas for request/response validation.
"""
from .feedback import FeedbackRequest
from .questions import (
    LikertQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionOption,
    ScaleQuestion,
    SingleChoiceQuestion,
    TextQuestion,
    parse_questions,
)
from .submissions import AnswerIn, TestSubmissionRequest, UserInfo

__all__ = [
    "AnswerIn",
    "FeedbackRequest",
    "LikertQuestion",
    "MultipleChoiceQuestion",
    "Question",
    "QuestionOption",
    "ScaleQuestion",
    "SingleChoiceQuestion",
    "TestSubmissionRequest",
    "TextQuestion",
    "UserInfo",
    "parse_questions",
]

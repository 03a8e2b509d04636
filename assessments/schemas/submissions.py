"""
Pydantic schemas for test submission and result retrieval.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessments.core.validators import StringSanitizer

AnswerValue = Union[bool, int, float, str, List[str]]


class AnswerIn(BaseModel):
    """One answer in a submission."""

    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(
        ..., alias="questionId", min_length=1, max_length=100, description="Question ID"
    )
    value: AnswerValue = Field(..., description="Answer value")
    timestamp: Optional[str] = Field(None, description="ISO-8601 time the answer was given")
    time_spent_ms: Optional[int] = Field(
        None, alias="timeSpentMs", ge=0, description="Time spent on the question"
    )

    @field_validator("question_id")
    @classmethod
    def sanitize_question_id(cls, v: str) -> str:
        sanitized = StringSanitizer.sanitize_identifier(v, max_length=100)
        if not sanitized:
            raise ValueError("questionId contains invalid characters")
        return sanitized


class UserInfo(BaseModel):
    """Optional, self-reported context attached to a submission."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    age: Optional[int] = Field(None, ge=1, le=130)
    gender: Optional[str] = Field(None, max_length=32)
    locale: Optional[str] = Field(None, max_length=16)


class TestSubmissionRequest(BaseModel):
    """Schema for a completed test submission."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "testType": "phq9",
                "answers": [
                    {"questionId": "phq9_1", "value": 1},
                    {"questionId": "phq9_2", "value": 0},
                ],
                "sessionId": "6f0b4c1e-1d5e-4d8c-9d7c-3c1f8a2b9e10",
            }
        },
    )

    test_type: str = Field(..., alias="testType", min_length=1, max_length=50)
    answers: List[AnswerIn] = Field(..., min_length=1, max_length=500)
    user_info: Optional[UserInfo] = Field(None, alias="userInfo")
    session_id: Optional[str] = Field(
        None,
        alias="sessionId",
        max_length=64,
        description="Client session id; resubmitting the same id returns the stored result",
    )
    duration_ms: Optional[int] = Field(None, alias="durationMs", ge=0)

    @field_validator("test_type")
    @classmethod
    def sanitize_test_type(cls, v: str) -> str:
        sanitized = StringSanitizer.sanitize_identifier(v)
        if not sanitized:
            raise ValueError("testType contains invalid characters")
        return sanitized

    @field_validator("answers")
    @classmethod
    def unique_question_ids(cls, v: List[AnswerIn]) -> List[AnswerIn]:
        seen = set()
        duplicates = set()
        for answer in v:
            if answer.question_id in seen:
                duplicates.add(answer.question_id)
            seen.add(answer.question_id)
        if duplicates:
            raise ValueError(f"Duplicate answers for questions: {sorted(duplicates)}")
        return v

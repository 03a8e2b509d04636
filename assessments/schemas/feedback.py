"""
Pydantic schemas for result feedback.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessments.core.validators import StringSanitizer
from libs.domain_types import FeedbackRating


class FeedbackRequest(BaseModel):
    """Schema for like/dislike feedback on a result."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "sessionId": "6f0b4c1e-1d5e-4d8c-9d7c-3c1f8a2b9e10",
                "testType": "phq9",
                "feedback": "like",
                "comment": "Clear and helpful explanation.",
            }
        },
    )

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=64)
    test_type: str = Field(..., alias="testType", min_length=1, max_length=50)
    feedback: FeedbackRating = Field(..., description="like or dislike")
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator("test_type")
    @classmethod
    def sanitize_test_type(cls, v: str) -> str:
        sanitized = StringSanitizer.sanitize_identifier(v)
        if not sanitized:
            raise ValueError("testType contains invalid characters")
        return sanitized

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v: Optional[str]) -> Optional[str]:
        """Strip control characters; an all-whitespace comment becomes None."""
        if v is None:
            return None
        stripped = StringSanitizer.strip_control(v)
        return stripped or None

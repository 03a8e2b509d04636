"""
Feedback on a completed test result.
"""
import logging
from typing import Any, Dict, Optional

from assessments.core.client_identity import hash_ip
from assessments.core.content_filter import ContentFilter
from assessments.core.error_responses import ErrorMessages
from assessments.core.exceptions import NotFoundError, ValidationError
from assessments.core.validators import StringSanitizer
from assessments.schemas.feedback import FeedbackRequest
from assessments.services.session_repository import SessionRepository

logger = logging.getLogger(__name__)


class FeedbackService:
    """
    Filter, sanitize and persist user feedback.

    The comment is checked by the content filter before anything is stored:
    strict-tier matches reject the request, warn-tier matches are redacted
    and recorded in ``content_flags``.
    """

    def __init__(
        self,
        repository: SessionRepository,
        content_filter: Optional[ContentFilter] = None,
    ):
        self.repository = repository
        self.content_filter = content_filter or ContentFilter()

    async def submit(self, feedback: FeedbackRequest, *, client_ip: str) -> Dict[str, Any]:
        """
        Store feedback for an existing session.

        Raises:
            NotFoundError: Unknown session id
            ValidationError: Test type does not match the session
            ContentPolicyError: Comment matched a strict category
        """
        session = await self.repository.get_session(feedback.session_id)
        if session is None:
            raise NotFoundError(ErrorMessages.RESULT_NOT_FOUND)
        if session.test_type != feedback.test_type:
            raise ValidationError(
                ErrorMessages.TEST_TYPE_MISMATCH,
                violations=[{"field": "testType", "message": "Does not match the session"}],
            )

        comment = None
        flags = []
        severity = None
        if feedback.comment:
            result = self.content_filter.validate(feedback.comment)
            comment = StringSanitizer.sanitize_text(result.filtered_content or "")
            flags = [category.value for category in result.detected_categories]
            if flags:
                severity = result.severity
                logger.info(
                    f"Redacted feedback comment ({', '.join(flags)})",
                    extra={"session_id": session.id, "test_type": session.test_type},
                )

        record = await self.repository.create_feedback(
            session_id=session.id,
            test_type=session.test_type,
            rating=feedback.feedback,
            comment=comment or None,
            content_flags=flags,
            content_severity=severity,
            ip_address_hash=hash_ip(client_ip),
        )
        return {
            "feedbackId": record.id,
            "sessionId": session.id,
            "contentFlags": flags,
            "redacted": bool(flags),
        }

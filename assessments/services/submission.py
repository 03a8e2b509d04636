"""
Submission pipeline for completed tests.

Transport-level stages (structural validation, rate limiting) run as
middleware before a request reaches this service; schema validation is done
by ``TestSubmissionRequest``. ``SubmissionService.submit`` then runs the
remaining stages in order:

1. Resolve the test type (404 if unknown)
2. Idempotency: a known client session id returns its stored result
3. Answer check: known question ids, values in range, then the scoring strategy's rules (400)
4. Dimension extraction
5. Persistence of the session with an empty result placeholder (500 on failure)
6. Scoring and persistence of the result
7. Cache population under the session id
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from assessments.core.cache import Cache
from assessments.core.client_identity import hash_ip
from assessments.core.datetime_utils import to_iso, utc_now
from assessments.core.dimensions import extract
from assessments.core.error_responses import ErrorMessages, violations_from_errors
from assessments.core.exceptions import ValidationError
from assessments.core.test_types import get_test_type
from assessments.models import TestSessionRecord
from assessments.schemas.submissions import TestSubmissionRequest
from assessments.services.results import build_result_projection
from assessments.services.session_repository import SessionRepository

logger = logging.getLogger(__name__)


def parse_submission(payload: Dict[str, Any]) -> TestSubmissionRequest:
    """
    Validate a raw submission payload.

    Raises:
        ValidationError: With one violation per invalid field
    """
    try:
        return TestSubmissionRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            ErrorMessages.REQUEST_VALIDATION_FAILED,
            violations=violations_from_errors(e.errors()),
        ) from e


class SubmissionService:
    """
    Score, persist and cache a completed test.

    Args:
        repository: Session repository for the current request
        result_cache: Result cache (keyed by session id)
    """

    def __init__(self, repository: SessionRepository, result_cache: Cache):
        self.repository = repository
        self.result_cache = result_cache

    async def submit(
        self,
        submission: TestSubmissionRequest,
        *,
        client_ip: str,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Run the submission stages and return the public result projection.

        Raises:
            NotFoundError: Unknown test type
            ValidationError: Answers the test type cannot score
            PersistenceError: Durable storage failed
        """
        descriptor = get_test_type(submission.test_type)
        log_extra = {"test_type": descriptor.id}

        record: Optional[TestSessionRecord] = None
        if submission.session_id:
            record = await self.repository.get_by_client_session_id(submission.session_id)
            if record is not None:
                if record.test_type != descriptor.id:
                    raise ValidationError(
                        "Session id was already submitted for a different test type.",
                        violations=[{"field": "sessionId", "message": "Already used"}],
                    )
                if record.result_data:
                    logger.info(
                        f"Returning stored result for resubmitted session {record.id}",
                        extra=log_extra,
                    )
                    projection = build_result_projection(record)
                    self.result_cache.set(record.id, projection)
                    return projection

        descriptor.validate_answers(submission.answers)
        tally = extract(descriptor.id, submission.answers)
        table = descriptor.lookup_table

        if record is None:
            record = await self.repository.create_session(
                test_type=descriptor.id,
                answers_data=[
                    a.model_dump(by_alias=True, exclude_none=True)
                    for a in submission.answers
                ],
                session_duration_ms=submission.duration_ms,
                ip_address_hash=hash_ip(client_ip),
                user_agent=user_agent,
                client_session_id=submission.session_id,
            )

        score = descriptor.scorer.compute_score(tally, submission.answers)
        result_data = {
            "scores": score.scores,
            "categories": score.categories,
            "dimensions": score.dimensions or tally,
            "interpretation": score.interpretation,
            "recommendations": score.recommendations,
            "data": score.data,
            "completedAt": to_iso(utc_now()),
        }
        record = await self.repository.save_result(
            record, result_data, tally, table.version if table else None
        )

        projection = build_result_projection(record)
        self.result_cache.set(record.id, projection)

        logger.info(
            f"Stored result for session {record.id}",
            extra={**log_extra, "session_id": record.id},
        )
        return projection

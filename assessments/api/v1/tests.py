"""
Test-type catalog, submission and result endpoints.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request, status

from assessments.api.deps import (
    get_config_cache,
    get_question_catalog,
    get_result_service,
    get_submission_service,
)
from assessments.core.cache import Cache
from assessments.core.client_identity import get_client_ip
from assessments.core.error_responses import ErrorMessages, success_envelope
from assessments.core.exceptions import ValidationError
from assessments.core.test_types import StaticQuestionCatalog, get_test_type, list_test_types
from assessments.schemas.submissions import TestSubmissionRequest
from assessments.services import ResultService, SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()

TEST_TYPES_CACHE_KEY = "test_types"


@router.get("")
async def list_tests(config_cache: Cache = Depends(get_config_cache)):
    """
    List every available test type.

    The listing is served from the configuration cache (``CONFIG_CACHE_TTL``).
    """

    async def load():
        return [descriptor.to_config() for descriptor in list_test_types()]

    return success_envelope(await config_cache.get_or_load(TEST_TYPES_CACHE_KEY, load))


@router.get("/results/{session_id}")
async def get_result(
    session_id: str,
    result_service: ResultService = Depends(get_result_service),
):
    """
    Fetch a stored result by session id.

    Cache-aside: a cached result is returned without touching the database.
    """
    return success_envelope(await result_service.get_result(session_id))


@router.get("/{test_type}")
async def get_test_config(test_type: str):
    """Configuration of one test type."""
    return success_envelope(get_test_type(test_type).to_config())


@router.get("/{test_type}/questions")
async def get_questions(
    test_type: str,
    language: str = Query("en", min_length=2, max_length=8),
    catalog: StaticQuestionCatalog = Depends(get_question_catalog),
):
    """Ordered question list for a test type."""
    questions = catalog.get_questions(test_type, language)
    return success_envelope(
        {
            "testType": test_type,
            "language": language,
            "questions": [q.model_dump(by_alias=True, mode="json") for q in questions],
        }
    )


@router.post("/{test_type}/submit", status_code=status.HTTP_201_CREATED)
async def submit_test(
    test_type: str,
    submission: TestSubmissionRequest,
    request: Request,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    """
    Submit a completed test for scoring.

    Resubmitting with the same ``sessionId`` returns the stored result.

    Raises:
        404: Unknown test type
        400: Body does not match the URL, or answers cannot be scored
        500: The session could not be stored
    """
    get_test_type(test_type)
    if submission.test_type != test_type:
        raise ValidationError(
            ErrorMessages.TEST_TYPE_MISMATCH,
            violations=[{"field": "testType", "message": f"Expected '{test_type}'"}],
        )

    result = await submission_service.submit(
        submission,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return success_envelope(result, message="Test submitted successfully.")

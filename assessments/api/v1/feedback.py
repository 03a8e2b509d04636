"""
Result feedback endpoint.
"""
from fastapi import APIRouter, Depends, Request, status

from assessments.api.deps import get_feedback_service
from assessments.core.client_identity import get_client_ip
from assessments.core.error_responses import success_envelope
from assessments.schemas.feedback import FeedbackRequest
from assessments.services import FeedbackService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    feedback: FeedbackRequest,
    request: Request,
    feedback_service: FeedbackService = Depends(get_feedback_service),
):
    """
    Like or dislike a result, with an optional comment.

    Comments matching a strict content category are rejected (400);
    personal information, spam and profanity are redacted before storage.
    Rate limited per client under the ``feedback`` route class.
    """
    data = await feedback_service.submit(feedback, client_ip=get_client_ip(request))
    return success_envelope(data, message="Thank you for your feedback.")

"""
Server-side services: submission pipeline, result retrieval, feedback and
retention.
"""
from assessments.services.feedback import FeedbackService
from assessments.services.results import ResultService, build_result_projection
from assessments.services.retention import purge_expired_sessions
from assessments.services.session_repository import SessionRepository, handle_db_error
from assessments.services.submission import SubmissionService, parse_submission

__all__ = [
    "FeedbackService",
    "ResultService",
    "SessionRepository",
    "SubmissionService",
    "build_result_projection",
    "handle_db_error",
    "parse_submission",
    "purge_expired_sessions",
]

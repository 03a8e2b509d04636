"""
Shared FastAPI dependencies.

Stores, caches and the catalog are created once in ``create_application``
and kept on ``app.state``; services are built per request around the
request's database session.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from assessments.core.cache import Cache
from assessments.core.content_filter import ContentFilter
from assessments.core.test_types import StaticQuestionCatalog
from assessments.models import get_db
from assessments.services import (
    FeedbackService,
    ResultService,
    SessionRepository,
    SubmissionService,
)


def get_result_cache(request: Request) -> Cache:
    return request.app.state.result_cache


def get_config_cache(request: Request) -> Cache:
    return request.app.state.config_cache


def get_question_catalog(request: Request) -> StaticQuestionCatalog:
    return request.app.state.question_catalog


def get_content_filter(request: Request) -> ContentFilter:
    return request.app.state.content_filter


def get_session_repository(db: AsyncSession = Depends(get_db)) -> SessionRepository:
    return SessionRepository(db)


def get_submission_service(
    repository: SessionRepository = Depends(get_session_repository),
    result_cache: Cache = Depends(get_result_cache),
) -> SubmissionService:
    return SubmissionService(repository, result_cache)


def get_result_service(
    repository: SessionRepository = Depends(get_session_repository),
    result_cache: Cache = Depends(get_result_cache),
) -> ResultService:
    return ResultService(repository, result_cache)


def get_feedback_service(
    repository: SessionRepository = Depends(get_session_repository),
    content_filter: ContentFilter = Depends(get_content_filter),
) -> FeedbackService:
    return FeedbackService(repository, content_filter)

"""
Result retrieval with a cache-aside read path.
"""
import logging
from typing import Any, Dict

from assessments.core.cache import Cache
from assessments.core.error_responses import ErrorMessages
from assessments.core.exceptions import NotFoundError
from assessments.models import TestSessionRecord
from assessments.services.session_repository import SessionRepository

logger = logging.getLogger(__name__)


def build_result_projection(record: TestSessionRecord) -> Dict[str, Any]:
    """
    Reshape a stored session into the public result projection.

    A session whose scoring never completed projects with
    ``data.placeholder`` set and empty scores.
    """
    result = record.result_data or {}
    data = dict(result.get("data") or {})
    if not result:
        data["placeholder"] = True
    return {
        "sessionId": record.id,
        "testType": record.test_type,
        "scores": result.get("scores", {}),
        "categories": result.get("categories", {}),
        "dimensions": result.get("dimensions", {}),
        "interpretation": result.get("interpretation", ""),
        "recommendations": result.get("recommendations", []),
        "data": data,
        "completedAt": result.get("completedAt"),
    }


class ResultService:
    """
    Serve results from the cache, falling back to durable storage.

    Args:
        repository: Session repository for the current request
        cache: Result cache (keyed by session id)
    """

    def __init__(self, repository: SessionRepository, cache: Cache):
        self.repository = repository
        self.cache = cache

    async def get_result(self, session_id: str) -> Dict[str, Any]:
        """
        Return the result projection for a session.

        Raises:
            NotFoundError: If no session exists with this id
            PersistenceError: If durable storage fails on a cache miss
        """
        cached = self.cache.get(session_id)
        if cached is not None:
            return cached

        record = await self.repository.get_session(session_id)
        if record is None:
            raise NotFoundError(ErrorMessages.RESULT_NOT_FOUND)

        projection = build_result_projection(record)
        # Placeholders are not final, so they are never cached
        if not projection["data"].get("placeholder"):
            self.cache.set(session_id, projection)
        else:
            logger.info(
                "Served placeholder result", extra={"session_id": session_id}
            )
        return projection

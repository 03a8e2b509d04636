"""
Submission transports used by ``TestSessionMachine.end_test``.

Both clients return the public result projection (``sessionId``,
``testType``, ``scores``, ``interpretation``, ``recommendations``,
``completedAt``, ...) and raise ``SubmissionFailedError`` when no result
could be produced.
"""
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import httpx

from assessments.core.cache import Cache
from assessments.core.exceptions import AppError, SubmissionFailedError
from assessments.services import SessionRepository, SubmissionService, parse_submission
from assessments.session.models import TestAnswer

logger = logging.getLogger(__name__)


class SubmissionClient(Protocol):
    """Anything that can turn a completed session into a result projection."""

    async def submit(
        self,
        test_type: str,
        answers: Sequence[TestAnswer],
        *,
        session_id: str,
        user_info: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        ...


def build_submission_payload(
    test_type: str,
    answers: Sequence[TestAnswer],
    *,
    session_id: str,
    user_info: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """JSON body for ``POST /v1/tests/{testType}/submit``."""
    payload: Dict[str, Any] = {
        "testType": test_type,
        "answers": [answer.to_dict() for answer in answers],
        "sessionId": session_id,
    }
    if user_info:
        payload["userInfo"] = user_info
    if duration_ms is not None:
        payload["durationMs"] = duration_ms
    return payload


class HttpSubmissionClient:
    """
    Submit over HTTP.

    Args:
        base_url: Service root, e.g. ``https://api.example.com``
        api_prefix: Versioned API prefix
        timeout: Request timeout in seconds
        client: Optional preconfigured ``httpx.AsyncClient`` (closed by the
            caller)
    """

    def __init__(
        self,
        base_url: str = "",
        api_prefix: str = "/v1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_prefix = api_prefix.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def submit(
        self,
        test_type: str,
        answers: Sequence[TestAnswer],
        *,
        session_id: str,
        user_info: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        url = f"{self.api_prefix}/tests/{test_type}/submit"
        payload = build_submission_payload(
            test_type,
            answers,
            session_id=session_id,
            user_info=user_info,
            duration_ms=duration_ms,
        )
        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise SubmissionFailedError(f"Timeout submitting {test_type}: {e}") from e
        except httpx.HTTPError as e:
            raise SubmissionFailedError(f"Connection error submitting {test_type}: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success or not body.get("success"):
            message = body.get("error") or response.text
            logger.error(f"Submission rejected: HTTP {response.status_code} - {message}")
            raise SubmissionFailedError(message, status_code=response.status_code)

        data = body.get("data")
        if not isinstance(data, dict):
            logger.error(f"Submission response for {test_type} carried no result data")
            raise SubmissionFailedError(
                "Submission response carried no result data.", status_code=response.status_code
            )
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LocalSubmissionClient:
    """
    Run the submission pipeline in-process.

    Args:
        session_factory: Callable returning an async DB session context
            manager (e.g. ``AsyncSessionLocal``)
        result_cache: Result cache shared with the API
        client_ip: Address recorded (hashed) with the session
    """

    def __init__(
        self,
        session_factory: Callable[[], Any],
        result_cache: Cache,
        client_ip: str = "127.0.0.1",
    ):
        self.session_factory = session_factory
        self.result_cache = result_cache
        self.client_ip = client_ip

    async def submit(
        self,
        test_type: str,
        answers: Sequence[TestAnswer],
        *,
        session_id: str,
        user_info: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload = build_submission_payload(
            test_type,
            answers,
            session_id=session_id,
            user_info=user_info,
            duration_ms=duration_ms,
        )
        try:
            submission = parse_submission(payload)
            async with self.session_factory() as db:
                service = SubmissionService(SessionRepository(db), self.result_cache)
                return await service.submit(submission, client_ip=self.client_ip)
        except AppError as e:
            raise SubmissionFailedError(e.message, status_code=e.status_code) from e

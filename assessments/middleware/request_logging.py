"""
Access logging with a per-request correlation id.
"""
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from assessments.core.logging_config import request_id_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an id and log how it ended.

    A client-supplied ``X-Request-ID`` is reused; otherwise a UUID4 is
    generated. The id lives in ``request_id_context`` for the duration of
    the request and is returned in the response header of the same name.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_context.set(request_id)
        started = time.perf_counter()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "client_host": request.client.host if request.client else "unknown",
        }
        logger.debug("Request received", extra=fields)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            fields["status_code"] = response.status_code
            fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            logger.log(_level_for(response.status_code), "Request finished", extra=fields)
        finally:
            request_id_context.reset(token)
        return response


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO

"""
FastAPI middleware for automatic rate limiting.

Each request is assigned a route class by ``route_classifier``; requests
with no route class (health checks, docs) are not counted. Route classes
have independent windows, so exhausting the submission quota does not
block reads.
"""
import logging
from typing import Awaitable, Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from assessments.core.client_identity import get_client_ip
from assessments.core.config import settings
from assessments.core.error_responses import ErrorMessages, error_response
from assessments.ratelimit.limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

SUBMIT = "submit"
READ = "read"
FEEDBACK = "feedback"

_MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def classify_route(request: Request) -> Optional[str]:
    """
    Map a request onto its rate-limit route class.

    Returns:
        "submit", "feedback", "read", or None for unmetered paths
    """
    path = request.url.path
    prefix = settings.API_V1_PREFIX
    if not path.startswith(f"{prefix}/"):
        return None
    if path.startswith(f"{prefix}/docs") or path.startswith(f"{prefix}/openapi"):
        return None
    if path.startswith(f"{prefix}/feedback"):
        return FEEDBACK
    if request.method in _MUTATING_METHODS:
        return SUBMIT
    return READ


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Apply the fixed-window limiter to every metered request.

    Example:
        ```python
        app.add_middleware(
            RateLimitMiddleware,
            limiter=FixedWindowRateLimiter(storage, rules),
        )
        ```
    """

    def __init__(
        self,
        app,
        limiter: FixedWindowRateLimiter,
        route_classifier: Optional[Callable[[Request], Optional[str]]] = None,
        identifier_resolver: Optional[Callable[[Request], str]] = None,
        add_headers: bool = True,
    ):
        """
        Initialize rate limit middleware.

        Args:
            app: FastAPI application
            limiter: FixedWindowRateLimiter instance
            route_classifier: Maps a request to a route class or None
            identifier_resolver: Extracts the client key (default: client IP)
            add_headers: Whether to add X-RateLimit-* headers to responses
        """
        super().__init__(app)
        self.limiter = limiter
        self.route_classifier = route_classifier or classify_route
        self.identifier_resolver = identifier_resolver or get_client_ip
        self.add_headers = add_headers

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        route_class = self.route_classifier(request)
        if route_class is None or route_class not in self.limiter.rules:
            return await call_next(request)

        client_key = self.identifier_resolver(request)
        allowed, metadata = self.limiter.check(route_class, client_key)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {route_class} by {client_key}",
                extra={"route_class": route_class, "path": request.url.path},
            )
            return self._rate_limit_response(route_class, metadata)

        response = await call_next(request)

        if self.add_headers:
            self._add_rate_limit_headers(response, metadata)

        return response

    def _rate_limit_response(self, route_class: str, metadata: dict) -> Response:
        retry_after = metadata.get("retry_after", 0)
        response = error_response(
            429,
            ErrorMessages.RATE_LIMIT_EXCEEDED,
            "RATE_LIMIT_EXCEEDED",
            details={
                "retryAfter": retry_after,
                "limit": metadata.get("limit", 0),
                "window": self.limiter.get_rule(route_class).window,
            },
        )
        self._add_rate_limit_headers(response, metadata)
        if retry_after > 0:
            response.headers["Retry-After"] = str(retry_after)
        return response

    def _add_rate_limit_headers(self, response: Response, metadata: dict) -> None:
        """
        Add rate limit headers to response.

        - X-RateLimit-Limit: Request quota
        - X-RateLimit-Remaining: Remaining requests
        - X-RateLimit-Reset: When quota resets (Unix timestamp)
        """
        response.headers["X-RateLimit-Limit"] = str(metadata.get("limit", 0))
        response.headers["X-RateLimit-Remaining"] = str(metadata.get("remaining", 0))
        response.headers["X-RateLimit-Reset"] = str(metadata.get("reset_at", 0))

"""
Security middleware: response hardening headers and structural request
validation.
"""
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from assessments.core.error_responses import ErrorMessages, app_error_response
from assessments.core.exceptions import (
    AppError,
    MissingHeadersError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    ValidationError,
)

_MUTATING_METHODS = {"POST", "PUT", "PATCH"}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    The API serves JSON only, so the content security policy forbids all
    script execution and framing.
    """

    CSP = "; ".join(
        [
            "default-src 'self'",
            "script-src 'none'",
            "object-src 'none'",
            "frame-ancestors 'none'",
        ]
    )

    def __init__(
        self,
        app: ASGIApp,
        hsts_enabled: bool = True,
        hsts_max_age: int = 31536000,  # 1 year
    ):
        super().__init__(app)
        self.hsts_enabled = hsts_enabled
        self.hsts_max_age = hsts_max_age

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = self.CSP

        if self.hsts_enabled:
            response.headers[
                "Strict-Transport-Security"
            ] = f"max-age={self.hsts_max_age}; includeSubDomains"

        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """
    Structural validation of incoming requests.

    Runs before rate limiting and before the body is parsed:

    1. Mutating requests (POST/PUT/PATCH) must carry every required header (400)
    2. Content-Length must not exceed ``max_body_size`` (413)
    3. Mutating requests must declare a whitelisted content type (415)
    """

    def __init__(
        self,
        app: ASGIApp,
        max_body_size: int = 1024 * 1024,
        allowed_content_types: Optional[Iterable[str]] = None,
        required_headers: Optional[Iterable[str]] = None,
    ):
        """
        Initialize request validation middleware.

        Args:
            app: ASGI application
            max_body_size: Maximum request body size in bytes (default: 1MB)
            allowed_content_types: Media types accepted on mutating requests
            required_headers: Header names mutating requests must carry
        """
        super().__init__(app)
        self.max_body_size = max_body_size
        self.allowed_content_types = {
            ct.lower() for ct in (allowed_content_types or ["application/json"])
        }
        self.required_headers = [h.lower() for h in (required_headers or [])]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            self._check(request)
        except AppError as e:
            return app_error_response(e)
        return await call_next(request)

    def _check(self, request: Request) -> None:
        is_mutating = request.method in _MUTATING_METHODS

        if is_mutating:
            missing = [h for h in self.required_headers if h not in request.headers]
            if missing:
                raise MissingHeadersError(ErrorMessages.missing_headers(missing), missing)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                length = int(content_length)
            except ValueError as e:
                raise ValidationError("Invalid Content-Length header.") from e
            if length > self.max_body_size:
                raise PayloadTooLargeError(ErrorMessages.payload_too_large(self.max_body_size))

        if is_mutating:
            raw_type = request.headers.get("content-type", "")
            media_type = raw_type.split(";")[0].strip().lower()
            if media_type not in self.allowed_content_types:
                raise UnsupportedMediaTypeError(
                    ErrorMessages.unsupported_media_type(media_type or "none")
                )

"""
Domain exceptions for the assessment session machine and submission API.

These exceptions carry no HTTP machinery so they can be raised from the
client-side session machine as well as from services. The API layer maps
them onto the standard error envelope using ``status_code`` and
``error_code`` (see ``assessments.core.error_responses``).
"""
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for all user-facing errors.

    Attributes:
        message: User-facing message, safe to return to clients
        status_code: HTTP status used when the error crosses the API boundary
        error_code: Stable machine-readable code
        details: Optional structured context (never stack traces)
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    """Malformed, missing, or out-of-range input. Recoverable by correcting it."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        violations: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.violations = violations or []
        if self.violations:
            details = {**(details or {}), "violations": self.violations}
        super().__init__(message, details)


class NoQuestionsAvailable(ValidationError):
    """A test was started with an empty question list."""

    error_code = "NO_QUESTIONS_AVAILABLE"

    def __init__(self, test_type: str):
        self.test_type = test_type
        super().__init__(
            f"No questions are available for test type '{test_type}'.",
            details={"testType": test_type},
        )


class InvalidSessionStateError(ValidationError):
    """An operation was attempted in a session state that does not allow it."""

    error_code = "INVALID_SESSION_STATE"


class NotFoundError(AppError):
    """Unknown test type or session."""

    status_code = 404
    error_code = "NOT_FOUND"


class RateLimitedError(AppError):
    """Too many requests in the current window. Retry after ``retry_after`` seconds."""

    status_code = 429
    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int, limit: int, window: int):
        self.retry_after = retry_after
        self.limit = limit
        self.window = window
        super().__init__(
            message,
            details={"retryAfter": retry_after, "limit": limit, "window": window},
        )


class PersistenceError(AppError):
    """Durable storage failed. Always propagated to the caller."""

    status_code = 500
    error_code = "PERSISTENCE_ERROR"

    def __init__(self, operation_name: str, original_error: Optional[Exception] = None):
        self.operation_name = operation_name
        self.original_error = original_error
        super().__init__(f"Failed to {operation_name}. Please try again later.")


class ContentPolicyError(AppError):
    """Free text matched a strict-tier content category and was rejected."""

    status_code = 400
    error_code = "CONTENT_POLICY_VIOLATION"

    def __init__(self, categories: List[str]):
        self.categories = categories
        super().__init__(
            "Content violates the content policy and was rejected.",
            details={"categories": categories},
        )


class MissingHeadersError(ValidationError):
    """A mutating request lacks one or more required headers."""

    error_code = "MISSING_HEADERS"

    def __init__(self, message: str, missing: List[str]):
        self.missing = missing
        super().__init__(message, details={"missing": missing})


class PayloadTooLargeError(AppError):
    """Request body exceeds the configured ceiling."""

    status_code = 413
    error_code = "PAYLOAD_TOO_LARGE"


class UnsupportedMediaTypeError(AppError):
    """Content-Type is not in the whitelist for a mutating request."""

    status_code = 415
    error_code = "UNSUPPORTED_MEDIA_TYPE"


class StorageUnavailableError(Exception):
    """A key-value store (rate-limit counters or cache) could not be reached.

    Internal only: callers decide whether to fail open or convert it.
    """


class SubmissionFailedError(Exception):
    """A submission transport could not produce a result.

    Raised by submission clients; the session machine turns it into a
    placeholder result.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

"""
Standardized error messages and response envelopes.

Every user-facing error leaves the API in the same envelope::

    {
        "success": false,
        "error": "Human readable message.",
        "code": "VALIDATION_ERROR",
        "details": {...},            # optional, never a stack trace
        "timestamp": "2024-01-01T00:00:00+00:00",
        "requestId": "..."
    }

Successful responses use the matching success envelope built by
``success_envelope``.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Use "Please try again later." for transient server errors
"""

from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse

from assessments.core.datetime_utils import to_iso, utc_now
from assessments.core.exceptions import AppError
from assessments.core.logging_config import request_id_context


class ErrorMessages:
    """Centralized error message constants and templates."""

    # ==========================================================================
    # Validation Errors (400)
    # ==========================================================================
    REQUEST_VALIDATION_FAILED = "Request validation failed."
    TEST_TYPE_MISMATCH = "Test type in the request body does not match the URL."
    EMPTY_ANSWERS = "At least one answer is required."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    RESULT_NOT_FOUND = "Test result not found."

    # ==========================================================================
    # Transport Errors (413, 415, 429)
    # ==========================================================================
    RATE_LIMIT_EXCEEDED = "Too many requests. Please try again later."

    # ==========================================================================
    # Server Errors (500)
    # ==========================================================================
    INTERNAL_ERROR = "An unexpected error occurred. Please try again later."

    # ==========================================================================
    # Message Templates
    # ==========================================================================

    @staticmethod
    def unknown_test_type(test_type: str) -> str:
        """Message for a test type missing from the registry."""
        return f"Test type '{test_type}' not found."

    @staticmethod
    def payload_too_large(max_bytes: int) -> str:
        """Message for a request body over the size ceiling."""
        return f"Request body too large. Maximum size is {max_bytes} bytes."

    @staticmethod
    def unsupported_media_type(content_type: str) -> str:
        """Message for a content type outside the whitelist."""
        return f"Unsupported content type '{content_type}'."

    @staticmethod
    def missing_headers(headers: list) -> str:
        """Message listing the required headers that were absent."""
        return f"Missing required headers: {', '.join(sorted(headers))}."

    @staticmethod
    def answer_out_of_range(question_id: str, low: float, high: float) -> str:
        """Message for an answer value outside the test type's range."""
        return f"Answer for question '{question_id}' must be between {low} and {high}."

    @staticmethod
    def unknown_question(test_type: str, question_id: str) -> str:
        """Message for an answer to a question the test type does not have."""
        return f"Question '{question_id}' is not part of the '{test_type}' test."

    @staticmethod
    def missing_answer(question_id: str) -> str:
        return f"Question '{question_id}' must be answered."


def error_envelope(
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the error envelope for the current request."""
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "timestamp": to_iso(utc_now()),
        "requestId": request_id_context.get(),
    }
    if details:
        body["details"] = details
    return body


def success_envelope(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    """Build the success envelope for the current request."""
    body: Dict[str, Any] = {
        "success": True,
        "data": data,
        "timestamp": to_iso(utc_now()),
        "requestId": request_id_context.get(),
    }
    if message:
        body["message"] = message
    return body


def error_response(
    status_code: int,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Wrap an error envelope in a JSONResponse."""
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(message, code, details),
        headers=headers,
    )


def app_error_response(exc: AppError) -> JSONResponse:
    """Convert a domain exception into its enveloped JSONResponse."""
    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return error_response(
        exc.status_code, exc.message, exc.error_code, exc.details, headers
    )


def violations_from_errors(errors) -> List[Dict[str, str]]:
    """Convert pydantic/FastAPI error dicts into field-level violations."""
    violations = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", []) if part != "body"]
        violations.append(
            {
                "field": ".".join(loc),
                "message": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
        )
    return violations

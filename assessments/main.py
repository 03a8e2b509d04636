"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional
from urllib.parse import urlparse

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from assessments.api.v1 import health
from assessments.api.v1.api import api_router
from assessments.core.cache import Cache
from assessments.core.config import settings
from assessments.core.content_filter import ContentFilter
from assessments.core.error_responses import (
    ErrorMessages,
    app_error_response,
    error_response,
    violations_from_errors,
)
from assessments.core.exceptions import AppError
from assessments.core.logging_config import setup_logging
from assessments.core.storage import create_storage
from assessments.core.test_types import StaticQuestionCatalog
from assessments.middleware import (
    RequestLoggingMiddleware,
    RequestValidationMiddleware,
    SecurityHeadersMiddleware,
)
from assessments.models import create_tables
from assessments.ratelimit import (
    FEEDBACK,
    READ,
    SUBMIT,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    RateLimitRule,
)

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


def _sanitize_redis_url(url: str) -> str:
    """Remove the password from a Redis URL for safe logging."""
    parsed = urlparse(url)
    if parsed.password:
        netloc = parsed.hostname or "localhost"
        if parsed.port:
            netloc = f"{netloc}:{parsed.port}"
        return f"{parsed.scheme}://{netloc}{parsed.path}"
    return url


def default_rate_limit_rules() -> Dict[str, RateLimitRule]:
    """Per-route-class rules from settings."""
    feedback_fail_open = settings.RATE_LIMIT_FEEDBACK_FAIL_OPEN
    if feedback_fail_open is None:
        feedback_fail_open = settings.RATE_LIMIT_FAIL_OPEN
    return {
        SUBMIT: RateLimitRule(
            limit=settings.RATE_LIMIT_SUBMIT_LIMIT,
            window=settings.RATE_LIMIT_SUBMIT_WINDOW,
            fail_open=settings.RATE_LIMIT_FAIL_OPEN,
        ),
        READ: RateLimitRule(
            limit=settings.RATE_LIMIT_READ_LIMIT,
            window=settings.RATE_LIMIT_READ_WINDOW,
            fail_open=settings.RATE_LIMIT_FAIL_OPEN,
        ),
        FEEDBACK: RateLimitRule(
            limit=settings.RATE_LIMIT_FEEDBACK_LIMIT,
            window=settings.RATE_LIMIT_FEEDBACK_WINDOW,
            fail_open=feedback_fail_open,
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: creates missing tables
    - On shutdown: closes key-value store connection pools
    """
    await create_tables()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENV})")

    yield

    if hasattr(app.state, "rate_limit_storage"):
        app.state.rate_limit_storage.close()
        logger.info("Closed rate limit storage")
    app.state.cache_storage.close()
    logger.info("Closed cache storage")


tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoint for monitoring application status",
    },
    {
        "name": "tests",
        "description": "Test catalog, submission and result retrieval",
    },
    {
        "name": "feedback",
        "description": "Like/dislike feedback on results",
    },
]


def create_application(
    rate_limit_rules: Optional[Dict[str, RateLimitRule]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        rate_limit_rules: Override the per-route-class rules from settings
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "Assessment submission API.\n\n"
            "* Test catalog and questions\n"
            "* Scored submission of completed tests\n"
            "* Cached result retrieval\n"
            "* Result feedback"
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    # Shared stores, caches and catalog
    cache_storage = create_storage(
        settings.CACHE_STORAGE, settings.CACHE_REDIS_URL, key_prefix="assessments:cache:"
    )
    if settings.CACHE_STORAGE == "redis":
        logger.info(f"Cache backend: redis at {_sanitize_redis_url(settings.CACHE_REDIS_URL)}")
    app.state.cache_storage = cache_storage
    app.state.result_cache = Cache(cache_storage, "result", settings.RESULT_CACHE_TTL)
    app.state.config_cache = Cache(cache_storage, "config", settings.CONFIG_CACHE_TTL)
    app.state.question_catalog = StaticQuestionCatalog()
    app.state.content_filter = ContentFilter()

    # Middleware is added innermost first: rate limiting runs after
    # structural validation, and request logging wraps everything.
    if settings.RATE_LIMIT_ENABLED:
        storage = create_storage(
            settings.RATE_LIMIT_STORAGE,
            settings.RATE_LIMIT_REDIS_URL,
            key_prefix="assessments:ratelimit:",
        )
        if settings.RATE_LIMIT_STORAGE == "redis":
            logger.info(
                f"Rate limiting backend: redis at {_sanitize_redis_url(settings.RATE_LIMIT_REDIS_URL)}"
            )
        app.state.rate_limit_storage = storage
        app.state.rate_limiter = FixedWindowRateLimiter(
            storage, rate_limit_rules or default_rate_limit_rules()
        )
        app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.MAX_REQUEST_BODY_BYTES,
        allowed_content_types=settings.ALLOWED_CONTENT_TYPES,
        required_headers=settings.REQUIRED_HEADERS,
    )

    # HSTS is enabled only in production to avoid issues with local development
    app.add_middleware(
        SecurityHeadersMiddleware,
        hsts_enabled=settings.ENV == "production",
        hsts_max_age=31536000,  # 1 year
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """Map domain exceptions onto the error envelope."""
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return app_error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Wrap routing errors (unknown path, wrong method) in the envelope."""
        return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Schema failures are 400s with one violation per invalid field."""
        violations = violations_from_errors(exc.errors())
        logger.info(
            f"Request validation failed on {request.url.path}: "
            f"{[v['field'] for v in violations]}"
        )
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            ErrorMessages.REQUEST_VALIDATION_FAILED,
            "VALIDATION_ERROR",
            details={"violations": violations},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception so support can find
        the logged traceback; no internal details reach the response.
        """
        error_id = str(uuid.uuid4())
        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorMessages.INTERNAL_ERROR,
            "INTERNAL_ERROR",
            details={"error_id": error_id},
        )

    return app


app = create_application()

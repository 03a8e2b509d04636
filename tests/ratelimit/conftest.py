"""Shared fixtures for rate limiting tests.

Tests in this directory use the lightweight app from
``rate_limited_app_factory``: stub routes, no database.
"""
import pytest
from fastapi import FastAPI

from assessments.core.storage import InMemoryStorage
from assessments.ratelimit import (
    FEEDBACK,
    READ,
    SUBMIT,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    RateLimitRule,
)


def _default_rules():
    return {
        SUBMIT: RateLimitRule(limit=3, window=60),
        READ: RateLimitRule(limit=5, window=60),
        FEEDBACK: RateLimitRule(limit=1, window=3600),
    }


@pytest.fixture
def rate_limited_app_factory():
    """Build a FastAPI app with only the rate limit middleware and stub routes."""

    def factory(rules=None, storage=None) -> FastAPI:
        app = FastAPI()
        limiter = FixedWindowRateLimiter(storage or InMemoryStorage(), rules or _default_rules())
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        @app.get("/v1/tests")
        async def list_tests():
            return {"tests": []}

        @app.post("/v1/tests/phq9/submit")
        async def submit():
            return {"ok": True}

        @app.post("/v1/feedback")
        async def feedback():
            return {"ok": True}

        return app

    return factory

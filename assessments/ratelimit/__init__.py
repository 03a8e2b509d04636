"""
Fixed-window rate limiting for the submission API.
"""
from assessments.ratelimit.limiter import FixedWindowRateLimiter, RateLimitRule
from assessments.ratelimit.middleware import (
    FEEDBACK,
    READ,
    SUBMIT,
    RateLimitMiddleware,
    classify_route,
)

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitRule",
    "RateLimitMiddleware",
    "classify_route",
    "SUBMIT",
    "READ",
    "FEEDBACK",
]

"""
Middleware package for request/response processing.
"""
from .request_logging import RequestLoggingMiddleware
from .security import RequestValidationMiddleware, SecurityHeadersMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "RequestValidationMiddleware",
    "SecurityHeadersMiddleware",
]

"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter

from assessments.api.v1 import feedback, tests

api_router = APIRouter()

api_router.include_router(tests.router, prefix="/tests", tags=["tests"])
api_router.include_router(feedback.router, prefix="/feedback", tags=["feedback"])

"""
Models package.
"""
from .base import AsyncSessionLocal, Base, async_engine, create_tables, get_db
from .models import FeedbackRecord, TestSessionRecord

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "async_engine",
    "create_tables",
    "get_db",
    "FeedbackRecord",
    "TestSessionRecord",
]

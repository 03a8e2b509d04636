"""
Database base configuration for SQLAlchemy models.

All database access is async (``get_db`` yields an ``AsyncSession``). The
configured DATABASE_URL may use a sync driver prefix; it is rewritten to the
matching async driver.
"""

import os
from typing import Any, AsyncGenerator, Dict

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from assessments.core.config import settings

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL") or settings.DATABASE_URL

# Echo SQL in debug mode only
DEBUG = os.getenv("DB_ECHO", "False").lower() in ("true", "1", "yes")

POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
POOL_MAX_OVERFLOW = int(os.getenv("DB_POOL_MAX_OVERFLOW", "20"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))

_SYNC_PREFIX_MAP = {
    "postgresql+psycopg2://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(url: str) -> str:
    """
    Rewrite a database URL to its async driver.

    URLs that already name an async driver are returned unchanged.

    Raises:
        ValueError: If the URL uses a prefix with no known async driver
    """
    if "+asyncpg://" in url or "+aiosqlite://" in url:
        return url
    for sync_prefix, async_prefix in _SYNC_PREFIX_MAP.items():
        if url.startswith(sync_prefix):
            return async_prefix + url[len(sync_prefix) :]
    raise ValueError(
        f"No async driver mapping for DATABASE_URL prefix. "
        f"Supported prefixes: {list(_SYNC_PREFIX_MAP.keys())}"
    )


ASYNC_DATABASE_URL = to_async_url(DATABASE_URL)

_engine_kwargs: Dict[str, Any] = {"echo": DEBUG}
if not ASYNC_DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(
        pool_size=POOL_SIZE,
        max_overflow=POOL_MAX_OVERFLOW,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
    )

async_engine = create_async_engine(ASYNC_DATABASE_URL, **_engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base class."""

    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Async dependency function to get database session.

    Yields an async database session and ensures proper cleanup.
    """
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


async def create_tables() -> None:
    """Create any missing tables. Called from the application lifespan."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

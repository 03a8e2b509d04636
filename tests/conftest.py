"""
Shared fixtures: test database, application, client and result cache.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker

from assessments.core.cache import Cache
from assessments.core.storage import InMemoryStorage
from assessments.models import Base, get_db


@asynccontextmanager
async def _test_lifespan(app):
    """Skips table creation and storage shutdown; fixtures own both."""
    yield


# Use SQLite for tests; the path is relative to this file so the .db lands
# inside tests/ regardless of the working directory.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Async engine on the same file so sync fixtures and async endpoints share data
ASYNC_SQLALCHEMY_DATABASE_URL = f"sqlite+aiosqlite:///{_TEST_DB}"

async_test_engine = create_async_engine(
    ASYNC_SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
AsyncTestingSessionLocal = async_sessionmaker(
    async_test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture
def create_test_application():
    """
    Factory for a fresh application with the lifespan disabled.

    Returns the full app (all routes, middleware, exception handlers).
    """
    from assessments.main import create_application

    def factory(**kwargs):
        test_app = create_application(**kwargs)
        test_app.router.lifespan_context = _test_lifespan
        return test_app

    return factory


@pytest.fixture(scope="function")
def db_session():
    """
    Sync session on a freshly created schema; tables are dropped afterwards.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def app(db_session, create_test_application):
    """Application wired to the test database."""
    test_app = create_test_application()

    async def override_get_db():
        async with AsyncTestingSessionLocal() as session:
            yield session

    test_app.dependency_overrides[get_db] = override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app):
    """
    TestClient over the wired application.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(scope="function")
async def async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async session on a freshly created schema, for service-level tests.
    """
    async with async_test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncTestingSessionLocal() as session:
        yield session

    async with async_test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def async_session_factory(async_db_session):
    """Session factory bound to the async test database (tables created)."""
    return AsyncTestingSessionLocal


@pytest.fixture
def result_cache() -> Cache:
    """Result cache over a private in-memory store."""
    return Cache(InMemoryStorage(), "result", 86400)


@pytest.fixture
def phq9_answers():
    """Answers as submitted for PHQ-9, keyed by item number (total 8)."""
    values = [1, 1, 1, 1, 1, 1, 1, 1, 0]
    return [{"questionId": f"phq9_{i + 1}", "value": v} for i, v in enumerate(values)]

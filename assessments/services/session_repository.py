"""
Durable storage access for submitted sessions and feedback.

Every database failure is rolled back, logged and re-raised as
``PersistenceError`` so the API answers 500 with the standard envelope.
Persistence failures are never swallowed.
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assessments.core.datetime_utils import utc_now
from assessments.core.exceptions import PersistenceError
from assessments.models import FeedbackRecord, TestSessionRecord
from libs.domain_types import ContentSeverity, FeedbackRating

logger = logging.getLogger(__name__)


@asynccontextmanager
async def handle_db_error(
    db: AsyncSession, operation_name: str
) -> AsyncGenerator[None, None]:
    """Roll back and convert SQLAlchemy errors into PersistenceError.

    Example:
        >>> async with handle_db_error(db, "create test session"):
        ...     db.add(record)
        ...     await db.commit()
    """
    try:
        yield
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Database error during {operation_name}: {e}", exc_info=True)
        raise PersistenceError(operation_name, e) from e


class SessionRepository:
    """
    Session and feedback persistence over an ``AsyncSession``.

    Args:
        db: Async database session (one per request)
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_session(
        self,
        *,
        test_type: str,
        answers_data: List[Dict[str, Any]],
        session_duration_ms: Optional[int],
        ip_address_hash: Optional[str],
        user_agent: Optional[str] = None,
        client_session_id: Optional[str] = None,
    ) -> TestSessionRecord:
        """Insert a session with an empty result placeholder and return it."""
        record = TestSessionRecord(
            test_type=test_type,
            answers_data=answers_data,
            result_data={},
            session_duration_ms=session_duration_ms,
            ip_address_hash=ip_address_hash,
            user_agent=user_agent,
            client_session_id=client_session_id,
        )
        async with handle_db_error(self.db, "create test session"):
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        return record

    async def save_result(
        self,
        record: TestSessionRecord,
        result_data: Dict[str, Any],
        dimension_tally: Dict[str, float],
        lookup_table_version: Optional[str],
    ) -> TestSessionRecord:
        """Attach the scored result to a previously created session."""
        async with handle_db_error(self.db, "save test result"):
            record.result_data = result_data
            record.dimension_tally = dimension_tally
            record.lookup_table_version = lookup_table_version
            await self.db.commit()
            await self.db.refresh(record)
        return record

    async def get_session(self, session_id: str) -> Optional[TestSessionRecord]:
        """Load a session by its public id."""
        async with handle_db_error(self.db, "load test session"):
            return await self.db.get(TestSessionRecord, session_id)

    async def get_by_client_session_id(
        self, client_session_id: str
    ) -> Optional[TestSessionRecord]:
        """Load a session by the id the client assigned to it."""
        async with handle_db_error(self.db, "load test session"):
            result = await self.db.execute(
                select(TestSessionRecord).where(
                    TestSessionRecord.client_session_id == client_session_id
                )
            )
            return result.scalar_one_or_none()

    async def create_feedback(
        self,
        *,
        session_id: str,
        test_type: str,
        rating: FeedbackRating,
        comment: Optional[str],
        content_flags: List[str],
        content_severity: Optional[ContentSeverity],
        ip_address_hash: Optional[str],
    ) -> FeedbackRecord:
        """Insert a feedback row."""
        record = FeedbackRecord(
            session_id=session_id,
            test_type=test_type,
            rating=rating,
            comment=comment,
            content_flags=content_flags,
            content_severity=content_severity,
            ip_address_hash=ip_address_hash,
        )
        async with handle_db_error(self.db, "save feedback"):
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        return record

    async def purge_older_than(self, retention_days: int) -> Dict[str, int]:
        """
        Delete sessions and feedback older than ``retention_days``.

        Returns:
            Row counts deleted per table
        """
        cutoff = utc_now() - timedelta(days=retention_days)
        async with handle_db_error(self.db, "purge expired sessions"):
            feedback = await self.db.execute(
                delete(FeedbackRecord).where(FeedbackRecord.created_at < cutoff)
            )
            sessions = await self.db.execute(
                delete(TestSessionRecord).where(TestSessionRecord.created_at < cutoff)
            )
            await self.db.commit()
        counts = {"user_feedback": feedback.rowcount, "test_sessions": sessions.rowcount}
        logger.info(f"Purged records older than {retention_days} days: {counts}")
        return counts

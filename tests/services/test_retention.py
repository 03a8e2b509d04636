"""
Tests for the retention sweep.
"""
from datetime import timedelta

import pytest
from sqlalchemy import select

from assessments.core.datetime_utils import utc_now
from assessments.models import FeedbackRecord, TestSessionRecord
from assessments.services import SessionRepository, purge_expired_sessions
from libs.domain_types import FeedbackRating


async def add_session(repository, age_days):
    record = await repository.create_session(
        test_type="phq9",
        answers_data=[],
        session_duration_ms=None,
        ip_address_hash=None,
    )
    record.created_at = utc_now() - timedelta(days=age_days)
    await repository.db.commit()
    return record


@pytest.mark.asyncio
async def test_purges_only_expired_rows(async_db_session):
    repository = SessionRepository(async_db_session)
    old = await add_session(repository, age_days=400)
    recent = await add_session(repository, age_days=10)
    recent_id = recent.id
    feedback = await repository.create_feedback(
        session_id=old.id,
        test_type="phq9",
        rating=FeedbackRating.LIKE,
        comment=None,
        content_flags=[],
        content_severity=None,
        ip_address_hash=None,
    )
    feedback.created_at = utc_now() - timedelta(days=400)
    await async_db_session.commit()

    counts = await purge_expired_sessions(async_db_session, retention_days=365)

    assert counts == {"user_feedback": 1, "test_sessions": 1}
    remaining = (await async_db_session.execute(select(TestSessionRecord.id))).scalars().all()
    assert remaining == [recent_id]
    assert (await async_db_session.execute(select(FeedbackRecord))).scalars().all() == []


@pytest.mark.asyncio
async def test_nothing_to_purge(async_db_session):
    repository = SessionRepository(async_db_session)
    await add_session(repository, age_days=1)

    counts = await purge_expired_sessions(async_db_session, retention_days=30)

    assert counts == {"user_feedback": 0, "test_sessions": 0}

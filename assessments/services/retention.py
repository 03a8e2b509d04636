"""
Retention sweep for stored sessions and feedback.

Run from an external scheduler, e.g.::

    async with AsyncSessionLocal() as db:
        await purge_expired_sessions(db)
"""
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from assessments.core.config import settings
from assessments.services.session_repository import SessionRepository


async def purge_expired_sessions(
    db: AsyncSession, retention_days: Optional[int] = None
) -> Dict[str, int]:
    """Delete rows older than ``retention_days`` (default ``DATA_RETENTION_DAYS``)."""
    days = retention_days if retention_days is not None else settings.DATA_RETENTION_DAYS
    return await SessionRepository(db).purge_older_than(days)

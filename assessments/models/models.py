"""
Database models for completed test sessions and result feedback.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from libs.domain_types import ContentSeverity, FeedbackRating

from .base import Base


def _generate_session_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TestSessionRecord(Base):
    """A submitted test attempt and its result.

    ``result_data`` starts as an empty placeholder when the row is created
    and is filled in once scoring completes. The row's ``id`` is the public
    session id.
    """

    __tablename__ = "test_sessions"

    id = Column(String(36), primary_key=True, default=_generate_session_id)
    # Client-side session id, used to make resubmission idempotent
    client_session_id = Column(String(64), nullable=True, unique=True, index=True)
    test_type = Column(String(50), nullable=False, index=True)
    answers_data = Column(JSON, nullable=False)
    result_data = Column(JSON, nullable=False, default=dict)
    dimension_tally = Column(JSON, nullable=True)
    lookup_table_version = Column(String(32), nullable=True)
    session_duration_ms = Column(Integer, nullable=True)
    user_agent = Column(String(512), nullable=True)
    # SHA-256 of the client address; the cleartext address is never stored
    ip_address_hash = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utc_now, nullable=False, index=True
    )
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    feedback = relationship(
        "FeedbackRecord", back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_test_sessions_type_created", "test_type", "created_at"),)


class FeedbackRecord(Base):
    """Like/dislike feedback on a result, with an optional filtered comment."""

    __tablename__ = "user_feedback"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        String(36),
        ForeignKey("test_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    test_type = Column(String(50), nullable=False)
    rating = Column(Enum(FeedbackRating), nullable=False)
    # Stored after redaction of warn-tier content
    comment = Column(Text, nullable=True)
    content_flags = Column(JSON, nullable=True)
    content_severity = Column(Enum(ContentSeverity), nullable=True)
    ip_address_hash = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utc_now, nullable=False, index=True
    )

    session = relationship("TestSessionRecord", back_populates="feedback")

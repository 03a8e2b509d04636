"""
Progress snapshots and their local storage.

A snapshot is the serializable projection of a session, stored under
``test_progress_<sessionId>``. Writes from the session machine go through
``DebouncedProgressWriter``: bursts of answers collapse into one write, and a
failed write is logged without affecting the answer that triggered it.
"""
import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from assessments.core.datetime_utils import from_iso, to_iso, utc_now
from assessments.core.exceptions import ValidationError
from assessments.core.graceful_failure import graceful_failure
from assessments.core.validators import StringSanitizer
from assessments.session.models import TestAnswer, TestSession
from libs.domain_types import TestStatus

logger = logging.getLogger(__name__)

PROGRESS_KEY_PREFIX = "test_progress_"


def progress_key(session_id: str) -> str:
    """Storage key for a session's snapshot."""
    return f"{PROGRESS_KEY_PREFIX}{session_id}"


def _checked_session_id(session_id: str) -> str:
    if not session_id or StringSanitizer.sanitize_identifier(session_id, max_length=64) != session_id:
        raise ValidationError(
            "Invalid session id.",
            violations=[{"field": "sessionId", "message": "Invalid characters or length"}],
        )
    return session_id


@dataclass(frozen=True)
class ProgressSnapshot:
    """Serializable projection of a session."""

    test_type: str
    session_id: str
    current_question_index: int
    answers: Tuple[TestAnswer, ...]
    start_time: datetime
    last_update_time: datetime
    is_completed: bool
    time_spent_ms: int
    total_questions: int

    @classmethod
    def from_session(
        cls, session: TestSession, now: Optional[datetime] = None
    ) -> "ProgressSnapshot":
        now = now or utc_now()
        return cls(
            test_type=session.test_type,
            session_id=session.id,
            current_question_index=session.current_question_index,
            answers=session.answers,
            start_time=session.start_time,
            last_update_time=now,
            is_completed=session.status == TestStatus.COMPLETED,
            time_spent_ms=session.elapsed_ms(now),
            total_questions=session.total_questions,
        )

    def to_session(self) -> TestSession:
        """
        Rebuild a session: ``completed`` if the snapshot says so, otherwise
        ``in_progress`` with the clock restarting now.
        """
        if self.is_completed:
            return TestSession(
                id=self.session_id,
                test_type=self.test_type,
                status=TestStatus.COMPLETED,
                start_time=self.start_time,
                total_questions=self.total_questions,
                current_question_index=self.current_question_index,
                answers=self.answers,
                time_spent_ms=self.time_spent_ms,
                end_time=self.last_update_time,
            )
        return TestSession(
            id=self.session_id,
            test_type=self.test_type,
            status=TestStatus.IN_PROGRESS,
            start_time=self.start_time,
            total_questions=self.total_questions,
            current_question_index=self.current_question_index,
            answers=self.answers,
            time_spent_ms=self.time_spent_ms,
            resumed_at=utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testType": self.test_type,
            "sessionId": self.session_id,
            "currentQuestionIndex": self.current_question_index,
            "answers": [answer.to_dict() for answer in self.answers],
            "startTime": to_iso(self.start_time),
            "lastUpdateTime": to_iso(self.last_update_time),
            "isCompleted": self.is_completed,
            "timeSpentMs": self.time_spent_ms,
            "totalQuestions": self.total_questions,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProgressSnapshot":
        answers = tuple(TestAnswer.from_dict(a) for a in data.get("answers", []))
        return cls(
            test_type=data["testType"],
            session_id=data["sessionId"],
            current_question_index=int(data.get("currentQuestionIndex", 0)),
            answers=answers,
            start_time=from_iso(data["startTime"]),
            last_update_time=from_iso(data.get("lastUpdateTime")) or utc_now(),
            is_completed=bool(data.get("isCompleted", False)),
            time_spent_ms=int(data.get("timeSpentMs", 0)),
            # Older snapshots lack totalQuestions; the answer count is a lower bound
            total_questions=int(data.get("totalQuestions") or len(answers)),
        )


class ProgressStore(ABC):
    """Abstract snapshot store."""

    @abstractmethod
    def save(self, snapshot: ProgressSnapshot) -> None:
        pass

    @abstractmethod
    def load(self, session_id: str) -> Optional[ProgressSnapshot]:
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove a snapshot. Returns True if one existed."""
        pass

    @abstractmethod
    def list_session_ids(self) -> List[str]:
        """Session ids with a stored snapshot, sorted."""
        pass


class InMemoryProgressStore(ProgressStore):
    """
    Dict-backed store.

    Snapshots are stored in their serialized form so loading exercises the
    same decoding path as the file store.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    def save(self, snapshot: ProgressSnapshot) -> None:
        self._data[progress_key(snapshot.session_id)] = snapshot.to_dict()

    def load(self, session_id: str) -> Optional[ProgressSnapshot]:
        data = self._data.get(progress_key(session_id))
        return ProgressSnapshot.from_dict(data) if data is not None else None

    def delete(self, session_id: str) -> bool:
        return self._data.pop(progress_key(session_id), None) is not None

    def list_session_ids(self) -> List[str]:
        return sorted(key[len(PROGRESS_KEY_PREFIX):] for key in self._data)


class JsonFileProgressStore(ProgressStore):
    """
    One ``test_progress_<id>.json`` file per session in ``directory``.

    Writes go to a temporary file that is then renamed over the target, so a
    crash never leaves a half-written snapshot.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{progress_key(_checked_session_id(session_id))}.json"

    def save(self, snapshot: ProgressSnapshot) -> None:
        path = self._path(snapshot.session_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def load(self, session_id: str) -> Optional[ProgressSnapshot]:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                return ProgressSnapshot.from_dict(json.load(f))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable progress snapshot {path.name}: {e}")
            return None

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_session_ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            path.stem[len(PROGRESS_KEY_PREFIX):]
            for path in self.directory.glob(f"{PROGRESS_KEY_PREFIX}*.json")
        )


class DebouncedProgressWriter:
    """
    Collapse bursts of snapshot writes into one per session.

    Each session has its own pending slot and timer, so answering one test
    type never drops another type's unwritten snapshot. ``schedule`` keeps
    only the latest snapshot of a session and (re)arms that session's timer
    on the running event loop. Without a running loop, or with a zero
    delay, the write happens immediately.

    Args:
        store: Destination store
        delay: Debounce delay in seconds
    """

    def __init__(self, store: ProgressStore, delay: float):
        self.store = store
        self.delay = delay
        self._pending: Dict[str, ProgressSnapshot] = {}
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> Dict[str, ProgressSnapshot]:
        """Unwritten snapshots keyed by session id."""
        return dict(self._pending)

    def schedule(self, snapshot: ProgressSnapshot) -> None:
        session_id = snapshot.session_id
        self._pending[session_id] = snapshot
        if self.delay <= 0:
            self.flush(session_id)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush(session_id)
            return
        self._cancel_timer(session_id)
        self._handles[session_id] = loop.call_later(self.delay, self.flush, session_id)

    def flush(self, session_id: Optional[str] = None) -> None:
        """Write pending snapshots now (one session's, or all); failures are logged."""
        targets = [session_id] if session_id is not None else list(self._pending)
        for target in targets:
            self._cancel_timer(target)
            snapshot = self._pending.pop(target, None)
            if snapshot is None:
                continue
            with graceful_failure(
                "save progress snapshot", logger, context={"session_id": target}
            ):
                self.store.save(snapshot)

    def cancel(self, session_id: Optional[str] = None) -> None:
        """Drop pending writes (only ``session_id``'s, when given)."""
        targets = [session_id] if session_id is not None else list(self._pending)
        for target in targets:
            self._cancel_timer(target)
            self._pending.pop(target, None)

    def _cancel_timer(self, session_id: str) -> None:
        handle = self._handles.pop(session_id, None)
        if handle is not None:
            handle.cancel()

"""
Immutable state objects for the client-side session machine.

Every mutation produces a new object (``dataclasses.replace``); the machine
swaps its whole ``MachineState`` on each change, so listeners always observe
a consistent snapshot.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from assessments.core.datetime_utils import elapsed_ms, from_iso, to_iso, utc_now
from assessments.schemas.questions import Question
from assessments.session.validation import AnswerValue
from libs.domain_types import TestStatus

ACTIVE_STATUSES = (TestStatus.IN_PROGRESS, TestStatus.PAUSED)


@dataclass(frozen=True)
class TestAnswer:
    """One answer; a later answer for the same question replaces it."""

    question_id: str
    value: AnswerValue
    timestamp: datetime
    time_spent_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "questionId": self.question_id,
            "value": list(self.value) if isinstance(self.value, (list, tuple)) else self.value,
            "timestamp": to_iso(self.timestamp),
        }
        if self.time_spent_ms is not None:
            data["timeSpentMs"] = self.time_spent_ms
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TestAnswer":
        return cls(
            question_id=data["questionId"],
            value=data["value"],
            timestamp=from_iso(data.get("timestamp")) or utc_now(),
            time_spent_ms=data.get("timeSpentMs"),
        )


@dataclass(frozen=True)
class TestSession:
    """
    One attempt at a test.

    ``time_spent_ms`` holds the time accumulated up to the last pause;
    ``resumed_at`` marks when the current in-progress stretch began.
    """

    id: str
    test_type: str
    status: TestStatus
    start_time: datetime
    total_questions: int
    current_question_index: int = 0
    answers: Tuple[TestAnswer, ...] = ()
    time_spent_ms: int = 0
    end_time: Optional[datetime] = None
    resumed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def elapsed_ms(self, now: Optional[datetime] = None) -> int:
        """Total time spent, including the running stretch if in progress."""
        if self.status == TestStatus.IN_PROGRESS and self.resumed_at is not None:
            return self.time_spent_ms + elapsed_ms(self.resumed_at, now)
        return self.time_spent_ms

    def answers_by_question(self) -> Dict[str, AnswerValue]:
        return {answer.question_id: answer.value for answer in self.answers}


@dataclass(frozen=True)
class TestResult:
    """Scored result as shown to the user."""

    test_type: str
    session_id: str
    scores: Dict[str, Any] = field(default_factory=dict)
    categories: Dict[str, Any] = field(default_factory=dict)
    dimensions: Dict[str, float] = field(default_factory=dict)
    analysis: str = ""
    recommendations: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        return bool(self.data.get("placeholder"))

    @classmethod
    def from_submission(
        cls, test_type: str, session_id: str, projection: Mapping[str, Any]
    ) -> "TestResult":
        """
        Build a result from the submission projection.

        ``session_id`` is the local session id; the server-side id is kept
        in ``data["serverSessionId"]``.
        """
        data = dict(projection.get("data") or {})
        if projection.get("sessionId"):
            data["serverSessionId"] = projection["sessionId"]
        return cls(
            test_type=test_type,
            session_id=session_id,
            scores=dict(projection.get("scores") or {}),
            categories=dict(projection.get("categories") or {}),
            dimensions=dict(projection.get("dimensions") or {}),
            analysis=projection.get("interpretation") or "",
            recommendations=list(projection.get("recommendations") or []),
            timestamp=from_iso(projection.get("completedAt")) or utc_now(),
            data=data,
        )

    @classmethod
    def placeholder(cls, test_type: str, session_id: str, reason: str) -> "TestResult":
        """Result shown when the submission failed or timed out."""
        return cls(
            test_type=test_type,
            session_id=session_id,
            analysis="Your answers were saved, but the result is not available yet.",
            timestamp=utc_now(),
            data={"placeholder": True, "reason": reason},
        )


@dataclass(frozen=True)
class TestTypeState:
    """Isolated per-test-type entry."""

    questions: Tuple[Question, ...] = ()
    session: Optional[TestSession] = None
    progress: float = 0.0
    show_results: bool = False
    current_result: Optional[TestResult] = None
    is_test_started: bool = False
    is_test_completed: bool = False

    @property
    def answers(self) -> Tuple[TestAnswer, ...]:
        return self.session.answers if self.session else ()

    @property
    def current_question_index(self) -> int:
        return self.session.current_question_index if self.session else 0


@dataclass(frozen=True)
class MachineState:
    """Whole machine state: the selected test type plus one entry per test type."""

    current_test_type: Optional[str] = None
    test_states: Mapping[str, TestTypeState] = field(default_factory=dict)

    @property
    def current(self) -> Optional[TestTypeState]:
        if self.current_test_type is None:
            return None
        return self.test_states.get(self.current_test_type)

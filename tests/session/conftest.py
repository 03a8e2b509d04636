"""
Fixtures for session machine tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from assessments.schemas.questions import ScaleQuestion
from assessments.session import InMemoryProgressStore, TestSessionMachine


class FakeClock:
    """Manually advanced clock."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSubmissionClient:
    """
    Records submissions and returns a canned projection.

    Set ``error`` to make ``submit`` raise, or ``gate`` (an asyncio.Event)
    to hold the call until the test releases it.
    """

    def __init__(self, projection=None):
        self.projection = projection or {
            "sessionId": "server-1",
            "testType": "phq9",
            "scores": {"total_score": 3},
            "categories": {"severity": "minimal"},
            "dimensions": {},
            "interpretation": "Minimal or no depressive symptoms.",
            "recommendations": ["Keep it up."],
            "data": {"total_score": 3},
            "completedAt": "2024-01-01T12:05:00Z",
        }
        self.calls = []
        self.error = None
        self.gate = None

    async def submit(self, test_type, answers, *, session_id, user_info=None, duration_ms=None):
        self.calls.append(
            {
                "test_type": test_type,
                "answers": list(answers),
                "session_id": session_id,
                "user_info": user_info,
                "duration_ms": duration_ms,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.projection


def make_questions(prefix: str, count: int, low: int = 0, high: int = 3):
    return [
        ScaleQuestion(id=f"{prefix}{n}", text=f"Question {n}", min_value=low, max_value=high, step=1)
        for n in range(1, count + 1)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def submission_client():
    return FakeSubmissionClient()


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def machine(submission_client, progress_store, clock):
    """Machine with immediate (undebounced) snapshot writes."""
    return TestSessionMachine(
        submission_client=submission_client,
        progress_store=progress_store,
        debounce_seconds=0,
        clock=clock,
    )


@pytest.fixture
def phq9_questions():
    return make_questions("phq9_", 9)


@pytest.fixture
def holland_questions():
    return make_questions("holland_", 4, low=1, high=5)


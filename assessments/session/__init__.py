"""
Client-side session lifecycle: per-test-type state machine, answer
validation, progress snapshots and submission transports.
"""
from assessments.session.machine import TestSessionMachine
from assessments.session.models import (
    MachineState,
    TestAnswer,
    TestResult,
    TestSession,
    TestTypeState,
)
from assessments.session.progress import (
    DebouncedProgressWriter,
    InMemoryProgressStore,
    JsonFileProgressStore,
    ProgressSnapshot,
    ProgressStore,
    progress_key,
)
from assessments.session.transport import (
    HttpSubmissionClient,
    LocalSubmissionClient,
    SubmissionClient,
)
from assessments.session.validation import validate_answer

__all__ = [
    "DebouncedProgressWriter",
    "HttpSubmissionClient",
    "InMemoryProgressStore",
    "JsonFileProgressStore",
    "LocalSubmissionClient",
    "MachineState",
    "ProgressSnapshot",
    "ProgressStore",
    "SubmissionClient",
    "TestAnswer",
    "TestResult",
    "TestSession",
    "TestSessionMachine",
    "TestTypeState",
    "progress_key",
    "validate_answer",
]

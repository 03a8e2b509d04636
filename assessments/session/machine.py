"""
Client-side test session state machine.

One ``TestSessionMachine`` serves every test type. State is keyed by test
type: each type owns an isolated ``TestTypeState`` entry inside an immutable
``MachineState``, and every mutation replaces the whole state object.
Starting, answering or resetting one test type never changes another
type's entry.

Lifecycle per session::

    not_started -> in_progress <-> paused -> completed
    in_progress | paused -> abandoned  (reset_test)

``completed`` and ``abandoned`` are terminal for a session id.

The machine runs on a single asyncio loop and takes no locks. ``end_test``
awaits the submission client; if the test type is reset (or restarted)
while that call is in flight, the late result is not written into the
newer session.
"""
import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from assessments.core.config import settings
from assessments.core.datetime_utils import utc_now
from assessments.core.exceptions import (
    InvalidSessionStateError,
    NoQuestionsAvailable,
    SubmissionFailedError,
    ValidationError,
)
from assessments.schemas.questions import Question
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
    ProgressSnapshot,
    ProgressStore,
)
from assessments.session.transport import SubmissionClient
from assessments.session.validation import AnswerValue, validate_answer
from libs.domain_types import TestStatus

logger = logging.getLogger(__name__)

StateListener = Callable[[MachineState], None]


def _progress(index: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return (index + 1) / total * 100


def _stored_value(value: AnswerValue) -> AnswerValue:
    # Keep a private copy of list answers
    return list(value) if isinstance(value, (list, tuple)) else value


class TestSessionMachine:
    """
    Session/answer state machine for all test types.

    Args:
        submission_client: Used by ``end_test``; without one, results are
            placeholders
        progress_store: Snapshot store (defaults to in-memory)
        catalog: Question catalog for ``start_test_from_catalog`` and
            ``load_progress``
        debounce_seconds: Snapshot write debounce (defaults to
            ``PROGRESS_SAVE_DEBOUNCE_SECONDS``)
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        submission_client: Optional[SubmissionClient] = None,
        progress_store: Optional[ProgressStore] = None,
        catalog: Optional[Any] = None,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.submission_client = submission_client
        self.progress_store = progress_store or InMemoryProgressStore()
        self.catalog = catalog
        self._clock = clock
        self._writer = DebouncedProgressWriter(
            self.progress_store,
            settings.PROGRESS_SAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds,
        )
        self._state = MachineState()
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> MachineState:
        return self._state

    @property
    def current_test_type(self) -> Optional[str]:
        return self._state.current_test_type

    @property
    def current_session(self) -> Optional[TestSession]:
        entry = self._state.current
        return entry.session if entry else None

    @property
    def current_question(self) -> Optional[Question]:
        entry = self._state.current
        if entry is None or entry.session is None or not entry.questions:
            return None
        index = entry.session.current_question_index
        if 0 <= index < len(entry.questions):
            return entry.questions[index]
        return None

    def get_state(self, test_type: Optional[str] = None) -> Optional[TestTypeState]:
        """Entry for ``test_type`` (default: the current test type)."""
        key = test_type or self._state.current_test_type
        if key is None:
            return None
        return self._state.test_states.get(key)

    def get_answer(
        self, question_id: str, test_type: Optional[str] = None
    ) -> Optional[TestAnswer]:
        entry = self.get_state(test_type)
        if entry is None:
            return None
        for answer in entry.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: MachineState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _put_entry(
        self, test_type: str, entry: TestTypeState, make_current: bool = True
    ) -> None:
        test_states = dict(self._state.test_states)
        test_states[test_type] = entry
        current = test_type if make_current else self._state.current_test_type
        self._set_state(MachineState(current_test_type=current, test_states=test_states))

    def _require_current(self) -> tuple:
        test_type = self._state.current_test_type
        entry = self._state.current
        if test_type is None or entry is None or entry.session is None:
            raise InvalidSessionStateError("No test has been started.")
        return test_type, entry

    def _snapshot(self, session: TestSession, now: datetime) -> None:
        self._writer.schedule(ProgressSnapshot.from_session(session, now))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_test(self, test_type: str, questions: Sequence[Question]) -> TestSession:
        """
        Start a new session for ``test_type`` and make it current.

        A previous in-memory session for the same test type is discarded;
        its saved snapshot stays loadable.

        Raises:
            NoQuestionsAvailable: If ``questions`` is empty
        """
        if not questions:
            raise NoQuestionsAvailable(test_type)

        previous = self._state.test_states.get(test_type)
        if previous is not None and previous.session is not None:
            self._writer.flush(previous.session.id)

        now = self._clock()
        session = TestSession(
            id=str(uuid.uuid4()),
            test_type=test_type,
            status=TestStatus.IN_PROGRESS,
            start_time=now,
            total_questions=len(questions),
            resumed_at=now,
        )
        self._put_entry(
            test_type,
            TestTypeState(
                questions=tuple(questions),
                session=session,
                progress=0.0,
                is_test_started=True,
            ),
        )
        logger.info(
            f"Started {test_type} session {session.id} with {len(questions)} questions",
            extra={"test_type": test_type, "session_id": session.id},
        )
        return session

    def start_test_from_catalog(self, test_type: str, language: str = "en") -> TestSession:
        """Start a session with the questions from the configured catalog."""
        if self.catalog is None:
            raise InvalidSessionStateError("No question catalog configured.")
        return self.start_test(test_type, self.catalog.get_questions(test_type, language))

    def select_test_type(self, test_type: str) -> TestTypeState:
        """Make an existing in-memory test type current."""
        entry = self._state.test_states.get(test_type)
        if entry is None:
            raise InvalidSessionStateError(f"No state for test type '{test_type}'.")
        self._set_state(replace(self._state, current_test_type=test_type))
        return entry

    def submit_answer(
        self,
        question_id: str,
        value: AnswerValue,
        time_spent_ms: Optional[int] = None,
    ) -> TestSession:
        """
        Record an answer for the current session.

        Any earlier answer to the same question is replaced. A snapshot
        write is scheduled (debounced).

        Raises:
            InvalidSessionStateError: If the current session is not in progress
            ValidationError: If the question is unknown or the value violates
                its format contract
        """
        test_type, entry = self._require_current()
        session = entry.session
        if session.status != TestStatus.IN_PROGRESS:
            raise InvalidSessionStateError(
                f"Cannot answer a session that is {session.status.value}."
            )

        question = next((q for q in entry.questions if q.id == question_id), None)
        if question is None:
            raise ValidationError(
                f"Unknown question '{question_id}'.",
                violations=[{"field": "questionId", "message": "Unknown question"}],
            )
        validate_answer(question, value)

        now = self._clock()
        answer = TestAnswer(
            question_id=question_id,
            value=_stored_value(value),
            timestamp=now,
            time_spent_ms=time_spent_ms,
        )
        answers = tuple(a for a in session.answers if a.question_id != question_id)
        session = replace(session, answers=answers + (answer,))
        self._put_entry(
            test_type,
            replace(
                entry,
                session=session,
                progress=_progress(session.current_question_index, session.total_questions),
            ),
        )
        self._snapshot(session, now)
        return session

    def go_to_question(self, index: int) -> bool:
        """
        Move to ``index``. Returns False (and changes nothing) when no test is
        in progress or the index is outside ``[0, total - 1]``.
        """
        test_type = self._state.current_test_type
        entry = self._state.current
        if test_type is None or entry is None or entry.session is None:
            return False
        session = entry.session
        if session.status != TestStatus.IN_PROGRESS:
            return False
        if not 0 <= index < session.total_questions:
            return False

        session = replace(session, current_question_index=index)
        self._put_entry(
            test_type,
            replace(entry, session=session, progress=_progress(index, session.total_questions)),
        )
        self._snapshot(session, self._clock())
        return True

    def go_to_next_question(self) -> bool:
        session = self.current_session
        if session is None:
            return False
        return self.go_to_question(session.current_question_index + 1)

    def go_to_previous_question(self) -> bool:
        session = self.current_session
        if session is None:
            return False
        return self.go_to_question(session.current_question_index - 1)

    def pause_test(self) -> TestSession:
        """Pause the current session, banking the time spent so far."""
        test_type, entry = self._require_current()
        session = entry.session
        if session.status != TestStatus.IN_PROGRESS:
            raise InvalidSessionStateError(
                f"Cannot pause a session that is {session.status.value}."
            )
        now = self._clock()
        session = replace(
            session,
            status=TestStatus.PAUSED,
            time_spent_ms=session.elapsed_ms(now),
            resumed_at=None,
        )
        self._put_entry(test_type, replace(entry, session=session))
        self._snapshot(session, now)
        return session

    def resume_test(self) -> TestSession:
        """Resume a paused session."""
        test_type, entry = self._require_current()
        session = entry.session
        if session.status != TestStatus.PAUSED:
            raise InvalidSessionStateError(
                f"Cannot resume a session that is {session.status.value}."
            )
        session = replace(session, status=TestStatus.IN_PROGRESS, resumed_at=self._clock())
        self._put_entry(test_type, replace(entry, session=session))
        return session

    async def end_test(
        self,
        user_info: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> TestResult:
        """
        Complete the current session and submit it.

        The session is marked ``completed`` before the submission starts. If
        the submission fails or times out, the result is a placeholder. The
        result is attached (and ``show_results`` set) only for the ended
        test type, and only if that test type still holds this session.

        Raises:
            InvalidSessionStateError: If there is no active session
        """
        test_type, entry = self._require_current()
        session = entry.session
        if not session.is_active:
            raise InvalidSessionStateError(
                f"Cannot end a session that is {session.status.value}."
            )

        now = self._clock()
        session = replace(
            session,
            status=TestStatus.COMPLETED,
            end_time=now,
            time_spent_ms=session.elapsed_ms(now),
            resumed_at=None,
        )
        self._put_entry(
            test_type, replace(entry, session=session, is_test_completed=True, progress=100.0)
        )
        self._snapshot(session, now)
        self._writer.flush(session.id)

        result = await self._submit(session, user_info, timeout)

        latest = self._state.test_states.get(test_type)
        if latest is None or latest.session is None or latest.session.id != session.id:
            logger.info(
                f"Discarding result for {test_type} session {session.id}; it was reset",
                extra={"test_type": test_type, "session_id": session.id},
            )
            return result

        self._put_entry(
            test_type,
            replace(latest, show_results=True, current_result=result),
            make_current=False,
        )
        return result

    async def _submit(
        self,
        session: TestSession,
        user_info: Optional[Dict[str, Any]],
        timeout: Optional[float],
    ) -> TestResult:
        log_extra = {"test_type": session.test_type, "session_id": session.id}
        if self.submission_client is None:
            logger.warning("No submission client configured", extra=log_extra)
            return TestResult.placeholder(session.test_type, session.id, "not_submitted")

        submission = self.submission_client.submit(
            session.test_type,
            session.answers,
            session_id=session.id,
            user_info=user_info,
            duration_ms=session.time_spent_ms,
        )
        try:
            if timeout is not None:
                projection = await asyncio.wait_for(submission, timeout)
            else:
                projection = await submission
        except asyncio.TimeoutError:
            logger.warning(f"Submission timed out after {timeout}s", extra=log_extra)
            return TestResult.placeholder(session.test_type, session.id, "timeout")
        except SubmissionFailedError as e:
            logger.warning(f"Submission failed: {e.message}", extra=log_extra)
            return TestResult.placeholder(session.test_type, session.id, "submission_failed")

        return TestResult.from_submission(session.test_type, session.id, projection)

    def reset_test(self, test_type: Optional[str] = None) -> Optional[TestSession]:
        """
        Clear a test type's entry (default: the current one).

        An active session is marked ``abandoned`` and returned. A pending
        snapshot write for it is dropped; earlier snapshots are kept.
        """
        key = test_type or self._state.current_test_type
        if key is None:
            return None
        entry = self._state.test_states.get(key)

        abandoned = None
        if entry is not None and entry.session is not None:
            self._writer.cancel(entry.session.id)
            if entry.session.is_active:
                now = self._clock()
                abandoned = replace(
                    entry.session,
                    status=TestStatus.ABANDONED,
                    end_time=now,
                    time_spent_ms=entry.session.elapsed_ms(now),
                    resumed_at=None,
                )
                logger.info(
                    f"Abandoned {key} session {abandoned.id}",
                    extra={"test_type": key, "session_id": abandoned.id},
                )

        test_states = {k: v for k, v in self._state.test_states.items() if k != key}
        current = self._state.current_test_type
        self._set_state(
            MachineState(
                current_test_type=None if current == key else current,
                test_states=test_states,
            )
        )
        return abandoned

    # ------------------------------------------------------------------
    # Progress snapshots
    # ------------------------------------------------------------------

    def save_progress(self) -> Optional[ProgressSnapshot]:
        """
        Write the current session's snapshot now.

        Unlike the debounced writes, store errors propagate.
        """
        session = self.current_session
        if session is None:
            return None
        self._writer.cancel(session.id)
        snapshot = ProgressSnapshot.from_session(session, self._clock())
        self.progress_store.save(snapshot)
        return snapshot

    def flush_progress(self) -> None:
        """Write every pending debounced snapshot immediately."""
        self._writer.flush()

    def load_progress(
        self, session_id: str, questions: Optional[Sequence[Question]] = None
    ) -> Optional[TestSession]:
        """
        Restore a saved session and make its test type current.

        Questions come from ``questions``, else the in-memory entry for the
        same test type, else the catalog.

        Returns:
            The restored session, or None if no snapshot exists
        """
        snapshot = self.progress_store.load(session_id)
        if snapshot is None:
            return None

        session = snapshot.to_session()
        if session.status == TestStatus.IN_PROGRESS:
            session = replace(session, resumed_at=self._clock())

        if questions is None:
            existing = self._state.test_states.get(snapshot.test_type)
            if existing is not None and existing.questions:
                questions = existing.questions
            elif self.catalog is not None:
                questions = self.catalog.get_questions(snapshot.test_type)
            else:
                questions = ()

        completed = snapshot.is_completed
        if completed:
            progress = 100.0
        elif session.answers:
            progress = _progress(session.current_question_index, session.total_questions)
        else:
            progress = 0.0
        self._put_entry(
            snapshot.test_type,
            TestTypeState(
                questions=tuple(questions),
                session=session,
                progress=progress,
                is_test_started=True,
                is_test_completed=completed,
            ),
        )
        logger.info(
            f"Restored {snapshot.test_type} session {session_id}",
            extra={"test_type": snapshot.test_type, "session_id": session_id},
        )
        return session

    def list_saved_sessions(self) -> List[str]:
        return self.progress_store.list_session_ids()

    def clear_progress(self, session_id: str) -> bool:
        self._writer.cancel(session_id)
        return self.progress_store.delete(session_id)

"""
Tests for the per-test-type session state machine.
"""
import asyncio

import pytest

from assessments.core.exceptions import (
    InvalidSessionStateError,
    NoQuestionsAvailable,
    SubmissionFailedError,
    ValidationError,
)
from assessments.session import TestSessionMachine
from libs.domain_types import TestStatus


def answer_all(machine, questions, value=1):
    for index, question in enumerate(questions):
        machine.go_to_question(index)
        machine.submit_answer(question.id, value)


class TestStartTest:
    """Tests for starting sessions."""

    def test_start_creates_in_progress_session(self, machine, phq9_questions, clock):
        session = machine.start_test("phq9", phq9_questions)

        assert session.status == TestStatus.IN_PROGRESS
        assert session.start_time == clock.now
        assert session.total_questions == 9
        assert machine.current_test_type == "phq9"
        assert machine.current_question.id == "phq9_1"

        entry = machine.get_state("phq9")
        assert entry.is_test_started is True
        assert entry.progress == 0.0
        assert entry.answers == ()

    def test_empty_question_list_rejected(self, machine):
        with pytest.raises(NoQuestionsAvailable):
            machine.start_test("phq9", [])

        assert machine.get_state("phq9") is None

    def test_restart_discards_previous_session(self, machine, phq9_questions):
        first = machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 2)

        second = machine.start_test("phq9", phq9_questions)

        assert second.id != first.id
        assert machine.get_state("phq9").answers == ()

    def test_select_unknown_test_type(self, machine):
        with pytest.raises(InvalidSessionStateError):
            machine.select_test_type("disc")


class TestIsolation:
    """Operations on one test type never change another test type's entry."""

    def test_other_entry_untouched(self, machine, phq9_questions, holland_questions):
        machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 2)
        phq9_entry = machine.get_state("phq9")

        machine.start_test("holland", holland_questions)
        machine.submit_answer("holland_1", 5)
        machine.go_to_next_question()
        machine.pause_test()

        assert machine.get_state("phq9") is phq9_entry
        assert machine.current_test_type == "holland"

    def test_reset_only_clears_target(self, machine, phq9_questions, holland_questions):
        machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 2)
        machine.start_test("holland", holland_questions)
        phq9_entry = machine.get_state("phq9")

        machine.reset_test("holland")

        assert machine.get_state("holland") is None
        assert machine.get_state("phq9") is phq9_entry
        assert machine.current_test_type is None

    def test_select_switches_current(self, machine, phq9_questions, holland_questions):
        machine.start_test("phq9", phq9_questions)
        machine.start_test("holland", holland_questions)

        machine.select_test_type("phq9")
        machine.submit_answer("phq9_2", 1)

        assert machine.get_answer("phq9_2", "phq9").value == 1
        assert machine.get_state("holland").answers == ()


class TestSubmitAnswer:
    """Tests for answering questions."""

    def test_latest_answer_wins(self, machine, phq9_questions, clock):
        machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 1)
        clock.advance(seconds=5)
        machine.submit_answer("phq9_1", 3, time_spent_ms=5000)

        answers = machine.get_state().answers
        assert len(answers) == 1
        assert answers[0].value == 3
        assert answers[0].time_spent_ms == 5000
        assert answers[0].timestamp == clock.now

    def test_progress_follows_position(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)
        machine.go_to_question(2)

        machine.submit_answer("phq9_3", 1)

        assert machine.get_state().progress == pytest.approx(3 / 9 * 100)

    def test_invalid_value_leaves_state_unchanged(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)
        before = machine.state

        with pytest.raises(ValidationError):
            machine.submit_answer("phq9_1", 7)

        assert machine.state is before

    def test_unknown_question(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)

        with pytest.raises(ValidationError) as exc_info:
            machine.submit_answer("phq9_99", 1)

        assert exc_info.value.violations[0]["field"] == "questionId"

    def test_requires_started_test(self, machine):
        with pytest.raises(InvalidSessionStateError):
            machine.submit_answer("phq9_1", 1)

    def test_paused_session_rejects_answers(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)
        machine.pause_test()

        with pytest.raises(InvalidSessionStateError):
            machine.submit_answer("phq9_1", 1)

    def test_list_values_are_copied(self, machine):
        from assessments.schemas.questions import MultipleChoiceQuestion, QuestionOption

        question = MultipleChoiceQuestion(
            id="mc_1",
            text="Pick some",
            options=[QuestionOption(id="a", text="A"), QuestionOption(id="b", text="B")],
        )
        machine.start_test("survey", [question])
        value = ["a", "b"]

        machine.submit_answer("mc_1", value)
        value.append("c")

        assert machine.get_answer("mc_1").value == ["a", "b"]


class TestNavigation:
    """Tests for moving between questions."""

    def test_bounds(self, machine, holland_questions):
        machine.start_test("holland", holland_questions)

        assert machine.go_to_previous_question() is False
        assert machine.go_to_question(4) is False
        assert machine.go_to_question(-1) is False
        assert machine.current_session.current_question_index == 0

        assert machine.go_to_question(3) is True
        assert machine.go_to_next_question() is False
        assert machine.current_question.id == "holland_4"
        assert machine.get_state().progress == 100.0

    def test_next_and_previous(self, machine, holland_questions):
        machine.start_test("holland", holland_questions)

        assert machine.go_to_next_question() is True
        assert machine.go_to_next_question() is True
        assert machine.go_to_previous_question() is True

        assert machine.current_session.current_question_index == 1
        assert machine.get_state().progress == 50.0

    def test_navigation_without_session(self, machine):
        assert machine.go_to_next_question() is False
        assert machine.go_to_question(0) is False

    def test_navigation_while_paused(self, machine, holland_questions):
        machine.start_test("holland", holland_questions)
        machine.pause_test()

        assert machine.go_to_question(1) is False


class TestPauseResume:
    """Tests for time accounting across pauses."""

    @pytest.mark.asyncio
    async def test_paused_time_not_counted(self, machine, phq9_questions, clock, submission_client):
        machine.start_test("phq9", phq9_questions)
        clock.advance(seconds=30)
        paused = machine.pause_test()
        assert paused.status == TestStatus.PAUSED
        assert paused.time_spent_ms == 30000

        clock.advance(seconds=60)
        resumed = machine.resume_test()
        assert resumed.status == TestStatus.IN_PROGRESS
        clock.advance(seconds=10)

        await machine.end_test()

        assert machine.current_session.time_spent_ms == 40000
        assert submission_client.calls[0]["duration_ms"] == 40000

    def test_resume_requires_paused(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)

        with pytest.raises(InvalidSessionStateError):
            machine.resume_test()


class TestEndTest:
    """Tests for completing and submitting a session."""

    @pytest.mark.asyncio
    async def test_successful_submission(self, machine, phq9_questions, submission_client):
        session = machine.start_test("phq9", phq9_questions)
        answer_all(machine, phq9_questions[:3])

        result = await machine.end_test(user_info={"age": 30})

        assert result.is_placeholder is False
        assert result.session_id == session.id
        assert result.scores == {"total_score": 3}
        assert result.analysis == "Minimal or no depressive symptoms."
        assert result.data["serverSessionId"] == "server-1"

        entry = machine.get_state("phq9")
        assert entry.session.status == TestStatus.COMPLETED
        assert entry.is_test_completed is True
        assert entry.show_results is True
        assert entry.current_result is result
        assert entry.progress == 100.0

        call = submission_client.calls[0]
        assert call["session_id"] == session.id
        assert call["user_info"] == {"age": 30}
        assert [a.question_id for a in call["answers"]] == ["phq9_1", "phq9_2", "phq9_3"]

    @pytest.mark.asyncio
    async def test_submission_failure_gives_placeholder(
        self, machine, phq9_questions, submission_client
    ):
        submission_client.error = SubmissionFailedError("boom", status_code=500)
        machine.start_test("phq9", phq9_questions)

        result = await machine.end_test()

        assert result.is_placeholder is True
        assert result.data["reason"] == "submission_failed"
        assert machine.get_state("phq9").show_results is True
        assert machine.current_session.status == TestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_timeout_gives_placeholder(self, machine, phq9_questions, submission_client):
        submission_client.gate = asyncio.Event()
        machine.start_test("phq9", phq9_questions)

        result = await machine.end_test(timeout=0.01)

        assert result.is_placeholder is True
        assert result.data["reason"] == "timeout"

    @pytest.mark.asyncio
    async def test_without_client(self, progress_store, phq9_questions):
        machine = TestSessionMachine(progress_store=progress_store, debounce_seconds=0)
        machine.start_test("phq9", phq9_questions)

        result = await machine.end_test()

        assert result.data["reason"] == "not_submitted"

    @pytest.mark.asyncio
    async def test_completed_session_cannot_end_twice(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)
        await machine.end_test()

        with pytest.raises(InvalidSessionStateError):
            await machine.end_test()

    @pytest.mark.asyncio
    async def test_late_result_dropped_after_reset(
        self, machine, phq9_questions, submission_client
    ):
        submission_client.gate = asyncio.Event()
        machine.start_test("phq9", phq9_questions)
        pending = asyncio.create_task(machine.end_test())
        await asyncio.sleep(0)

        machine.reset_test("phq9")
        fresh = machine.start_test("phq9", phq9_questions)
        submission_client.gate.set()
        await pending

        entry = machine.get_state("phq9")
        assert entry.session.id == fresh.id
        assert entry.session.status == TestStatus.IN_PROGRESS
        assert entry.show_results is False
        assert entry.current_result is None

    @pytest.mark.asyncio
    async def test_result_attached_to_ended_type_only(
        self, machine, phq9_questions, holland_questions, submission_client
    ):
        submission_client.gate = asyncio.Event()
        machine.start_test("phq9", phq9_questions)
        pending = asyncio.create_task(machine.end_test())
        await asyncio.sleep(0)

        machine.start_test("holland", holland_questions)
        submission_client.gate.set()
        await pending

        assert machine.current_test_type == "holland"
        assert machine.get_state("phq9").show_results is True
        assert machine.get_state("holland").show_results is False
        assert machine.get_state("holland").current_result is None


class TestResetTest:
    """Tests for abandoning sessions."""

    def test_active_session_is_abandoned(self, machine, phq9_questions, clock):
        started = machine.start_test("phq9", phq9_questions)
        clock.advance(seconds=12)

        abandoned = machine.reset_test()

        assert abandoned.id == started.id
        assert abandoned.status == TestStatus.ABANDONED
        assert abandoned.end_time == clock.now
        assert abandoned.time_spent_ms == 12000
        assert machine.get_state("phq9") is None

    @pytest.mark.asyncio
    async def test_completed_session_is_not_abandoned(self, machine, phq9_questions):
        machine.start_test("phq9", phq9_questions)
        await machine.end_test()

        assert machine.reset_test("phq9") is None
        assert machine.get_state("phq9") is None

    def test_reset_without_state(self, machine):
        assert machine.reset_test() is None


class TestListeners:
    """Tests for state change notifications."""

    def test_listener_receives_each_state(self, machine, phq9_questions):
        seen = []
        unsubscribe = machine.add_listener(seen.append)

        machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 1)
        unsubscribe()
        machine.submit_answer("phq9_2", 1)

        assert len(seen) == 2
        assert seen[-1].current.answers[0].question_id == "phq9_1"


class TestProgressPersistence:
    """Tests for snapshot save and restore through the machine."""

    def test_answers_are_snapshotted(self, machine, phq9_questions, progress_store):
        session = machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 2)

        snapshot = progress_store.load(session.id)

        assert snapshot.test_type == "phq9"
        assert [a.value for a in snapshot.answers] == [2]
        assert snapshot.is_completed is False
        assert machine.list_saved_sessions() == [session.id]

    def test_load_progress_restores_session(self, machine, phq9_questions, progress_store, clock):
        session = machine.start_test("phq9", phq9_questions)
        machine.go_to_question(1)
        machine.submit_answer("phq9_2", 3)

        restored_machine = TestSessionMachine(
            progress_store=progress_store, debounce_seconds=0, clock=clock
        )
        restored = restored_machine.load_progress(session.id, phq9_questions)

        assert restored.id == session.id
        assert restored.status == TestStatus.IN_PROGRESS
        assert restored.current_question_index == 1
        assert restored.answers_by_question() == {"phq9_2": 3}
        assert restored_machine.current_test_type == "phq9"
        assert restored_machine.get_state().progress == pytest.approx(2 / 9 * 100)

    @pytest.mark.asyncio
    async def test_debounced_snapshots_kept_per_test_type(
        self, phq9_questions, holland_questions, progress_store, clock
    ):
        """Answering another test type inside the debounce window keeps both snapshots."""
        machine = TestSessionMachine(
            progress_store=progress_store, debounce_seconds=0.05, clock=clock
        )
        phq9 = machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 2)
        holland = machine.start_test("holland", holland_questions)
        machine.submit_answer("holland_1", 4)

        await asyncio.sleep(0.2)

        assert sorted(machine.list_saved_sessions()) == sorted([phq9.id, holland.id])
        assert [a.value for a in progress_store.load(phq9.id).answers] == [2]
        assert [a.value for a in progress_store.load(holland.id).answers] == [4]

    def test_load_progress_uses_catalog(self, progress_store, clock):
        from assessments.core.test_types import StaticQuestionCatalog

        catalog = StaticQuestionCatalog()
        machine = TestSessionMachine(
            progress_store=progress_store, catalog=catalog, debounce_seconds=0, clock=clock
        )
        session = machine.start_test_from_catalog("phq9")
        machine.save_progress()
        machine.reset_test()

        restored = machine.load_progress(session.id)

        assert restored.id == session.id
        assert len(machine.get_state("phq9").questions) == 9
        assert machine.get_state("phq9").progress == 0.0

    @pytest.mark.asyncio
    async def test_completed_snapshot_restores_completed(
        self, machine, phq9_questions, progress_store
    ):
        session = machine.start_test("phq9", phq9_questions)
        await machine.end_test()
        machine.reset_test()

        restored = machine.load_progress(session.id, phq9_questions)

        assert restored.status == TestStatus.COMPLETED
        assert machine.get_state("phq9").is_test_completed is True
        assert machine.get_state("phq9").progress == 100.0

    def test_missing_snapshot(self, machine):
        assert machine.load_progress("nope") is None

    def test_clear_progress(self, machine, phq9_questions, progress_store):
        session = machine.start_test("phq9", phq9_questions)
        machine.submit_answer("phq9_1", 1)

        assert machine.clear_progress(session.id) is True
        assert machine.clear_progress(session.id) is False
        assert progress_store.load(session.id) is None

    def test_save_progress_errors_propagate(self, phq9_questions, clock):
        from assessments.session import InMemoryProgressStore

        class BrokenStore(InMemoryProgressStore):
            def save(self, snapshot):
                raise OSError("disk full")

        machine = TestSessionMachine(progress_store=BrokenStore(), debounce_seconds=0, clock=clock)
        machine.start_test("phq9", phq9_questions)
        # Debounced writes swallow the failure
        machine.submit_answer("phq9_1", 1)

        with pytest.raises(OSError):
            machine.save_progress()

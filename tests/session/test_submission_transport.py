"""
Tests for the HTTP and in-process submission clients.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from assessments.core.exceptions import SubmissionFailedError
from assessments.session import (
    HttpSubmissionClient,
    LocalSubmissionClient,
    TestAnswer,
    TestSessionMachine,
)
from assessments.session.transport import build_submission_payload

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def phq9_test_answers(values=(1, 1, 1, 1, 1, 1, 1, 1, 0)):
    return [
        TestAnswer(question_id=f"phq9_{i + 1}", value=v, timestamp=NOW)
        for i, v in enumerate(values)
    ]


def mock_client(handler):
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://assessments.test"
    )


class TestBuildSubmissionPayload:
    """Tests for the submission request body."""

    def test_payload_shape(self):
        payload = build_submission_payload(
            "phq9",
            phq9_test_answers()[:1],
            session_id="s-1",
            user_info={"age": 40},
            duration_ms=1200,
        )

        assert payload == {
            "testType": "phq9",
            "answers": [
                {"questionId": "phq9_1", "value": 1, "timestamp": "2024-01-01T12:00:00+00:00"}
            ],
            "sessionId": "s-1",
            "userInfo": {"age": 40},
            "durationMs": 1200,
        }

    def test_optional_fields_omitted(self):
        payload = build_submission_payload("phq9", [], session_id="s-1")

        assert "userInfo" not in payload
        assert "durationMs" not in payload


class TestHttpSubmissionClient:
    """Tests for submission over HTTP."""

    @pytest.mark.asyncio
    async def test_returns_result_data(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201, json={"success": True, "data": {"sessionId": "server-1", "scores": {}}}
            )

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            data = await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert data["sessionId"] == "server-1"
        assert seen["url"] == "https://assessments.test/v1/tests/phq9/submit"
        assert seen["body"]["sessionId"] == "s-1"
        assert len(seen["body"]["answers"]) == 9

    @pytest.mark.asyncio
    async def test_error_envelope_raises(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"success": False, "error": "Invalid answers.", "code": "VALIDATION_ERROR"},
            )

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            with pytest.raises(SubmissionFailedError) as exc_info:
                await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid answers."

    @pytest.mark.asyncio
    async def test_non_json_response_raises(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            with pytest.raises(SubmissionFailedError) as exc_info:
                await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            with pytest.raises(SubmissionFailedError) as exc_info:
                await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            with pytest.raises(SubmissionFailedError) as exc_info:
                await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert "Timeout" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body", [["not", "an", "envelope"], "ok", {"success": True}, {"success": True, "data": None}]
    )
    async def test_malformed_success_body_raises(self, body):
        def handler(request):
            return httpx.Response(200, json=body)

        async with mock_client(handler) as http:
            client = HttpSubmissionClient(client=http)
            with pytest.raises(SubmissionFailedError) as exc_info:
                await client.submit("phq9", phq9_test_answers(), session_id="s-1")

        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_malformed_body_gives_placeholder_result(self, phq9_questions):
        def handler(request):
            return httpx.Response(201, json=[])

        async with mock_client(handler) as http:
            machine = TestSessionMachine(
                submission_client=HttpSubmissionClient(client=http), debounce_seconds=0
            )
            machine.start_test("phq9", phq9_questions)
            machine.submit_answer("phq9_1", 1)

            result = await machine.end_test()

        assert result.is_placeholder is True
        assert machine.get_state("phq9").current_result is result


class TestLocalSubmissionClient:
    """Tests for in-process submission."""

    @pytest.mark.asyncio
    async def test_scores_and_caches(self, async_session_factory, result_cache):
        client = LocalSubmissionClient(async_session_factory, result_cache)

        data = await client.submit("phq9", phq9_test_answers(), session_id="local-1")

        assert data["scores"]["total_score"] == 8
        assert data["categories"]["severity"] == "mild"
        assert result_cache.get(data["sessionId"]) == data

    @pytest.mark.asyncio
    async def test_validation_failure_raises(self, async_session_factory, result_cache):
        client = LocalSubmissionClient(async_session_factory, result_cache)

        with pytest.raises(SubmissionFailedError) as exc_info:
            await client.submit(
                "phq9", phq9_test_answers(values=(9,)), session_id="local-2"
            )

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_machine_end_to_end(self, async_session_factory, result_cache):
        """A PHQ-9 session answered in the machine is scored by the pipeline."""
        from assessments.core.test_types import StaticQuestionCatalog

        machine = TestSessionMachine(
            submission_client=LocalSubmissionClient(async_session_factory, result_cache),
            catalog=StaticQuestionCatalog(),
            debounce_seconds=0,
        )
        session = machine.start_test_from_catalog("phq9")
        for index, value in enumerate([1, 1, 1, 1, 1, 1, 1, 1, 0]):
            machine.go_to_question(index)
            machine.submit_answer(f"phq9_{index + 1}", value)

        result = await machine.end_test()

        assert result.is_placeholder is False
        assert result.session_id == session.id
        assert result.scores["total_score"] == 8
        assert result.categories["severity"] == "mild"
        assert result.recommendations
        assert machine.get_state("phq9").current_result is result

"""Tests for the Exam service FastAPI app."""

import json
import logging

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from conftest import gemini_ok, make_part, make_question
from packages.common.logging import JSONFormatter, set_request_id
from packages.common.tracing import xapi_event
from packages.schemas.exam import Exam
from services.exam.app import app
from services.exam.explainer import ExplanationService, GeminiClient
from services.exam.repo import InMemoryContentRepository


@pytest.fixture
def repo(exam, two_question_exam, table) -> InMemoryContentRepository:
    return InMemoryContentRepository(table, [exam, two_question_exam])


@pytest.fixture
def upstream(recorder):
    """A Gemini stand-in that always answers with a valid explanation."""
    return recorder(lambda req: httpx.Response(200, text=gemini_ok("Past tense.", "<b>went</b>")))


@pytest.fixture
def wired(repo, upstream):
    client = GeminiClient("k", "https://ai.test/v1beta", "m", max_retries=0, backoff=0, transport=upstream)
    app.state.repo = repo
    app.state.explainer = ExplanationService(client)
    return app


def _client(target) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=target), base_url="http://test")


@pytest.mark.asyncio
async def test_openapi_ok() -> None:
    """OpenAPI schema endpoint should respond with HTTP 200."""
    async with _client(app) as ac:
        r = await ac.get("/openapi.json")
    if r.status_code != 200:
        pytest.fail(f"Expected 200, got {r.status_code}")


@pytest.mark.asyncio
async def test_submit_scores_and_stores_attempt(wired) -> None:
    body = {"test_id": 2, "selections": [{"question_id": 11, "selected_option": "A"}]}
    async with _client(wired) as ac:
        r = await ac.post("/exam/submit", json=body, headers={"X-Request-ID": "req-1"})
        if r.status_code != 200:
            pytest.fail(f"Expected 200, got {r.status_code}: {r.text}")
        data = r.json()
        assert r.headers["X-Request-ID"] == "req-1"
        assert data["correct_count"] == 1
        assert [q["question_id"] for q in data["questions"]] == [11, 12]
        assert data["questions"][1]["selected_option"] == ""

        again = await ac.get(f"/exam/attempts/{data['attempt_id']}")
    assert again.status_code == 200
    assert again.json()["total_score"] == data["total_score"]


@pytest.mark.asyncio
async def test_submit_unknown_test_is_404(wired) -> None:
    async with _client(wired) as ac:
        r = await ac.post("/exam/submit", json={"test_id": 404, "selections": []})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_submit_foreign_question_is_400(wired) -> None:
    body = {"test_id": 2, "selections": [{"question_id": 1, "selected_option": "A"}]}
    async with _client(wired) as ac:
        r = await ac.post("/exam/submit", json=body)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_submit_duplicate_question_is_422(wired) -> None:
    sel = {"question_id": 11, "selected_option": "A"}
    async with _client(wired) as ac:
        r = await ac.post("/exam/submit", json={"test_id": 2, "selections": [sel, sel]})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_unknown_attempt_is_404(wired) -> None:
    async with _client(wired) as ac:
        r = await ac.get("/exam/attempts/12345")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_score_endpoint(wired) -> None:
    async with _client(wired) as ac:
        ok = await ac.post("/exam/score", json={"listening_correct": 10, "reading_correct": 20})
        bad = await ac.post("/exam/score", json={"listening_correct": 101, "reading_correct": 0})
    assert ok.status_code == 200
    assert ok.json()["total_score"] == 110
    assert bad.status_code in (400, 422)


@pytest.mark.asyncio
async def test_explanation_is_generated_once_then_cached(wired, upstream) -> None:
    async with _client(wired) as ac:
        first = await ac.post("/exam/tests/1/questions/5/explanation")
        second = await ac.post("/exam/tests/1/questions/5/explanation")
    assert first.status_code == 200
    body = first.json()
    assert body["cached"] is False
    assert body["result"]["status"] == "ok"
    assert body["result"]["explanation"] == {"short": "Past tense.", "full": "<b>went</b>"}
    assert second.json()["cached"] is True
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_upstream_failure_is_a_failed_result(repo, recorder) -> None:
    transport = recorder(lambda req: httpx.Response(500, text="boom"))
    app.state.repo = repo
    app.state.explainer = ExplanationService(GeminiClient("k", "https://ai.test", "m", max_retries=0, transport=transport))
    async with _client(app) as ac:
        r = await ac.post("/exam/tests/1/questions/5/explanation")
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["status"] == "failed"
    assert result["reason"] == "upstream_status"
    assert result["explanation"]["short"] == "Error: 500"
    assert repo.get_explanation(1, 5) is None


@pytest.mark.asyncio
async def test_explanation_for_unknown_question_is_404(wired) -> None:
    async with _client(wired) as ac:
        r = await ac.post("/exam/tests/1/questions/999/explanation")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_attempt_shows_explanations_generated_later(wired) -> None:
    body = {"test_id": 1, "selections": [{"question_id": 5, "selected_option": "B"}]}
    async with _client(wired) as ac:
        attempt = (await ac.post("/exam/submit", json=body)).json()
        await ac.post("/exam/tests/1/questions/5/explanation")
        r = await ac.get(f"/exam/attempts/{attempt['attempt_id']}")
    q5 = next(q for q in r.json()["questions"] if q["question_id"] == 5)
    assert q5["short_explanation"] == "Past tense."


@pytest.mark.asyncio
async def test_batch_explanations(wired, upstream) -> None:
    async with _client(wired) as ac:
        r = await ac.post("/exam/tests/2/explanations")
        again = await ac.post("/exam/tests/2/explanations")
    report = r.json()
    assert (report["requested"], report["updated"], report["failed"]) == (2, 2, 0)
    assert [x["question_id"] for x in report["results"]] == [11, 12]
    assert again.json()["requested"] == 0
    assert len(upstream.calls) == 2


def test_xapi_event_carries_request_id() -> None:
    set_request_id("req-9")
    try:
        event = xapi_event("attempt:1", "completed", "test:2", total_score=110)
    finally:
        set_request_id(None)
    assert event["request_id"] == "req-9"
    assert event["extras"] == {"total_score": 110}


def test_json_log_lines_carry_service_and_request_id() -> None:
    record = logging.LogRecord("services.exam.scorer", logging.INFO, __file__, 1, "scored %d", (3,), None)
    set_request_id("req-7")
    try:
        line = json.loads(JSONFormatter("toeic-exam").format(record))
    finally:
        set_request_id(None)
    assert line["service"] == "toeic-exam"
    assert line["request_id"] == "req-7"
    assert line["msg"] == "scored 3"


@pytest.mark.asyncio
async def test_explanations_are_kept_per_test(table, upstream) -> None:
    """Question id 5 exists in two tests; each test gets its own generated explanation."""
    first = Exam(id=1, title="one", parts=(make_part(5, make_question(5, 101, "B", "She _____ there.")),))
    second = Exam(id=3, title="two", parts=(make_part(7, make_question(5, 147, "D", "Why was the e-mail sent?")),))
    app.state.repo = InMemoryContentRepository(table, [first, second])
    app.state.explainer = ExplanationService(GeminiClient("k", "https://ai.test", "m", max_retries=0, transport=upstream))
    async with _client(app) as ac:
        await ac.post("/exam/tests/1/questions/5/explanation")
        attempt = (await ac.post("/exam/submit", json={"test_id": 3, "selections": []})).json()
        stored = (await ac.get(f"/exam/attempts/{attempt['attempt_id']}")).json()
        other = await ac.post("/exam/tests/3/questions/5/explanation")
        batch = await ac.post("/exam/tests/3/explanations")
    assert other.json()["cached"] is False
    assert batch.json()["requested"] == 0
    assert len(upstream.calls) == 2
    sent = json.loads(upstream.calls[1].content)["contents"][0]["parts"][0]["text"]
    assert "Part 7 (Reading Comprehension)" in sent
    assert stored["questions"][0]["short_explanation"] is None


@pytest.mark.asyncio
async def test_submit_empty_label_is_422(wired) -> None:
    body = {"test_id": 2, "selections": [{"question_id": 11, "selected_option": ""}]}
    async with _client(wired) as ac:
        r = await ac.post("/exam/submit", json=body)
    assert r.status_code == 422

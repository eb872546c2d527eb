"""Tests for services.planner_client against a scripted planner (httpx.MockTransport)."""
import pytest

from survey_studio.normalize.errors import (
    MalformedResponseError,
    PlanAttemptsExhaustedError,
    PlannerAPIError,
    PlanShapeError,
    PromptValidationError,
    RulesGenerationValidationError,
)
from survey_studio.services.planner_client import (
    FAST_PLAN_PATH,
    PLAN_PATH,
    candidate_urls,
    toggle_anomaly_prefix,
)

RENDERED = {
    "status": {"code": "success", "message": "ok"},
    "data": {
        "thread_id": "t1",
        "rendered_pages": [{"name": "Intro", "questions": [
            {"spec_id": "q1", "question_text": "Name?", "question_type": "short_text"},
        ]}],
        "saved": True,
    },
}

PLAN_ENVELOPE = {
    "meta": {"request_id": "r1"},
    "data": {
        "thread_id": "t1",
        "approval_status": "pending",
        "attempt": 1,
        "version": 2,
        "plan": {"title": "Feedback", "language": "en", "pages": [
            {"name": "Visit", "section_brief": {"question_count": 2}},
        ]},
    },
}


# ── URL candidates ──────────────────────────────────────────────────────

def test_candidate_urls_cover_prefix_and_slash():
    assert candidate_urls("http://h:8000", "/api/x") == [
        "http://h:8000/api/x",
        "http://h:8000/api/x/",
        "http://h:8000/anomaly/api/x",
        "http://h:8000/anomaly/api/x/",
    ]


def test_anomaly_prefix_toggles_both_ways():
    assert toggle_anomaly_prefix("http://h/anomaly/") == "http://h"
    assert toggle_anomaly_prefix("http://h") == "http://h/anomaly"


def test_404_moves_to_next_candidate(planner):
    planner.add("POST", PLAN_PATH, body={"data": {"thread_id": "t9"}})
    with planner.client(base_url="http://planner.test/anomaly") as client:
        assert client.create_plan({"prompt": "x"}) == {"thread_id": "t9"}
    # /anomaly/... (twice, with and without slash) then the bare mount
    assert [r.url.path for r in planner.requests] == [
        "/anomaly" + PLAN_PATH, "/anomaly" + PLAN_PATH + "/", PLAN_PATH,
    ]


def test_all_candidates_404(planner):
    with planner.client() as client, pytest.raises(PlannerAPIError) as excinfo:
        client.create_plan({"prompt": "x"})
    assert excinfo.value.status == 404
    assert "Tried:" in excinfo.value.message
    assert len(planner.requests) == 4


def test_server_error_is_not_retried(planner):
    planner.add("POST", PLAN_PATH, status=500, body={"detail": "boom"})
    with planner.client() as client, pytest.raises(PlannerAPIError) as excinfo:
        client.create_plan({"prompt": "x"})
    assert excinfo.value.status == 500
    assert excinfo.value.message == "boom"
    assert len(planner.requests) == 1


# ── error classification ────────────────────────────────────────────────

def test_prompt_validation_422(planner):
    planner.add("POST", FAST_PLAN_PATH, status=422, body={"detail": {
        "reason_code": "gibberish", "message": "We could not understand that.", "suggested_prompt": "Survey about X",
    }})
    with planner.client() as client, pytest.raises(PromptValidationError) as excinfo:
        client.generate_fast_plan({"prompt": "asdfghjkl"})
    assert excinfo.value.reason_code == "gibberish"
    assert excinfo.value.suggested_prompt == "Survey about X"


def test_rules_422_without_reason_code(planner):
    planner.add("POST", "/api/agentic-survey/t1/rules/generate", status=422, body={"detail": "Unknown question q9"})
    with planner.client() as client, pytest.raises(RulesGenerationValidationError) as excinfo:
        client.generate_rules("t1")
    assert excinfo.value.message == "Unknown question q9"


def test_generic_422_outside_rules_is_api_error(planner):
    planner.add("POST", PLAN_PATH, status=422, body={"detail": [{"loc": ["body", "prompt"], "msg": "too short"}]})
    with planner.client() as client, pytest.raises(PlannerAPIError) as excinfo:
        client.create_plan({"prompt": "x"})
    assert excinfo.value.message == "Validation error: body.prompt: too short"


def test_reject_after_last_attempt(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/reject", status=400, body={"detail": {
        "error_code": "MAX_PLAN_ATTEMPTS_REACHED", "message": "No attempts left",
        "thread_id": "t1", "current_attempt": 3, "max_attempts": 3,
    }})
    with planner.client() as client, pytest.raises(PlanAttemptsExhaustedError) as excinfo:
        client.reject_plan("t1", "Too long")
    assert excinfo.value.current_attempt == 3
    assert excinfo.value.thread_id == "t1"


def test_non_json_body(planner):
    planner.add("GET", f"{PLAN_PATH}/t1", text="<html>oops</html>")
    with planner.client() as client, pytest.raises(MalformedResponseError):
        client.get_plan("t1")


def test_deeply_nested_json_body(planner):
    planner.add("GET", f"{PLAN_PATH}/t1", text="[" * 200000)
    with planner.client() as client, pytest.raises(MalformedResponseError):
        client.get_plan("t1")


def test_missing_thread_id(planner):
    planner.add("POST", PLAN_PATH, body={"status": {"code": "success"}})
    with planner.client() as client, pytest.raises(PlanShapeError):
        client.create_plan({"prompt": "x"})


# ── operations ──────────────────────────────────────────────────────────

def test_get_plan_flattens_envelope(planner):
    planner.add("GET", f"{PLAN_PATH}/t1", body=PLAN_ENVELOPE)
    with planner.client() as client:
        envelope = client.get_plan("t1")
    assert envelope["thread_id"] == "t1"
    assert envelope["approval_status"] == "pending"
    assert envelope["attempt"] == 1
    assert envelope["meta"] == {"request_id": "r1"}


def test_get_plan_requires_envelope_fields(planner):
    body = {"data": {"thread_id": "t1", "plan": {"pages": []}, "attempt": 1}}
    planner.add("GET", f"{PLAN_PATH}/t1", body=body)
    with planner.client() as client, pytest.raises(PlanShapeError):
        client.get_plan("t1")


def test_reject_sends_feedback(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/reject", body=PLAN_ENVELOPE)
    with planner.client() as client:
        client.reject_plan("t1", "Fewer pages please")
    assert planner.last_json() == {"feedback": "Fewer pages please"}


def test_approve_with_plan_envelope(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/approve", body=PLAN_ENVELOPE)
    with planner.client() as client:
        result = client.approve_plan("t1")
    assert result["approval_status"] == "pending"
    assert len(result["structure"]["sections"][0]["questions"]) == 2


def test_approve_with_finished_survey(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/approve", body={"survey": {
        "id": "t1", "pages": [{"title": "P1", "controls": [{"id": "c1", "type": "text", "label": "Hi"}]}],
    }})
    with planner.client() as client:
        result = client.approve_plan("t1")
    assert result["approval_status"] == "approved"
    assert result["structure"]["sections"][0]["questions"][0]["spec_id"] == "c1"


def test_generate_questions_plain(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/generate-questions", body=RENDERED)
    with planner.client() as client:
        result = client.generate_questions("t1")
    assert result["thread_id"] == "t1"
    assert result["saved"] is True
    assert result["structure"] == {"sections": [{"title": "Intro", "questions": [
        {"text": "Name?", "type": "short_text", "spec_id": "q1"},
    ]}]}


def test_generate_questions_with_auto_fix(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/generate-validate-fix", body=RENDERED)
    with planner.client() as client:
        client.generate_questions("t1", auto_fix=False)
    assert planner.requests[-1].url.params["auto_fix"] == "false"


def test_update_and_deletes(planner):
    planner.add("POST", f"{PLAN_PATH}/t1/update", body=RENDERED)
    planner.add("DELETE", f"{PLAN_PATH}/t1/question/q1", body=RENDERED)
    planner.add("DELETE", f"{PLAN_PATH}/t1/page/2", body=RENDERED)
    with planner.client() as client:
        client.update_plan("t1", "Make it shorter")
        assert planner.last_json() == {"update_instructions": "Make it shorter"}
        client.delete_question("t1", "q1")
        client.delete_page("t1", 2)
    assert [r.method for r in planner.requests] == ["POST", "DELETE", "DELETE"]


def test_generate_rules_body_only_has_given_fields(planner):
    planner.add("POST", "/api/agentic-survey/t1/rules/generate", body={
        "thread_id": "t1", "rules": {"survey_rules": []},
    })
    with planner.client() as client:
        result = client.generate_rules("t1", user_prompt="")
    assert planner.last_json() == {"user_prompt": ""}
    assert result == {"thread_id": "t1", "rules": {"survey_rules": []}}


def test_fast_plan_returns_structure_and_thread(planner):
    planner.add("POST", FAST_PLAN_PATH, body={"survey": {
        "id": "thread_fast", "title": "Quick", "pages": [{"controls": [{"type": "radio", "label": "Pick"}]}],
    }})
    with planner.client() as client:
        result = client.generate_fast_plan({"prompt": "A quick satisfaction survey"})
    assert result["thread_id"] == "thread_fast"
    assert result["structure"]["suggestedName"] == "Quick"
    assert result["structure"]["sections"][0]["title"] == "Page 1"

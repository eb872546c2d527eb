# _____ uses planner_client.py (upstream calls) + storage.py (persistence) to drive survey generation

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

# error envelope + survey lookup we REUSE from the CRUD routes
from survey_studio.api.surveys import api_error, build_meta, require_survey
from survey_studio.db.session import get_db
from survey_studio.normalize.bilingual import to_planner_language_code
from survey_studio.normalize.errors import (
    MalformedResponseError,
    PlanAttemptsExhaustedError,
    PlannerAPIError,
    PlanShapeError,
    PromptValidationError,
    RulesGenerationValidationError,
)
from survey_studio.normalize.plans import detect_shape, normalize_plan
from survey_studio.normalize.rules import to_canonical_rule_set
from survey_studio.services.planner_client import PlannerClient
from survey_studio.services.storage import SurveyStorage, serialize_survey

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- request models ----------

class PlanCreateRequest(BaseModel):
    prompt: str = Field(min_length=10)
    title: str
    type: str
    language: str
    numQuestions: Optional[int] = Field(default=None, ge=1, le=20)
    numPages: Optional[int] = Field(default=None, ge=1, le=5)
    attachedFileContent: Optional[str] = None
    attachedFileName: Optional[str] = None


class RejectRequest(BaseModel):
    feedback: str = Field(min_length=1)


class GenerateQuestionsRequest(BaseModel):
    auto_fix: Optional[bool] = None     # None -> plain generation, no validate/fix pass


class UpdatePlanRequest(BaseModel):
    update_instructions: str = Field(min_length=1)


class FastGenerateRequest(BaseModel):
    prompt: str = Field(min_length=10)
    type: Optional[str] = None
    numQuestions: Optional[int] = Field(default=None, ge=1, le=20)
    numPages: Optional[int] = Field(default=None, ge=1, le=5)


class RulesGenerateRequest(BaseModel):
    user_prompt: Optional[str] = None
    expected_rules_count: Optional[int] = Field(default=None, ge=1, le=50)


# ---------- helpers ----------

def get_planner_client() -> Iterator[PlannerClient]:
    client = PlannerClient()
    try:
        yield client
    finally:
        client.close()


@contextmanager
def planner_errors():
    """Translate planner failures into HTTP responses."""
    try:
        yield
    except PromptValidationError as exc:
        # the client pre-fills its prompt box from suggested_prompt
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc
    except RulesGenerationValidationError as exc:
        raise api_error(422, "RULES_GENERATION_FAILED", exc.message) from exc
    except PlanAttemptsExhaustedError as exc:
        raise api_error(
            400, "MAX_PLAN_ATTEMPTS_REACHED", exc.message,
            thread_id=exc.thread_id, current_attempt=exc.current_attempt, max_attempts=exc.max_attempts,
        ) from exc
    except PlanShapeError as exc:
        logger.warning("planner payload rejected: %s", exc)
        raise api_error(502, "PLANNER_SHAPE_MISMATCH", str(exc)) from exc
    except MalformedResponseError as exc:
        raise api_error(502, "PLANNER_BAD_RESPONSE", str(exc)) from exc
    except PlannerAPIError as exc:
        raise api_error(502, "PLANNER_ERROR", exc.message, upstream_status=exc.status) from exc
    except httpx.HTTPError as exc:
        logger.error("planner unreachable: %s", exc)
        raise api_error(502, "PLANNER_UNREACHABLE", f"Could not reach the planner: {exc}") from exc


def _store_structure(db: Session, survey_id: Optional[int], result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Persist a freshly generated structure onto a survey when the caller named one."""
    if survey_id is None:
        return None
    storage = SurveyStorage(db)
    require_survey(storage, survey_id)
    changes = {"structure": result["structure"]}
    if result.get("thread_id"):
        changes["thread_id"] = result["thread_id"]
    return serialize_survey(storage.update_survey(survey_id, **changes))


def _with_survey(payload: Dict[str, Any], survey: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if survey is not None:
        payload["survey"] = survey
    payload["meta"] = build_meta()
    return payload


# ---------- planner conversation ----------

@router.post("/planner/plans", status_code=201)
def create_plan(request: PlanCreateRequest, client: PlannerClient = Depends(get_planner_client)):
    body = request.model_dump(exclude_none=True)
    body["language"] = to_planner_language_code(request.language)
    with planner_errors():
        result = client.create_plan(body)
    return {"thread_id": result["thread_id"], "meta": build_meta()}


@router.get("/planner/plans/{thread_id}")
def get_plan(thread_id: str, client: PlannerClient = Depends(get_planner_client)):
    with planner_errors():
        envelope = client.get_plan(thread_id)

    # preview is best effort: a plan still being drafted may not convert yet
    try:
        envelope["preview"] = normalize_plan({"plan": envelope["plan"]}, log=logger)
    except PlanShapeError as exc:
        logger.info("no canonical preview for %s: %s", thread_id, exc)
        envelope["preview"] = None
    envelope["meta"] = build_meta()
    return envelope


@router.post("/planner/plans/{thread_id}/approve")
def approve_plan(
    thread_id: str,
    survey_id: Optional[int] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    with planner_errors():
        result = client.approve_plan(thread_id)
    return _with_survey(result, _store_structure(db, survey_id, result))


@router.post("/planner/plans/{thread_id}/reject")
def reject_plan(thread_id: str, request: RejectRequest, client: PlannerClient = Depends(get_planner_client)):
    with planner_errors():
        envelope = client.reject_plan(thread_id, request.feedback)
    envelope["meta"] = build_meta()
    return envelope


@router.post("/planner/plans/{thread_id}/questions")
def generate_questions(
    thread_id: str,
    request: Optional[GenerateQuestionsRequest] = None,
    survey_id: Optional[int] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    with planner_errors():
        result = client.generate_questions(thread_id, auto_fix=request.auto_fix if request else None)
    return _with_survey(result, _store_structure(db, survey_id, result))


@router.post("/planner/plans/{thread_id}/update")
def update_plan(
    thread_id: str,
    request: UpdatePlanRequest,
    survey_id: Optional[int] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    with planner_errors():
        result = client.update_plan(thread_id, request.update_instructions)
    return _with_survey(result, _store_structure(db, survey_id, result))


@router.delete("/planner/plans/{thread_id}/questions/{spec_id}")
def delete_question(
    thread_id: str,
    spec_id: str,
    survey_id: Optional[int] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    with planner_errors():
        result = client.delete_question(thread_id, spec_id)
    return _with_survey(result, _store_structure(db, survey_id, result))


@router.delete("/planner/plans/{thread_id}/pages/{page_number}")
def delete_page(
    thread_id: str,
    page_number: int,
    survey_id: Optional[int] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    with planner_errors():
        result = client.delete_page(thread_id, page_number)
    return _with_survey(result, _store_structure(db, survey_id, result))


# ---------- survey generation ----------

@router.post("/surveys/{survey_id}/generate")
def generate_survey(
    survey_id: int,
    request: FastGenerateRequest,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    survey = require_survey(SurveyStorage(db), survey_id)

    body = request.model_dump(exclude_none=True)
    body["title"] = survey.name
    body["language"] = to_planner_language_code(survey.language)

    with planner_errors():
        result = client.generate_fast_plan(body)
    return _with_survey(result, _store_structure(db, survey_id, result))


@router.post("/surveys/{survey_id}/rules/generate")
def generate_rules(
    survey_id: int,
    request: Optional[RulesGenerateRequest] = None,
    client: PlannerClient = Depends(get_planner_client),
    db: Session = Depends(get_db),
):
    request = request or RulesGenerateRequest()
    storage = SurveyStorage(db)
    survey = require_survey(storage, survey_id)
    if not survey.thread_id:
        raise api_error(409, "NO_PLANNER_THREAD", "Generate the survey structure before generating rules.")

    with planner_errors():
        result = client.generate_rules(
            survey.thread_id,
            user_prompt=request.user_prompt,
            expected_rules_count=request.expected_rules_count,
        )

    updated = storage.update_survey(survey_id, rules=result["rules"])
    payload = {"rules": result["rules"]}
    if "critique_summary" in result:
        payload["critique_summary"] = result["critique_summary"]
    return _with_survey(payload, serialize_survey(updated))


# ---------- normalization (no upstream call) ----------

@router.post("/normalize/plan")
def normalize_plan_payload(raw: Any = Body(...)):
    try:
        plan = normalize_plan(raw, log=logger)
    except PlanShapeError as exc:
        raise api_error(422, "PLAN_SHAPE_MISMATCH", str(exc)) from exc
    return {"shape": detect_shape(raw), "plan": plan, "meta": build_meta()}


@router.post("/normalize/rules")
def normalize_rules_payload(raw: Any = Body(...)):
    try:
        rules = to_canonical_rule_set(raw)
    except PlanShapeError as exc:
        raise api_error(422, "RULES_SHAPE_MISMATCH", str(exc)) from exc
    return {"rules": rules, "meta": build_meta()}

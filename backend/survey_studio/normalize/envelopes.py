# Planner responses come wrapped as {"meta", "status", "data": {...}} or flat at the root.
# These helpers read a field from whichever level carries it.
from typing import Any, Dict, Optional

from survey_studio.normalize.errors import PlanShapeError
from survey_studio.normalize.options import dig

PLAN_ENVELOPE_FIELDS = ("approval_status", "attempt", "version")


def _body(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = raw.get("data")
    return data if isinstance(data, dict) else raw


def _pick(raw: Dict[str, Any], key: str) -> Any:
    body = _body(raw)
    value = body.get(key)
    if value is None:
        value = raw.get(key)
    return value


def extract_thread_id(raw: Any, fallback: Optional[str] = None) -> Optional[str]:
    if not isinstance(raw, dict):
        return fallback
    data = raw.get("data")
    candidates = (
        dig(data, "thread_id"),
        raw.get("thread_id"),
        data if isinstance(data, str) else None,
        dig(raw, "survey", "id"),
        dig(raw, "survey", "meta", "thread_id"),
    )
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return fallback


def unwrap_plan_envelope(raw: Any) -> Dict[str, Any]:
    """
    Flatten a get/reject response into
    {meta, status, thread_id, plan, approval_status, attempt, version[, generated_questions]}.
    """
    if not isinstance(raw, dict):
        raise PlanShapeError("Planner API returned invalid response.", received=raw)

    thread_id = _pick(raw, "thread_id")
    if not thread_id:
        raise PlanShapeError("Response does not contain thread_id.", received=raw)

    plan = _pick(raw, "plan")
    if not plan:
        raise PlanShapeError("Response does not contain plan.", received=raw)

    envelope = {
        "meta": raw.get("meta"),
        "status": raw.get("status") or {"code": "success", "message": "Plan retrieved successfully"},
        "thread_id": thread_id,
        "plan": plan,
    }
    for key in PLAN_ENVELOPE_FIELDS:
        value = _pick(raw, key)
        if value is None:
            raise PlanShapeError(
                "Response missing required fields (approval_status, attempt, or version).",
                received=raw,
            )
        envelope[key] = value

    generated = _pick(raw, "generated_questions")
    if generated is not None:
        envelope["generated_questions"] = generated
    return envelope


def extract_rendered_pages(raw: Any, thread_id: Optional[str] = None) -> Dict[str, Any]:
    """{thread_id, rendered_pages[, validation, saved, error]} from a generate/update/delete response."""
    if not isinstance(raw, dict):
        raise PlanShapeError("Planner API returned invalid response.", received=raw)

    found = _pick(raw, "thread_id") or thread_id
    if not found:
        raise PlanShapeError("Response does not contain thread_id.", received=raw)

    pages = _pick(raw, "rendered_pages")
    if not isinstance(pages, list):
        raise PlanShapeError("Response does not contain rendered_pages.", received=raw)

    result = {"thread_id": found, "rendered_pages": pages}
    for key in ("validation", "saved", "error"):
        value = _pick(raw, key)
        if value is not None:
            result[key] = value
    return result

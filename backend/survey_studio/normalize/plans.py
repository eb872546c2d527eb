"""
Planner payload -> canonical plan ({"sections": [{"title", "questions": [...]}]}).

The planner has shipped several layouts for the same data over time. Each one is a
PlanShape entry (name, predicate, converter) and PLAN_SHAPES is checked top to bottom;
the first predicate that matches wins. Order matters because some payloads carry
more than one layout at once (e.g. "sections" next to a "survey" block).

Converters never raise on odd input. Anything we cannot recognise is handed back
untouched so validate_plan() can reject it with a dump of what actually arrived.
"""
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from pydantic import ValidationError

from survey_studio.normalize.bilingual import compact, is_blank, resolve, user_language_preference
from survey_studio.normalize.errors import PlanShapeError
from survey_studio.normalize.options import (
    coerce_options,
    dig,
    extract_options,
    extract_required,
    extract_scale,
    extract_validation,
)
from survey_studio.normalize.schema import (
    DEFAULT_QUESTION_TYPE,
    TYPE_ALIASES,
    CanonicalPlan,
    CanonicalQuestion,
    CanonicalSection,
    PlanModel,
    options_forbidden,
    options_required,
)

logger = logging.getLogger(__name__)

DEFAULT_SECTION_TITLE = "Survey Questions"
PLACEHOLDER_TEXT = "Question {n} (to be generated)"

# One level of envelope the planner (or a proxy in front of it) may wrap the payload in
WRAPPER_KEYS = ("data", "result", "survey_plan", "surveyPlan", "plan")


class PlanShape(NamedTuple):
    name: str
    matches: Callable[[Dict[str, Any]], bool]
    convert: Callable[[Dict[str, Any]], Any]


# ---------- helpers ----------

def _set_if_present(target: Dict[str, Any], key: str, value: Any) -> None:
    # None and missing collapse into "key not set"
    if value is not None:
        target[key] = value


def _as_type(raw_type: Any) -> str:
    if isinstance(raw_type, str) and raw_type.strip():
        return raw_type.strip()
    return DEFAULT_QUESTION_TYPE


def _attach_options(question: CanonicalQuestion, options: List[Any]) -> None:
    qtype = question["type"]
    if options_required(qtype):
        question["options"] = options           # always a list, even empty
    elif options and not options_forbidden(qtype):
        question["options"] = options


def _title(*candidates: Any, fallback: str) -> Any:
    for candidate in candidates:
        title = compact(candidate)
        if not is_blank(title):
            return title
    return fallback


def _name(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        name = resolve(candidate).strip()
        if name:
            return name
    return None


def _with_name(plan: CanonicalPlan, name: Optional[str]) -> CanonicalPlan:
    if name:
        plan["suggestedName"] = name
    return plan


def _first_value(source: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


# ---------- survey.pages[].controls[] ----------

def control_to_question(control: Dict[str, Any]) -> CanonicalQuestion:
    qtype = _as_type(control.get("type"))
    question: CanonicalQuestion = {
        "text": compact(control.get("label")),
        "type": TYPE_ALIASES.get(qtype, qtype),
        "required": extract_required(control),
    }

    spec_id = control.get("id") or control.get("name")
    if spec_id:
        question["spec_id"] = str(spec_id)

    options = extract_options(control)
    if not options and options_required(question["type"]):
        logger.debug("control %s is %s but carries no options", spec_id, question["type"])
    _attach_options(question, options)

    _set_if_present(question, "scale", extract_scale(control))
    _set_if_present(question, "validation", extract_validation(control))
    _set_if_present(question, "skip_logic", control.get("skip_logic"))
    return question


def _survey_pages_to_plan(r: Dict[str, Any]) -> CanonicalPlan:
    survey = r["survey"]
    sections: List[CanonicalSection] = []

    for idx, page in enumerate(survey["pages"]):
        if not isinstance(page, dict):
            continue
        controls = page.get("controls") if isinstance(page.get("controls"), list) else []
        sections.append({
            "title": _title(page.get("name"), page.get("title"), page.get("id"), fallback=f"Page {idx + 1}"),
            "questions": [control_to_question(c) for c in controls if isinstance(c, dict)],
        })

    return _with_name({"sections": sections}, _name(survey.get("title")))


# ---------- rendered_pages[] ----------

def rendered_to_question(q: Dict[str, Any]) -> CanonicalQuestion:
    text = _first_value(q, "question_text", "text", "intent")
    question: CanonicalQuestion = {
        "text": compact(text),
        "type": _as_type(q.get("question_type") or q.get("type")),
    }
    _attach_options(question, coerce_options(q.get("options")))

    if q.get("required") is not None:
        question["required"] = bool(q["required"])
    if q.get("spec_id") is not None:
        question["spec_id"] = str(q["spec_id"])

    _set_if_present(question, "scale", q.get("scale"))
    _set_if_present(question, "validation", q.get("validation"))
    _set_if_present(question, "skip_logic", q.get("skip_logic"))
    return question


def _pages_to_sections(pages: List[Any], fallback_prefix: str) -> List[CanonicalSection]:
    sections: List[CanonicalSection] = []
    for idx, page in enumerate(pages):
        if not isinstance(page, dict):
            continue
        number = page.get("page_number") or idx + 1
        questions = page.get("questions") if isinstance(page.get("questions"), list) else []
        sections.append({
            "title": _title(page.get("name"), page.get("title"), fallback=f"{fallback_prefix} {number}"),
            "questions": [rendered_to_question(q) for q in questions if isinstance(q, dict)],
        })
    return sections


def _rendered_pages_to_plan(r: Dict[str, Any]) -> CanonicalPlan:
    plan: CanonicalPlan = {"sections": _pages_to_sections(r["rendered_pages"], "Page")}
    return _with_name(plan, _name(r.get("suggestedName"), r.get("name")))


# ---------- generated_questions ----------

def _generated_pages(generated: Dict[str, Any]) -> Optional[List[Any]]:
    if isinstance(generated.get("rendered_pages"), list):
        return generated["rendered_pages"]
    # legacy: {page_id: {name, questions}, ...}
    pages = [page for page in generated.values() if isinstance(page, dict) and isinstance(page.get("questions"), list)]
    return pages or None


def _has_generated_questions(r: Dict[str, Any]) -> bool:
    generated = r.get("generated_questions")
    return isinstance(generated, dict) and _generated_pages(generated) is not None


def _generated_questions_to_plan(r: Dict[str, Any]) -> CanonicalPlan:
    pages = _generated_pages(r["generated_questions"]) or []
    plan: CanonicalPlan = {"sections": _pages_to_sections(pages, "Section")}
    return _with_name(plan, _name(r.get("suggestedName"), r.get("name"), dig(r, "plan", "title")))


# ---------- plan.pages[] (section_brief / question_specs) ----------

def _as_count(value: Any) -> int:
    # planners send 3, 3.0 or "3"
    if isinstance(value, bool):
        return 0
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _placeholder_questions(brief: Dict[str, Any]) -> List[CanonicalQuestion]:
    count = _as_count(brief.get("question_count"))
    return [
        {"text": PLACEHOLDER_TEXT.format(n=n), "type": DEFAULT_QUESTION_TYPE, "section_brief": brief}
        for n in range(1, count + 1)
    ]


def spec_to_question(spec: Dict[str, Any]) -> CanonicalQuestion:
    question: CanonicalQuestion = {
        "text": compact(_first_value(spec, "intent", "question_text", "text")),
        "type": _as_type(spec.get("question_type") or spec.get("type")),
    }
    _attach_options(question, coerce_options(spec.get("options_hint")))

    if spec.get("required") is not None:
        question["required"] = bool(spec["required"])
    if spec.get("spec_id") is not None:
        question["spec_id"] = str(spec["spec_id"])

    _set_if_present(question, "scale", spec.get("scale"))
    _set_if_present(question, "validation", spec.get("validation"))
    _set_if_present(question, "skip_logic", spec.get("skip_logic"))
    return question


def _plan_pages_to_plan(r: Dict[str, Any]) -> CanonicalPlan:
    plan_block = r["plan"]
    lang = user_language_preference(plan_block.get("language"))
    sections: List[CanonicalSection] = []

    for idx, page in enumerate(plan_block["pages"]):
        if not isinstance(page, dict):
            continue
        title = resolve(page.get("name") or page.get("title"), lang) or f"Section {idx + 1}"
        brief = page.get("section_brief")
        specs = page.get("question_specs")

        if isinstance(brief, dict):
            questions = _placeholder_questions(brief)
        elif isinstance(specs, list) and specs:
            questions = [spec_to_question(s) for s in specs if isinstance(s, dict)]
        else:
            questions = []
        sections.append({"title": title, "questions": questions})

    name = resolve(plan_block.get("title"), lang) or _name(r.get("suggestedName"), r.get("name"))
    return _with_name({"sections": sections}, name)


# ---------- bare questions[] ----------

def _bare_questions_to_plan(r: Dict[str, Any]) -> CanonicalPlan:
    section: CanonicalSection = {
        "title": _title(r.get("title"), fallback=DEFAULT_SECTION_TITLE),
        "questions": [rendered_to_question(q) for q in r["questions"] if isinstance(q, dict)],
    }
    return _with_name({"sections": [section]}, _name(r.get("suggestedName"), r.get("name")))


# ---------- detection table ----------

PLAN_SHAPES: Tuple[PlanShape, ...] = (
    PlanShape("sections", lambda r: isinstance(r.get("sections"), list), lambda r: r),
    PlanShape("survey.pages", lambda r: isinstance(dig(r, "survey", "pages"), list), _survey_pages_to_plan),
    PlanShape("rendered_pages", lambda r: isinstance(r.get("rendered_pages"), list), _rendered_pages_to_plan),
    PlanShape("generated_questions", _has_generated_questions, _generated_questions_to_plan),
    PlanShape("plan.pages", lambda r: isinstance(dig(r, "plan", "pages"), list), _plan_pages_to_plan),
)

FALLBACK_SHAPES: Tuple[PlanShape, ...] = (
    PlanShape(
        "questions",
        lambda r: isinstance(r.get("questions"), list) and "sections" not in r,
        _bare_questions_to_plan,
    ),
)


def _first_match(target: Dict[str, Any], shapes: Tuple[PlanShape, ...]) -> Optional[PlanShape]:
    for shape in shapes:
        if shape.matches(target):
            return shape
    return None


def _locate(raw: Dict[str, Any]) -> Optional[Tuple[str, PlanShape, Dict[str, Any]]]:
    for shapes in (PLAN_SHAPES, FALLBACK_SHAPES):
        shape = _first_match(raw, shapes)
        if shape is not None:
            return shape.name, shape, raw
        for key in WRAPPER_KEYS:
            inner = raw.get(key)
            if isinstance(inner, dict):
                shape = _first_match(inner, shapes)
                if shape is not None:
                    return f"{key}:{shape.name}", shape, inner
    return None


def detect_shape(raw: Any) -> Optional[str]:
    """
    Name of the first shape that applies to raw, or None if nothing fits.

    Shapes found one level down under a wrapper key are reported as "<wrapper>:<shape>",
    e.g. "data:rendered_pages". Top-level shapes are tried before wrapped ones, and the
    bare questions[] fallback only after neither level matched a structured shape.
    """
    if not isinstance(raw, dict):
        return None
    located = _locate(raw)
    return located[0] if located else None


def to_canonical_plan(raw: Any, log: Optional[logging.Logger] = None) -> Any:
    """Best-effort conversion of any planner payload into a canonical plan."""
    log = log or logger
    if not isinstance(raw, dict):
        return raw   # rejected at the boundary, not here

    located = _locate(raw)
    if located is None:
        log.warning("no known plan shape (keys: %s)", sorted(raw.keys())[:10])
        return raw

    label, shape, target = located
    log.debug("plan shape detected: %s", label)
    return shape.convert(target)


# ---------- boundary ----------

def validate_plan(candidate: Any) -> PlanModel:
    try:
        return PlanModel.model_validate(candidate)
    except ValidationError as exc:
        logger.warning("plan failed schema validation: %s", exc.errors()[:3])
        raise PlanShapeError(
            "Planner response does not match the expected survey plan format (missing or invalid `sections`).",
            received=candidate,
        ) from exc


def dump_canonical(plan: PlanModel) -> CanonicalPlan:
    return plan.model_dump(exclude_none=True)


def normalize_plan(raw: Any, log: Optional[logging.Logger] = None) -> CanonicalPlan:
    """Convert, validate and serialize in one step; raises PlanShapeError on mismatch."""
    return dump_canonical(validate_plan(to_canonical_plan(raw, log=log)))

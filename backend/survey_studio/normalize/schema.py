# Canonical survey shapes: TypedDicts describe what the converters emit,
# the pydantic models are the strict check applied once at the boundary.
from typing import Any, Dict, List, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, StrictStr

# Question kinds that always carry an options list (possibly empty)
CHOICE_TYPES = frozenset({"radio", "checkbox_list", "dropdown_list", "choice", "select"})
# Question kinds that never carry options
FREE_TEXT_TYPES = frozenset({"text", "textarea", "text_area", "long_text", "short_text", "email", "phone", "date"})
NUMERIC_TYPES = frozenset({"number", "numeric", "integer", "decimal"})

# Upstream type names that render the same as a canonical one
TYPE_ALIASES = {"select": "dropdown_list"}

DEFAULT_QUESTION_TYPE = "text"


class ScaleLabels(TypedDict, total=False):
    min: Any    # BilingualText
    max: Any


class ScaleSpec(TypedDict, total=False):
    min: Any
    max: Any
    labels: ScaleLabels


class CanonicalQuestion(TypedDict, total=False):
    text: Any   # BilingualText
    type: str
    options: List[Any]
    required: bool
    spec_id: str
    scale: ScaleSpec
    validation: Dict[str, Any]
    skip_logic: Dict[str, Any]
    section_brief: Dict[str, Any]


class CanonicalSection(TypedDict):
    title: Any
    questions: List[CanonicalQuestion]


class CanonicalPlan(TypedDict, total=False):
    sections: List[CanonicalSection]
    suggestedName: str


class RuleMeta(TypedDict):
    rule_id: str
    rule_type: str
    description_en: str
    description_ar: str


class Rule(TypedDict):
    meta_rule: RuleMeta
    conditions: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]


class RuleSet(TypedDict):
    survey_rules: List[Rule]


def options_required(question_type: Optional[str]) -> bool:
    return (question_type or "") in CHOICE_TYPES


def options_forbidden(question_type: Optional[str]) -> bool:
    return (question_type or "") in FREE_TEXT_TYPES or (question_type or "") in NUMERIC_TYPES


# ---------- strict boundary models ----------

class BilingualPair(BaseModel):
    en: StrictStr
    ar: StrictStr


BilingualField = Union[StrictStr, BilingualPair]


class QuestionModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: BilingualField
    type: StrictStr
    options: Optional[List[BilingualField]] = None
    required: Optional[bool] = None
    spec_id: Optional[str] = None
    scale: Optional[Dict[str, Any]] = None
    validation: Optional[Dict[str, Any]] = None
    skip_logic: Optional[Dict[str, Any]] = None
    section_brief: Optional[Dict[str, Any]] = None


class SectionModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: BilingualField
    questions: List[QuestionModel]


class PlanModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sections: List[SectionModel]
    suggestedName: Optional[str] = None

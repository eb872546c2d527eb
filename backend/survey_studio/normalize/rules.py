"""
Rule generation payload -> canonical rule set ({"survey_rules": [...]}).

Two layouts come back from the planner:
  - nested: {"survey": {"rules": [{"id", "description", "if": {"when": [...], "then": [...]}}]}}
  - flat:   {"thread_id", "rules": {"survey_rules": [...]}}  (optionally under "data")
The flat one already is canonical and passes through untouched.
"""
import logging
from typing import Any, Dict, List, Optional

from survey_studio.normalize.bilingual import resolve_both
from survey_studio.normalize.errors import PlanShapeError
from survey_studio.normalize.options import dig
from survey_studio.normalize.schema import Rule, RuleSet

logger = logging.getLogger(__name__)

UNKNOWN_RULE_TYPE = "unknown"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _list(value: Any) -> List[Any]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def condition_from_when(cond: Dict[str, Any]) -> Dict[str, Any]:
    left = cond.get("leftOperand") if isinstance(cond.get("leftOperand"), dict) else {}
    right = cond.get("rightOperand") if isinstance(cond.get("rightOperand"), dict) else {}

    left_side = {"type": left.get("type") or "question", "question_id": _text(left.get("value"))}
    if left.get("data_type") is not None:
        left_side["data_type"] = left["data_type"]

    right_side = {"type": right.get("type") or "value", "value": right.get("value") if right.get("value") is not None else ""}
    if right.get("data_type") is not None:
        right_side["data_type"] = right["data_type"]

    return {"left_side": left_side, "operator": _text(cond.get("operator")), "right_side": right_side}


def action_element(target: Any) -> str:
    """target.ids joined with ", " (or the single id), else target.type."""
    if not isinstance(target, dict):
        return ""
    ids = target.get("ids")
    if isinstance(ids, list):
        return ", ".join(_text(i) for i in ids)
    if ids not in (None, ""):
        return _text(ids)
    return _text(target.get("type"))


def action_from_then(action: Dict[str, Any]) -> Dict[str, Any]:
    converted = {
        "type": _text(action.get("type")),
        "action_element": action_element(action.get("target")),
    }
    message = action.get("message")
    if isinstance(message, dict):
        if message.get("en") is not None:
            converted["message_en"] = message["en"]
        if message.get("ar") is not None:
            converted["message_ar"] = message["ar"]
    for key in ("sequence", "action_answer"):
        if action.get(key) is not None:
            converted[key] = action[key]
    return converted


def rule_from_nested(rule: Dict[str, Any]) -> Rule:
    when = _list(dig(rule, "if", "when"))
    then = _list(dig(rule, "if", "then"))
    description = resolve_both(rule.get("description"))

    return {
        "meta_rule": {
            "rule_id": _text(rule.get("id")),
            "rule_type": (then[0].get("type") if then else None) or UNKNOWN_RULE_TYPE,
            "description_en": description["en"],
            "description_ar": description["ar"],
        },
        "conditions": [condition_from_when(c) for c in when],
        "actions": [action_from_then(a) for a in then],
    }


# ---------- detection ----------

def _is_nested(raw: Dict[str, Any]) -> bool:
    return isinstance(dig(raw, "survey", "rules"), list)


def _flat_rules(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for source in (raw.get("data"), raw):
        rules = dig(source, "rules")
        if isinstance(rules, dict) and isinstance(rules.get("survey_rules"), list):
            return rules
    if isinstance(raw.get("survey_rules"), list):
        return raw
    return None


def to_canonical_rule_set(raw: Any) -> RuleSet:
    if isinstance(raw, dict):
        if _is_nested(raw):
            rules = [rule_from_nested(r) for r in _list(raw["survey"]["rules"])]
            logger.debug("nested rule payload converted: %d rules", len(rules))
            return {"survey_rules": rules}

        flat = _flat_rules(raw)
        if flat is not None:
            return flat

    raise PlanShapeError("Rules response does not contain rules.", received=raw)


def extract_rules_response(raw: Any, thread_id: Optional[str] = None) -> Dict[str, Any]:
    """Rule set plus the thread it belongs to and the planner's critique summary, if any."""
    rule_set = to_canonical_rule_set(raw)

    if _is_nested(raw):
        survey = raw["survey"]
        found = survey.get("id") or dig(survey, "meta", "thread_id") or thread_id
        critique = None
    else:
        data = raw.get("data") if isinstance(raw.get("data"), dict) else raw
        found = data.get("thread_id") or raw.get("thread_id") or thread_id
        critique = data.get("critique_summary") or raw.get("critique_summary")

    if not found:
        raise PlanShapeError("Rules response does not contain thread_id.", received=raw)

    result = {"thread_id": found, "rules": rule_set}
    if critique is not None:
        result["critique_summary"] = critique
    return result

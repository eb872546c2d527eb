# Pull choice options / scale bounds out of planner "controls".
# Newer payloads nest them under settings.props, older ones under props; settings.props wins.
import logging
from typing import Any, Dict, List, Optional

from survey_studio.normalize.bilingual import compact, is_blank, resolve_both
from survey_studio.normalize.schema import ScaleSpec

logger = logging.getLogger(__name__)

_PROP_PATHS = (("settings", "props"), ("props",))


def dig(obj: Any, *path: str) -> Any:
    """obj[path[0]][path[1]]... or None as soon as a level is missing or not a dict."""
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _option_label(item: Any) -> Any:
    if isinstance(item, dict):
        if "label" in item:
            return item["label"]
        if "en" in item or "ar" in item:
            return item
        for key in ("text", "value"):   # bare {"value": "yes"} style
            if key in item:
                return item[key]
        return None
    return item


def coerce_options(items: Any) -> List[Any]:
    """Canonical option list: every entry compacted to BilingualText, blank ones dropped."""
    if not isinstance(items, list):
        return []

    options = []
    for idx, item in enumerate(items):
        label = compact(_option_label(item))
        if is_blank(label):
            logger.debug("dropping blank option %s: %r", idx, item)
            continue
        options.append(label)
    return options


def extract_options(control: Any) -> List[Any]:
    for path in _PROP_PATHS:
        candidate = dig(control, *path, "options")
        if isinstance(candidate, list) and len(candidate) > 0:
            return coerce_options(candidate)
    return []


def _scale_label(value: Any) -> Any:
    if isinstance(value, dict):
        return resolve_both(value)
    return value


def extract_scale(control: Any) -> Optional[ScaleSpec]:
    scale_data = None
    for path in _PROP_PATHS:
        candidate = dig(control, *path, "scale")
        if isinstance(candidate, dict) and candidate:
            scale_data = candidate
            break
    if scale_data is None or (scale_data.get("min") is None and scale_data.get("max") is None):
        return None

    scale: ScaleSpec = {}
    if scale_data.get("min") is not None:
        scale["min"] = scale_data["min"]
    if scale_data.get("max") is not None:
        scale["max"] = scale_data["max"]

    labels = scale_data.get("labels")
    if isinstance(labels, dict):
        resolved = {}
        for bound in ("min", "max"):
            if labels.get(bound) not in (None, ""):
                resolved[bound] = _scale_label(labels[bound])
        if resolved:
            scale["labels"] = resolved
    return scale


def extract_validation(control: Any) -> Optional[Dict[str, Any]]:
    validations = dig(control, "settings", "validations")
    if isinstance(validations, dict):
        return dict(validations)
    return None


def extract_required(control: Any) -> bool:
    return bool(dig(control, "settings", "validations", "required"))

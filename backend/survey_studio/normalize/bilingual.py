"""
Bilingual text helpers.

The planner returns text fields in three styles depending on the survey language:
  - a plain string (English-only surveys, older payloads)
  - an {"en": ..., "ar": ...} object (Arabic or bilingual surveys)
  - a single "English / Arabic" string (legacy bilingual payloads)

Everything here is pure and never raises on odd input; the worst case is "".
"""
import re
from typing import Any, Dict, List, Literal, Optional, Union

UserLanguage = Literal["en", "ar"]
PlannerLanguageCode = Literal["en", "ar", "both"]
BilingualText = Union[str, Dict[str, str]]

# "English / Arabic", "English/Arabic", "English /Arabic" ...
_COMBINED = re.compile(r"^(.+?)\s*/\s*(.+)$", re.DOTALL)
_ARABIC = re.compile(r"[\u0600-\u06FF]")
_LATIN = re.compile(r"[a-zA-Z]")


def _is_language_map(field: Any) -> bool:
    return isinstance(field, dict) and ("en" in field or "ar" in field)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def split_combined(text: str) -> Optional[Dict[str, str]]:
    """Split "English / Arabic" into its halves, or None when it is one language."""
    match = _COMBINED.match(text)
    if not match:
        return None
    en, ar = match.group(1).strip(), match.group(2).strip()
    if en and ar and en != ar:
        return {"en": en, "ar": ar}
    return None


def resolve_both(field: Any) -> Dict[str, str]:
    """
    Return {"en", "ar"} for any bilingual field.
    Monolingual strings come back in both slots so older payloads keep rendering.
    """
    if field is None:
        return {"en": "", "ar": ""}

    if isinstance(field, str):
        split = split_combined(field)
        if split is not None:
            return split
        return {"en": field, "ar": field}

    if _is_language_map(field):
        return {"en": _as_str(field.get("en")), "ar": _as_str(field.get("ar"))}

    if isinstance(field, (int, float)) and not isinstance(field, bool):
        text = str(field)
        return {"en": text, "ar": text}

    return {"en": "", "ar": ""}


def resolve(field: Any, preferred_lang: UserLanguage = "en") -> str:
    """Text in the preferred language, falling back to English when that side is empty."""
    both = resolve_both(field)
    if preferred_lang == "ar":
        return both["ar"] or both["en"]
    return both["en"] or both["ar"]


def resolve_array(fields: Any, preferred_lang: UserLanguage = "en") -> List[str]:
    if not isinstance(fields, list):
        return []
    return [resolve(field, preferred_lang) for field in fields]


def resolve_both_array(fields: Any) -> List[Dict[str, str]]:
    if not isinstance(fields, list):
        return []
    return [resolve_both(field) for field in fields]


def compact(field: Any) -> BilingualText:
    """
    Collapse an upstream label into canonical BilingualText.

    {"en": "Age", "ar": "العمر"} stays an object, {"en": "Age", "ar": ""} becomes "Age",
    and a language-keyed object without en/ar ({"fr": "Âge"}) yields its first string value.
    """
    if field is None:
        return ""
    if isinstance(field, str):
        return field
    if isinstance(field, dict):
        en = _as_str(field.get("en"))
        ar = _as_str(field.get("ar"))
        if en and ar:
            return {"en": en, "ar": ar}
        if en or ar:
            return en or ar
        for value in field.values():
            if isinstance(value, str) and value:
                return value
        return ""
    if isinstance(field, (int, float)) and not isinstance(field, bool):
        return str(field)
    return ""


def is_blank(field: Any) -> bool:
    """True when a BilingualText has no visible text in any language."""
    both = resolve_both(field)
    return not both["en"].strip() and not both["ar"].strip()


# ---------- language codes ----------

def to_planner_language_code(label: Optional[str]) -> PlannerLanguageCode:
    """
    UI label -> planner contract.
    "English" -> "en", "Arabic" -> "ar", "Bilingual" -> "both". Unknown values fall back to "en".
    """
    normalized = (label or "").strip().lower()

    if normalized in ("en", "ar", "both"):
        return normalized  # type: ignore[return-value]
    if normalized == "english":
        return "en"
    if normalized == "arabic":
        return "ar"
    if normalized in ("bilingual", "arabic and english", "english and arabic"):
        return "both"
    return "en"


def user_language_preference(plan_language: Optional[str], override: Optional[UserLanguage] = None) -> UserLanguage:
    if override:
        return override
    if (plan_language or "").strip().lower() in ("ar", "arabic"):
        return "ar"
    return "en"   # "en" and "both" read in English by default


def should_use_bilingual(plan_language: Optional[str]) -> bool:
    return (plan_language or "").strip().lower() in ("ar", "both", "bilingual")


def is_bilingual_content(text: Any) -> bool:
    """Detect content carrying both languages even when the survey is configured as English."""
    if not text:
        return False

    if _is_language_map(text):
        return bool(text.get("en") and text.get("ar"))

    if not isinstance(text, str):
        return False

    if not (_ARABIC.search(text) and _LATIN.search(text)):
        return False

    split = split_combined(text)
    if split is not None and _ARABIC.search(split["ar"]):
        return True

    # no separator: require a reasonable amount of both scripts
    return len(_ARABIC.findall(text)) > 5 and len(_LATIN.findall(text)) > 5

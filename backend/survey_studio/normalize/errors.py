"""
Planner error taxonomy and the 422 classifier.

A 422 from the planner is either a structured prompt-validation failure
(machine readable reason_code + optional suggested prompt) or something generic.
classify() only labels the response; callers decide what to raise.
"""
import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel

from survey_studio.normalize.bilingual import resolve

ReasonCode = Literal["too_short", "gibberish", "keyboard_walk", "repetitive", "unsupported", "needs_clarification"]

REASON_CODES = ("too_short", "gibberish", "keyboard_walk", "repetitive", "unsupported", "needs_clarification")

DEFAULT_RULES_MESSAGE = "Couldn't generate valid rules. Try rephrasing your request."

DUMP_LIMIT = 200    # characters of the received payload kept on a shape mismatch


class PromptValidationFailure(BaseModel):
    kind: Literal["prompt_validation"] = "prompt_validation"
    reason_code: ReasonCode
    message: str
    suggested_prompt: Optional[str] = None


class GenericFailure(BaseModel):
    kind: Literal["generic"] = "generic"


Classification = Union[PromptValidationFailure, GenericFailure]


def _parse_json(text: Optional[str]) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):    # deeply nested bodies blow the decoder stack
        return None


def classify(http_status: int, raw_body_text: Optional[str]) -> Classification:
    if http_status != 422:
        return GenericFailure()

    data = _parse_json(raw_body_text)
    if not isinstance(data, dict):
        return GenericFailure()

    detail = data.get("detail")
    if not isinstance(detail, dict):
        return GenericFailure()

    reason_code = detail.get("reason_code")
    if reason_code not in REASON_CODES:
        return GenericFailure()

    message = detail.get("message")
    if not isinstance(message, str) or not message:
        return GenericFailure()

    suggested = detail.get("suggested_prompt")
    if suggested is not None and not isinstance(suggested, str):
        return GenericFailure()

    return PromptValidationFailure(reason_code=reason_code, message=message, suggested_prompt=suggested)


def extract_error_message(status: int, text: Optional[str], default: Optional[str] = None) -> str:
    """Best human-readable message from a failed planner response body."""
    fallback = default or f"Planner API error ({status}). {text or ''}".strip()
    data = _parse_json(text)
    if not isinstance(data, dict):
        return fallback

    detail = data.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, list):
        parts = []
        for err in detail:
            if isinstance(err, dict):
                loc = ".".join(str(p) for p in err.get("loc") or [])
                parts.append(f"{loc}: {err.get('msg')}")
        if parts:
            return "Validation error: " + "; ".join(parts)
    if isinstance(detail, dict) and detail:
        if isinstance(detail.get("message"), str) and detail["message"]:
            return detail["message"]
        return json.dumps(detail, ensure_ascii=False)

    status_block = data.get("status")
    if isinstance(status_block, dict) and status_block.get("message"):
        return resolve(status_block["message"], "en")

    if isinstance(data.get("message"), str) and data["message"]:
        return data["message"]
    return fallback


def truncated_dump(value: Any, limit: int = DUMP_LIMIT) -> str:
    try:
        dumped = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        dumped = repr(value)
    if len(dumped) <= limit:
        return dumped
    return dumped[:limit] + "..."


# ---------- exceptions ----------

class PlannerError(Exception):
    """Base class for everything the planner integration raises."""


class PlannerAPIError(PlannerError):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class MalformedResponseError(PlannerError):
    """Body could not be parsed as JSON at all."""


class PlanShapeError(PlannerError):
    """Body parsed but does not match any shape we can turn into a canonical value."""

    def __init__(self, message: str, received: Any = None):
        dump = truncated_dump(received)
        super().__init__(f"{message} Received: {dump}")
        self.received = dump


class PromptValidationError(PlannerError):
    status_code = 422

    def __init__(self, failure: PromptValidationFailure):
        super().__init__(failure.message)
        self.reason_code = failure.reason_code
        self.message = failure.message
        self.suggested_prompt = failure.suggested_prompt

    def as_detail(self) -> dict:
        return {
            "reason_code": self.reason_code,
            "message": self.message,
            "suggested_prompt": self.suggested_prompt,
        }


class RulesGenerationValidationError(PlannerError):
    status_code = 422

    def __init__(self, message: str = DEFAULT_RULES_MESSAGE):
        super().__init__(message)
        self.message = message


class PlanAttemptsExhaustedError(PlannerError):
    """Reject was called after the planner's last allowed regeneration."""

    def __init__(self, message: str, thread_id: Optional[str] = None,
                 current_attempt: Optional[int] = None, max_attempts: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.thread_id = thread_id
        self.current_attempt = current_attempt
        self.max_attempts = max_attempts


def rules_validation_message(text: Optional[str]) -> str:
    """Message for a 422 from rule generation that is not a prompt-validation failure."""
    data = _parse_json(text)
    if not isinstance(data, dict):
        return DEFAULT_RULES_MESSAGE
    detail = data.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, dict):
        message = detail.get("message")
        return message if isinstance(message, str) and message else DEFAULT_RULES_MESSAGE
    if isinstance(data.get("message"), str) and data["message"]:
        return data["message"]
    return DEFAULT_RULES_MESSAGE

"""
HTTP client for the external survey planner.

Every call goes through PlannerClient._request(), which tries a short list of
candidate URLs (with/without the "/anomaly" mount prefix, with/without a trailing
slash). A 404 means "wrong mount, try the next one"; any other failure stops
immediately and is mapped onto the exceptions in normalize.errors.

Responses are reduced to canonical values before they leave this module:
plans go through normalize_plan(), rules through extract_rules_response().
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from survey_studio.core import config
from survey_studio.normalize.envelopes import extract_rendered_pages, extract_thread_id, unwrap_plan_envelope
from survey_studio.normalize.errors import (
    MalformedResponseError,
    PlanAttemptsExhaustedError,
    PlannerAPIError,
    PlanShapeError,
    PromptValidationError,
    PromptValidationFailure,
    RulesGenerationValidationError,
    classify,
    extract_error_message,
    rules_validation_message,
    truncated_dump,
)
from survey_studio.normalize.options import dig
from survey_studio.normalize.plans import normalize_plan
from survey_studio.normalize.rules import extract_rules_response

logger = logging.getLogger(__name__)

ANOMALY_PREFIX = "/anomaly"
MAX_PLAN_ATTEMPTS = 3
MAX_ATTEMPTS_CODE = "MAX_PLAN_ATTEMPTS_REACHED"

PLAN_PATH = "/api/upsert-survey/survey-plan"
FAST_PLAN_PATH = "/api/upsert-survey/survey-plan/fast"
RULES_PATH = "/api/agentic-survey/{thread_id}/rules/generate"


# ---------- url helpers ----------

def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def toggle_anomaly_prefix(base_url: str) -> str:
    trimmed = base_url.rstrip("/")
    if trimmed.lower().endswith(ANOMALY_PREFIX):
        return trimmed[: -len(ANOMALY_PREFIX)] or trimmed
    return trimmed + ANOMALY_PREFIX


def candidate_urls(base_url: str, path: str) -> List[str]:
    """Ordered, de-duplicated list of URLs to try for one endpoint."""
    urls: List[str] = []
    for base in (base_url, toggle_anomaly_prefix(base_url)):
        for variant in (path, path.rstrip("/") + "/"):
            url = join_url(base, variant)
            if url not in urls:
                urls.append(url)
    return urls


# ---------- client ----------

class PlannerClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        fast_base_url: Optional[str] = None,
    ) -> None:
        self.base_url = base_url or config.PLANNER_API_BASE_URL
        self.fast_base_url = fast_base_url or base_url or config.ANOMALY_API_BASE_URL
        self._client = httpx.Client(
            timeout=timeout if timeout is not None else config.PLANNER_TIMEOUT_SECONDS,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PlannerClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ---------- transport ----------

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, str]] = None,
        base_url: Optional[str] = None,
        rules: bool = False,
    ) -> Any:
        urls = candidate_urls(base_url or self.base_url, path)

        for url in urls:
            response = self._client.request(method, url, json=body, params=params)
            if response.status_code == 404:
                logger.debug("planner 404 at %s, trying next candidate", url)
                continue
            if response.is_error:
                self._raise_for(response, rules=rules)

            if not response.text:
                return None
            try:
                data = response.json()
            except (ValueError, RecursionError) as exc:
                raise MalformedResponseError("Planner API returned a non-JSON response.") from exc
            logger.debug("planner %s %s -> %s", method, url, truncated_dump(data))
            return data

        raise PlannerAPIError(404, f"Planner API error (404). The endpoint was not found. Tried: {', '.join(urls)}")

    def _raise_for(self, response: httpx.Response, rules: bool = False) -> None:
        status, text = response.status_code, response.text

        if status == 422:
            failure = classify(status, text)
            if isinstance(failure, PromptValidationFailure):
                logger.info("prompt rejected by planner: %s", failure.reason_code)
                raise PromptValidationError(failure)
            if rules:
                raise RulesGenerationValidationError(rules_validation_message(text))

        if status == 400:
            try:
                detail = response.json().get("detail")
            except (ValueError, RecursionError, AttributeError):
                detail = None
            if isinstance(detail, dict) and detail.get("error_code") == MAX_ATTEMPTS_CODE:
                raise PlanAttemptsExhaustedError(
                    detail.get("message") or "Maximum plan attempts reached",
                    thread_id=detail.get("thread_id"),
                    current_attempt=detail.get("current_attempt"),
                    max_attempts=detail.get("max_attempts", MAX_PLAN_ATTEMPTS),
                )

        message = extract_error_message(status, text)
        logger.warning("planner error %s: %s", status, message)
        raise PlannerAPIError(status, message)

    def _pages_result(self, raw: Any, thread_id: str) -> Dict[str, Any]:
        result = extract_rendered_pages(raw, thread_id)
        result["structure"] = normalize_plan({"rendered_pages": result["rendered_pages"]}, log=logger)
        return result

    # ---------- operations ----------

    def create_plan(self, request: Dict[str, Any]) -> Dict[str, Any]:
        raw = self._request("POST", PLAN_PATH, body=request)
        thread_id = extract_thread_id(raw)
        if not thread_id:
            raise PlanShapeError("Planner API response does not contain thread_id.", received=raw)
        return {"thread_id": thread_id}

    def get_plan(self, thread_id: str) -> Dict[str, Any]:
        raw = self._request("GET", f"{PLAN_PATH}/{thread_id}")
        return unwrap_plan_envelope(raw)

    def approve_plan(self, thread_id: str) -> Dict[str, Any]:
        raw = self._request("POST", f"{PLAN_PATH}/{thread_id}/approve", body={})

        # newer planners answer approve with the finished survey instead of the plan envelope
        if isinstance(dig(raw, "survey", "pages"), list):
            return {
                "thread_id": extract_thread_id(raw, thread_id),
                "approval_status": "approved",
                "structure": normalize_plan(raw, log=logger),
            }

        envelope = unwrap_plan_envelope(raw)
        source = {key: envelope[key] for key in ("generated_questions", "plan") if key in envelope}
        return {
            "thread_id": envelope["thread_id"],
            "approval_status": envelope["approval_status"],
            "structure": normalize_plan(source, log=logger),
        }

    def reject_plan(self, thread_id: str, feedback: str) -> Dict[str, Any]:
        raw = self._request("POST", f"{PLAN_PATH}/{thread_id}/reject", body={"feedback": feedback})
        return unwrap_plan_envelope(raw)

    def generate_questions(self, thread_id: str, auto_fix: Optional[bool] = None) -> Dict[str, Any]:
        """auto_fix=None calls plain generation; True/False goes through generate-validate-fix."""
        if auto_fix is None:
            raw = self._request("POST", f"{PLAN_PATH}/{thread_id}/generate-questions", body={})
        else:
            raw = self._request(
                "POST",
                f"{PLAN_PATH}/{thread_id}/generate-validate-fix",
                body={},
                params={"auto_fix": "true" if auto_fix else "false"},
            )
        return self._pages_result(raw, thread_id)

    def update_plan(self, thread_id: str, update_instructions: str) -> Dict[str, Any]:
        raw = self._request(
            "POST", f"{PLAN_PATH}/{thread_id}/update", body={"update_instructions": update_instructions}
        )
        return self._pages_result(raw, thread_id)

    def delete_question(self, thread_id: str, spec_id: str) -> Dict[str, Any]:
        raw = self._request("DELETE", f"{PLAN_PATH}/{thread_id}/question/{spec_id}")
        return self._pages_result(raw, thread_id)

    def delete_page(self, thread_id: str, page_number: int) -> Dict[str, Any]:
        raw = self._request("DELETE", f"{PLAN_PATH}/{thread_id}/page/{page_number}")
        return self._pages_result(raw, thread_id)

    def generate_rules(
        self,
        thread_id: str,
        user_prompt: Optional[str] = None,
        expected_rules_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if user_prompt is not None:            # empty string is meaningful to the planner
            body["user_prompt"] = user_prompt
        if expected_rules_count is not None:
            body["expected_rules_count"] = expected_rules_count

        raw = self._request("POST", RULES_PATH.format(thread_id=thread_id), body=body, rules=True)
        return extract_rules_response(raw, thread_id)

    def generate_fast_plan(self, request: Dict[str, Any]) -> Dict[str, Any]:
        raw = self._request("POST", FAST_PLAN_PATH, body=request, base_url=self.fast_base_url)
        result = {"structure": normalize_plan(raw, log=logger)}
        thread_id = extract_thread_id(raw)
        if thread_id:
            result["thread_id"] = thread_id
        return result

"""Tests for normalize.plans: shape detection, conversion and the boundary check."""
import logging

import pytest

from survey_studio.normalize.errors import PlanShapeError
from survey_studio.normalize.plans import (
    DEFAULT_SECTION_TITLE,
    PLAN_SHAPES,
    detect_shape,
    normalize_plan,
    to_canonical_plan,
    validate_plan,
)

SURVEY_PAGES = {
    "timestamp": "2024-05-01T10:00:00Z",
    "survey": {
        "id": "thread_abc",
        "title": {"en": "Customer Feedback", "ar": "آراء العملاء"},
        "pages": [{
            "title": {"en": "About you", "ar": "عنك"},
            "controls": [
                {
                    "id": "q_age",
                    "type": "number",
                    "label": {"en": "Age?", "ar": "العمر؟"},
                    "settings": {"validations": {"required": True}},
                },
                {
                    "id": "q_city",
                    "type": "select",
                    "label": "City",
                    "settings": {"props": {"options": ["Riyadh", "Jeddah"]}},
                },
                {"name": "q_rate", "type": "radio", "label": "Rate us"},
            ],
        }],
    },
}

RENDERED_PAGES = {
    "rendered_pages": [{
        "name": "Page 1",
        "questions": [{"question_text": "Age?", "question_type": "number", "required": True}],
    }],
}

GENERATED_QUESTIONS = {
    "generated_questions": {
        "rendered_pages": [{
            "page_number": 2,
            "questions": [{
                "spec_id": "s1",
                "question_text": "Favourite colour?",
                "question_type": "radio",
                "options": ["Red", "Blue"],
                "scale": None,
                "validation": None,
                "skip_logic": None,
            }],
        }],
    },
}

PLAN_QUESTION_SPECS = {
    "plan": {
        "title": "Onboarding",
        "language": "en",
        "pages": [{
            "name": "Basics",
            "question_specs": [{
                "spec_id": "p1",
                "question_type": "dropdown_list",
                "language": "en",
                "intent": "Which team are you joining?",
                "required": True,
                "options_hint": ["Sales", "Support"],
            }],
        }],
    },
}

PLAN_SECTION_BRIEF = {
    "plan": {
        "language": "ar",
        "pages": [{
            "name": {"en": "Experience", "ar": "التجربة"},
            "section_brief": {"question_count": 3, "summary": "How the visit went"},
        }],
    },
}

BARE_QUESTIONS = {"questions": [{"text": "Anything else?", "type": "textarea"}]}

ALL_SHAPES = [SURVEY_PAGES, RENDERED_PAGES, GENERATED_QUESTIONS, PLAN_QUESTION_SPECS, PLAN_SECTION_BRIEF, BARE_QUESTIONS]


def _questions(plan):
    return [q for section in plan["sections"] for q in section["questions"]]


@pytest.mark.parametrize("raw", ALL_SHAPES)
def test_every_shape_yields_text_and_type(raw):
    plan = to_canonical_plan(raw)
    questions = _questions(plan)
    assert questions
    for q in questions:
        assert "text" in q and q["text"] is not None
        assert isinstance(q["type"], str) and q["type"]
    validate_plan(plan)


def test_canonical_input_is_returned_as_is():
    plan = {"sections": [{"title": "S", "questions": [{"text": "Q", "type": "text"}]}]}
    assert to_canonical_plan(plan) is plan


def test_rendered_pages_end_to_end():
    assert normalize_plan(RENDERED_PAGES) == {
        "sections": [{"title": "Page 1", "questions": [{"text": "Age?", "type": "number", "required": True}]}],
    }


def test_survey_pages_controls():
    plan = to_canonical_plan(SURVEY_PAGES)
    age, city, rate = _questions(plan)

    assert plan["suggestedName"] == "Customer Feedback"
    assert plan["sections"][0]["title"] == {"en": "About you", "ar": "عنك"}
    assert age == {"text": {"en": "Age?", "ar": "العمر؟"}, "type": "number", "required": True,
                   "spec_id": "q_age", "validation": {"required": True}}
    assert city["type"] == "dropdown_list"
    assert city["options"] == ["Riyadh", "Jeddah"]
    # choice kinds keep an options list even when the planner sent none
    assert rate["options"] == []
    assert rate["spec_id"] == "q_rate"


@pytest.mark.parametrize("question", [
    {"question_text": "Q", "question_type": "rating", "scale": None},
    {"question_text": "Q", "question_type": "rating"},
])
def test_null_and_missing_scale_both_become_absent(question):
    plan = to_canonical_plan({"rendered_pages": [{"name": "P", "questions": [question]}]})
    assert "scale" not in _questions(plan)[0]


def test_boundless_control_scale_is_dropped():
    raw = {"survey": {"pages": [{"title": "P", "controls": [
        {"id": "q1", "type": "rating", "label": "Rate us", "props": {"scale": {"step": 1}}},
    ]}]}}
    assert "scale" not in _questions(to_canonical_plan(raw))[0]


def test_page_name_wins_over_title():
    raw = {"survey": {"pages": [
        {"name": "page_intro", "title": "Welcome", "controls": []},
        {"title": "Details", "controls": []},
        {"controls": []},
    ]}}
    titles = [s["title"] for s in to_canonical_plan(raw)["sections"]]
    assert titles == ["page_intro", "Details", "Page 3"]


def test_generated_questions_unwraps_rendered_pages():
    plan = to_canonical_plan(GENERATED_QUESTIONS)
    section = plan["sections"][0]
    assert section["title"] == "Section 2"
    assert section["questions"] == [{"text": "Favourite colour?", "type": "radio",
                                     "options": ["Red", "Blue"], "spec_id": "s1"}]


def test_generated_questions_legacy_page_map():
    raw = {"generated_questions": {"page_1": {"name": "Intro", "questions": [{"question_text": "Hi?"}]}}}
    plan = to_canonical_plan(raw)
    assert plan["sections"] == [{"title": "Intro", "questions": [{"text": "Hi?", "type": "text"}]}]


def test_question_specs_are_renamed():
    plan = to_canonical_plan(PLAN_QUESTION_SPECS)
    assert plan["suggestedName"] == "Onboarding"
    assert _questions(plan) == [{"text": "Which team are you joining?", "type": "dropdown_list",
                                 "options": ["Sales", "Support"], "required": True, "spec_id": "p1"}]


def test_section_brief_becomes_placeholders():
    plan = to_canonical_plan(PLAN_SECTION_BRIEF)
    section = plan["sections"][0]
    assert section["title"] == "التجربة"      # plan language is Arabic
    assert [q["text"] for q in section["questions"]] == [
        "Question 1 (to be generated)",
        "Question 2 (to be generated)",
        "Question 3 (to be generated)",
    ]
    assert section["questions"][0]["section_brief"]["summary"] == "How the visit went"


@pytest.mark.parametrize("count", ["3", 3.0])
def test_question_count_accepts_numeric_strings_and_floats(count):
    raw = {"plan": {"pages": [{"name": "Visit", "section_brief": {"question_count": count}}]}}
    assert len(_questions(to_canonical_plan(raw))) == 3


@pytest.mark.parametrize("count", [True, "many", None, -2])
def test_unusable_question_count_gives_no_placeholders(count):
    raw = {"plan": {"pages": [{"name": "Visit", "section_brief": {"question_count": count}}]}}
    assert to_canonical_plan(raw)["sections"][0]["questions"] == []


def test_bare_questions_get_default_section():
    plan = to_canonical_plan(BARE_QUESTIONS)
    assert plan["sections"][0]["title"] == DEFAULT_SECTION_TITLE
    assert "options" not in plan["sections"][0]["questions"][0]


def test_free_text_never_carries_options():
    raw = {"rendered_pages": [{"name": "P", "questions": [
        {"question_text": "Email?", "question_type": "email", "options": ["a@b.c"]},
    ]}]}
    assert "options" not in _questions(to_canonical_plan(raw))[0]


def test_sections_win_over_other_shapes():
    raw = {"sections": [], "survey": {"pages": [{"controls": []}]}}
    assert detect_shape(raw) == "sections"
    assert to_canonical_plan(raw) is raw


def test_detection_table_order():
    assert [shape.name for shape in PLAN_SHAPES] == [
        "sections", "survey.pages", "rendered_pages", "generated_questions", "plan.pages",
    ]


@pytest.mark.parametrize("wrapper", ["data", "result", "survey_plan", "surveyPlan"])
def test_wrapped_payloads_are_unwrapped(wrapper):
    raw = {wrapper: RENDERED_PAGES, "status": {"code": "success"}}
    assert detect_shape(raw) == f"{wrapper}:rendered_pages"
    assert normalize_plan(raw)["sections"][0]["title"] == "Page 1"


def test_plan_wrapper_with_sections():
    raw = {"plan": {"sections": [{"title": "S", "questions": []}]}}
    assert detect_shape(raw) == "plan:sections"


def test_structured_wrapped_shape_beats_top_level_bare_questions():
    raw = {"questions": [{"text": "loose"}], "data": RENDERED_PAGES}
    assert detect_shape(raw) == "data:rendered_pages"


def test_unknown_payload_is_returned_and_logged():
    raw = {"hello": "world"}
    log = logging.getLogger("tests.plans")
    assert to_canonical_plan(raw, log=log) is raw
    assert detect_shape(raw) is None


def test_non_dict_passes_through():
    assert to_canonical_plan(["a"]) == ["a"]
    assert to_canonical_plan(None) is None


def test_boundary_rejects_unknown_payload_with_dump():
    with pytest.raises(PlanShapeError) as excinfo:
        normalize_plan({"hello": "x" * 500})
    assert "Received:" in str(excinfo.value)
    assert len(excinfo.value.received) <= 203


def test_boundary_rejects_bad_question():
    with pytest.raises(PlanShapeError):
        validate_plan({"sections": [{"title": "S", "questions": [{"text": 5, "type": "text"}]}]})

from __future__ import annotations

import pytest

from exam_authoring.core.questions import (
    parse_question,
    parse_questions,
    serialize_questions,
    total_points,
    validate_question,
)
from exam_authoring.models.schemas import MultipleChoiceQuestion, TrueFalseQuestion
from exam_authoring.utils.errors import QuestionValidationError

from exam_authoring.tests.factories import mc_question


def _fields(errors):
    return {e.field for e in errors}


def test_multiple_choice_requires_exactly_one_correct_option():
    none_correct = mc_question(
        options=[
            {"id": "1", "text": "A", "isCorrect": False},
            {"id": "2", "text": "B", "isCorrect": False},
        ]
    )
    both_correct = mc_question(
        options=[
            {"id": "1", "text": "A", "isCorrect": True},
            {"id": "2", "text": "B", "isCorrect": True},
        ]
    )
    assert "options" in _fields(validate_question(none_correct))
    assert "options" in _fields(validate_question(both_correct))
    assert validate_question(mc_question()) == []


def test_multiple_choice_needs_two_options():
    q = mc_question(options=[{"id": "1", "text": "A", "isCorrect": True}])
    assert "options" in _fields(validate_question(q))


def test_prompt_must_not_be_blank():
    errors = validate_question(mc_question(question="   "))
    assert [e.field for e in errors] == ["question"]
    assert "empty" in errors[0].reason


@pytest.mark.parametrize("points", [0, -1, 1.5, "3", True])
def test_points_must_be_positive_integer(points):
    assert "points" in _fields(validate_question(mc_question(points=points)))


def test_true_false_requires_boolean_answer():
    base = {"id": "t1", "order": 1, "type": "true_false", "question": "Water is wet.", "points": 1}
    assert "correctAnswer" in _fields(validate_question(base))
    assert "correctAnswer" in _fields(validate_question({**base, "correctAnswer": "yes"}))
    assert validate_question({**base, "correctAnswer": False}) == []


def test_unknown_type_reports_type_field():
    errors = validate_question({"id": "x", "order": 1, "type": "matching", "question": "?", "points": 1})
    assert _fields(errors) == {"type"}


def test_sample_answer_is_optional_for_open_kinds():
    for kind in ("identification", "essay"):
        q = {"id": "o1", "order": 1, "type": kind, "question": "Explain.", "points": 3}
        assert validate_question(q) == []
        assert validate_question({**q, "sampleAnswer": "guidance"}) == []


def test_draft_mode_does_not_need_id_or_order():
    draft = mc_question()
    draft.pop("id")
    draft.pop("order")
    assert validate_question(draft, draft=True) == []
    assert _fields(validate_question(draft)) >= {"id", "order"}


def test_parse_question_returns_typed_variant():
    q = parse_question(mc_question())
    assert isinstance(q, MultipleChoiceQuestion)
    tf = parse_question(
        {"id": "t", "order": 2, "type": "true_false", "question": "S", "points": 2, "correctAnswer": True}
    )
    assert isinstance(tf, TrueFalseQuestion)
    assert tf.correct_answer is True


def test_parse_questions_collects_errors_with_index_prefix():
    with pytest.raises(QuestionValidationError) as ei:
        parse_questions([mc_question(), mc_question(points=0), mc_question(question="")])
    fields = _fields(ei.value.errors)
    assert "questions[1].points" in fields
    assert "questions[2].question" in fields


def test_serialized_form_uses_camel_case_keys():
    wire = serialize_questions([parse_question(mc_question())])[0]
    assert wire["options"][0]["isCorrect"] is True
    assert "is_correct" not in wire["options"][0]
    assert wire["order"] == 1


def test_total_points_sums_point_values():
    qs = parse_questions([mc_question(points=2), mc_question(id="q2", order=2, points=5)])
    assert total_points(qs) == 7
    assert total_points([]) == 0

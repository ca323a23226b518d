from __future__ import annotations

from datetime import datetime, timezone

import pytest

from exam_authoring.core.questions import parse_questions
from exam_authoring.core.settings_resolver import resolve_settings
from exam_authoring.utils.errors import FieldErrors
from exam_authoring.tests.factories import mc_question, valid_settings


def _questions(*points):
    return parse_questions(
        [mc_question(id=f"q{i}", order=i + 1, points=p) for i, p in enumerate(points)]
    )


def _error_fields(raw, questions=None):
    with pytest.raises(FieldErrors) as ei:
        resolve_settings(questions if questions is not None else _questions(2), raw)
    return {e.field for e in ei.value.errors}


@pytest.mark.parametrize("points", [(), (1,), (2, 3, 10), (5, 5, 5, 5)])
def test_total_points_is_sum_of_question_points(points):
    out = resolve_settings(_questions(*points), valid_settings())
    assert out.total_points == sum(points)


def test_caller_supplied_total_is_ignored():
    out = resolve_settings(_questions(2, 3), valid_settings(totalPoints=999))
    assert out.total_points == 5
    assert out.to_wire()["totalPoints"] == 5


def test_until_before_from_is_reported_on_available_until():
    raw = valid_settings(availableFrom="2025-01-10T00:00", availableUntil="2025-01-01T00:00")
    assert _error_fields(raw) == {"availableUntil"}


def test_equal_window_bounds_are_rejected():
    raw = valid_settings(availableFrom="2025-01-01T00:00:00Z", availableUntil="2025-01-01T00:00:00Z")
    assert "availableUntil" in _error_fields(raw)


def test_naive_timestamps_are_taken_as_utc():
    out = resolve_settings(_questions(1), valid_settings(availableFrom="2025-01-01T08:00"))
    assert out.available_from == datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


def test_all_violations_are_reported_together():
    raw = {
        "timeLimit": 0,
        "passingScore": 50,
        "availableFrom": "2025-01-10T00:00",
        "availableUntil": "2025-01-01T00:00",
        "allowMultipleAttempts": True,
    }
    assert _error_fields(raw) == {"timeLimit", "passingScore", "availableUntil", "maxAttempts"}


def test_missing_required_fields():
    assert _error_fields({}) == {"timeLimit", "availableFrom", "availableUntil"}


def test_passing_score_bounds():
    assert resolve_settings(_questions(4), valid_settings(passingScore=4)).passing_score == 4
    assert resolve_settings(_questions(4), valid_settings(passingScore=0)).passing_score == 0
    assert _error_fields(valid_settings(passingScore=5), _questions(4)) == {"passingScore"}
    assert _error_fields(valid_settings(passingScore=-1), _questions(4)) == {"passingScore"}


def test_max_attempts_required_only_with_multiple_attempts():
    out = resolve_settings(_questions(1), valid_settings(allowMultipleAttempts=False, maxAttempts=3))
    assert out.max_attempts is None
    out = resolve_settings(_questions(1), valid_settings(allowMultipleAttempts=True, maxAttempts=3))
    assert out.allow_multiple_attempts is True
    assert out.max_attempts == 3
    assert _error_fields(valid_settings(allowMultipleAttempts=True, maxAttempts=0)) == {"maxAttempts"}


def test_snake_case_keys_are_accepted():
    raw = {
        "time_limit": 45,
        "available_from": "2025-02-01T00:00:00Z",
        "available_until": "2025-02-02T00:00:00Z",
        "randomize_questions": True,
    }
    out = resolve_settings(_questions(3), raw)
    assert out.time_limit == 45
    assert out.randomize_questions is True


def test_non_boolean_flag_is_a_field_error():
    assert "randomizeQuestions" in _error_fields(valid_settings(randomizeQuestions="yes"))


@pytest.mark.parametrize("raw", [[1, 2], "abc", 7])
def test_non_object_settings_is_a_field_error(raw):
    assert _error_fields(raw) == {"settings"}


@pytest.mark.parametrize("value", [True, "30", 30.0])
def test_integer_settings_are_strict(value):
    raw = valid_settings(timeLimit=value, passingScore=value, allowMultipleAttempts=True, maxAttempts=value)
    fields = _error_fields(raw)
    assert fields == {"timeLimit", "passingScore", "maxAttempts"}

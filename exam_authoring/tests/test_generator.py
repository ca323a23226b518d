import json
import logging

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError

from exam_authoring.models.schemas import Difficulty, GenerationRequest, QuestionType
from exam_authoring.services.generator import (
    ContentGenerator,
    parse_generated_questions,
    strip_code_fences,
)
from exam_authoring.utils.errors import (
    ErrorCode,
    GenerationParseError,
    GenerationServiceError,
    NoContentError,
)


class _FakeMessage:
    def __init__(self, content: str):
        self.content = content


class _FakeChoice:
    def __init__(self, content: str):
        self.message = _FakeMessage(content)


class _FakeResponse:
    def __init__(self, content: str):
        self.choices = [_FakeChoice(content)]
        self.usage = None


class _FakeChatCompletions:
    def __init__(self, content: str, errors=None):
        self._content = content
        self._errors = list(errors or [])
        self.calls = []

    def create(self, *args, **kwargs):  # noqa: ANN001, ANN002, ANN003
        self.calls.append(kwargs)
        if self._errors:
            raise self._errors.pop(0)
        return _FakeResponse(self._content)


class _FakeChat:
    def __init__(self, content: str, errors=None):
        self.completions = _FakeChatCompletions(content, errors)


class _FakeClient:
    def __init__(self, content: str = "", errors=None):
        self.chat = _FakeChat(content, errors)


_REQ = httpx.Request("POST", "https://llm.example/v1/chat/completions")

_MC = {
    "type": "multiple_choice",
    "question": "Largest planet?",
    "points": 2,
    "difficulty": "easy",
    "options": [
        {"id": "1", "text": "Jupiter", "isCorrect": True},
        {"id": "2", "text": "Mars", "isCorrect": False},
    ],
}
_TF = {"type": "true_false", "question": "The sun is a star.", "correctAnswer": True}
_ESSAY = {"type": "essay", "question": "Explain orbits."}


def _request(**overrides) -> GenerationRequest:
    data = {
        "material": "The solar system has eight planets.",
        "numberOfQuestions": 2,
        "questionTypes": ["multiple_choice", "true_false"],
        "difficulty": "medium",
        "subject": "Science",
        "gradeLevel": "Grade 7",
    }
    data.update(overrides)
    return GenerationRequest(**data)


def _parse(text: str, types=("multiple_choice", "true_false", "identification", "essay")):
    return parse_generated_questions(
        text,
        requested_types=[QuestionType(t) for t in types],
        difficulty=Difficulty.MEDIUM,
        id_factory=lambda i: f"ai-{i}",
    )


def test_strip_code_fences_variants():
    assert strip_code_fences('```json\n[1]\n```') == "[1]"
    assert strip_code_fences("```\n[1]\n```") == "[1]"
    assert strip_code_fences("  [1]  ") == "[1]"


def test_fenced_response_parses():
    text = "```json\n" + json.dumps([_MC, _TF]) + "\n```"
    out = _parse(text)
    assert [q.type for q in out] == ["multiple_choice", "true_false"]
    assert [q.id for q in out] == ["ai-0", "ai-1"]
    assert [q.order for q in out] == [1, 2]


def test_prose_response_is_parse_error_with_raw_text():
    prose = "Sure! Here are some great questions about planets."
    with pytest.raises(GenerationParseError) as ei:
        _parse(prose)
    assert ei.value.raw_response == prose
    assert ei.value.details()["raw_response"] == prose
    assert ei.value.code == ErrorCode.GENERATION_PARSE_FAILED


def test_point_and_difficulty_defaults_by_kind():
    out = _parse(json.dumps([_TF, _ESSAY, {"type": "identification", "question": "Name it.", "points": "x"}]))
    assert [q.points for q in out] == [2, 10, 3]
    assert all(q.difficulty == Difficulty.MEDIUM for q in out)


def test_questions_wrapper_object_is_accepted():
    out = _parse(json.dumps({"questions": [_TF]}))
    assert len(out) == 1


@pytest.mark.parametrize("payload", ["{}", "[]", '"text"', "42"])
def test_non_array_or_empty_payload_is_parse_error(payload):
    with pytest.raises(GenerationParseError):
        _parse(payload)


def test_invalid_element_fails_whole_attempt():
    bad_mc = {**_MC, "options": [{"id": "1", "text": "A", "isCorrect": False}, {"id": "2", "text": "B"}]}
    with pytest.raises(GenerationParseError) as ei:
        _parse(json.dumps([_TF, bad_mc]))
    fields = [e["field"] for e in ei.value.details()["fieldErrors"]]
    assert fields == ["[1].options"]


def test_unrequested_kind_is_rejected():
    with pytest.raises(GenerationParseError) as ei:
        _parse(json.dumps([_TF, _ESSAY]), types=("true_false",))
    assert ei.value.errors[0].field == "[1].type"


def test_options_without_ids_get_positional_ids():
    mc = {**_MC, "options": [{"text": "A", "isCorrect": True}, {"text": "B", "isCorrect": False}]}
    out = _parse(json.dumps([mc]))
    assert [o.id for o in out[0].options] == ["1", "2"]


def test_generate_with_fake_client_logs_usage(caplog):
    content = json.dumps([_MC, _TF])
    client = _FakeClient(content)
    g = ContentGenerator(client=client)
    with caplog.at_level(logging.INFO, logger="exam_authoring.services.generator"):
        out = g.generate(_request())
    assert len(out) == 2
    assert all(q.id.startswith("ai-") for q in out)
    assert any('"event":"generation_usage"' in r.getMessage() for r in caplog.records)
    prompt = client.chat.completions.calls[0]["messages"][1]["content"]
    assert "The solar system has eight planets." in prompt
    assert "For essay" not in prompt


def _mismatch_events(caplog):
    marker = '"event":"generation_count_mismatch"'
    return [json.loads(r.getMessage()) for r in caplog.records if marker in r.getMessage()]


def test_count_mismatch_compares_against_capped_count(caplog):
    g = ContentGenerator(client=_FakeClient(json.dumps([_MC, _TF])))
    g.max_questions = 2
    with caplog.at_level(logging.INFO, logger="exam_authoring.services.generator"):
        g.generate(_request(numberOfQuestions=40))
    assert _mismatch_events(caplog) == []

    g.max_questions = 3
    with caplog.at_level(logging.INFO, logger="exam_authoring.services.generator"):
        g.generate(_request(numberOfQuestions=40))
    events = _mismatch_events(caplog)
    assert len(events) == 1
    assert events[0]["requested"] == 3 and events[0]["received"] == 2


def test_empty_material_fails_before_any_call():
    client = _FakeClient("[]")
    g = ContentGenerator(client=client)
    with pytest.raises(NoContentError):
        g.generate(_request(material="   "))
    assert client.chat.completions.calls == []


def test_material_is_truncated_to_cap(monkeypatch):
    monkeypatch.setenv("SOURCE_MATERIAL_MAX_CHARS", "50")
    client = _FakeClient(json.dumps([_TF]))
    g = ContentGenerator(client=client)
    g.generate(_request(material="x" * 80 + "TAIL", questionTypes=["true_false"]))
    prompt = client.chat.completions.calls[0]["messages"][1]["content"]
    assert "x" * 50 in prompt
    assert "TAIL" not in prompt


def test_timeout_surfaces_as_service_error():
    client = _FakeClient(errors=[APITimeoutError(request=_REQ)])
    g = ContentGenerator(client=client)
    with pytest.raises(GenerationServiceError) as ei:
        g.generate(_request())
    assert ei.value.timeout is True
    assert ei.value.status_code == 504
    # timeouts are never retried
    assert len(client.chat.completions.calls) == 1


def test_connect_failure_is_retried_once(monkeypatch):
    monkeypatch.setenv("GENERATION_CONNECT_RETRIES", "2")
    monkeypatch.setattr("time.sleep", lambda _s: None)
    client = _FakeClient(json.dumps([_TF]), errors=[APIConnectionError(request=_REQ)])
    g = ContentGenerator(client=client)
    out = g.generate(_request(questionTypes=["true_false"], numberOfQuestions=1))
    assert len(out) == 1
    assert len(client.chat.completions.calls) == 2


def test_persistent_connect_failure_is_service_error(monkeypatch):
    monkeypatch.setenv("GENERATION_CONNECT_RETRIES", "2")
    monkeypatch.setattr("time.sleep", lambda _s: None)
    client = _FakeClient(errors=[APIConnectionError(request=_REQ), APIConnectionError(request=_REQ)])
    g = ContentGenerator(client=client)
    with pytest.raises(GenerationServiceError) as ei:
        g.generate(_request())
    assert ei.value.timeout is False
    assert ei.value.status_code == 502


def test_parse_failure_is_not_retried():
    client = _FakeClient("not json")
    g = ContentGenerator(client=client)
    with pytest.raises(GenerationParseError):
        g.generate(_request())
    assert len(client.chat.completions.calls) == 1


def test_missing_api_key_is_service_error(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    g = ContentGenerator()
    g.api_key = None
    with pytest.raises(GenerationServiceError):
        g.generate(_request())

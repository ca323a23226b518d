"""
Question model validation surface.

Manual drafts, generated content and records re-read from the store all go
through the same adapters here, so a question accepted in one path is
accepted in every other.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence

from pydantic import TypeAdapter, ValidationError

from exam_authoring.models.schemas import Question, QuestionDraft, QuestionType
from exam_authoring.utils.errors import FieldError, QuestionValidationError

_QUESTION_ADAPTER: TypeAdapter = TypeAdapter(Question)
_DRAFT_ADAPTER: TypeAdapter = TypeAdapter(QuestionDraft)
_TAGS = {t.value for t in QuestionType}


def _format_loc(loc: Sequence[Any]) -> str:
    parts = list(loc)
    # Discriminated unions prefix the location with the tag value.
    if parts and isinstance(parts[0], str) and parts[0] in _TAGS:
        parts = parts[1:]
    out = ""
    for p in parts:
        if isinstance(p, int):
            out += f"[{p}]"
        else:
            out += f".{p}" if out else str(p)
    return out


def field_errors_from_validation(exc: ValidationError) -> List[FieldError]:
    errors: List[FieldError] = []
    for err in exc.errors():
        etype = str(err.get("type") or "")
        if etype.startswith("union_tag"):
            errors.append(FieldError(field="type", reason=f"must be one of {sorted(_TAGS)}"))
            continue
        msg = str(err.get("msg") or "invalid value")
        # Strip pydantic's "Value error, " prefix from custom validators.
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        errors.append(FieldError(field=_format_loc(err.get("loc") or ()), reason=msg))
    return errors


def validate_question(data: Any, *, draft: bool = False) -> List[FieldError]:
    """
    Validate a question shape without side effects.

    Returns an empty list when the question is valid, otherwise every
    field-level violation found. `draft=True` validates a question that has
    not yet been assigned an identifier and ordinal position.
    """
    if not isinstance(data, Mapping):
        return [FieldError(field="", reason="question must be an object")]
    adapter = _DRAFT_ADAPTER if draft else _QUESTION_ADAPTER
    try:
        adapter.validate_python(dict(data))
    except ValidationError as exc:
        return field_errors_from_validation(exc)
    return []


def parse_question(data: Any, *, draft: bool = False):
    """Validate and build a typed question (or draft); raise QuestionValidationError."""
    if not isinstance(data, Mapping):
        raise QuestionValidationError([FieldError(field="", reason="question must be an object")])
    adapter = _DRAFT_ADAPTER if draft else _QUESTION_ADAPTER
    try:
        return adapter.validate_python(dict(data))
    except ValidationError as exc:
        raise QuestionValidationError(field_errors_from_validation(exc)) from exc


def parse_questions(items: Iterable[Any], *, field: str = "questions") -> list:
    """Parse a whole list, collecting every element's errors before failing."""
    if items is not None and not isinstance(items, (list, tuple)):
        raise QuestionValidationError([FieldError(field=field, reason="must be a list")])
    out = []
    errors: List[FieldError] = []
    for i, item in enumerate(items or []):
        try:
            out.append(parse_question(item))
        except QuestionValidationError as exc:
            errors.extend(e.prefixed(f"{field}[{i}]") for e in exc.errors)
    if errors:
        raise QuestionValidationError(errors)
    return out


def serialize_questions(questions: Iterable[Any]) -> List[dict]:
    return [q.to_wire() for q in questions]


def total_points(questions: Iterable[Any]) -> int:
    return sum(int(q.points) for q in questions)

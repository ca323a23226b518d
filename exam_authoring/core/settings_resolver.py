from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import StrictBool, StrictInt, TypeAdapter, ValidationError

from exam_authoring.core.questions import total_points
from exam_authoring.models.schemas import ContentSettings
from exam_authoring.utils.errors import FieldError, FieldErrors

_INT = TypeAdapter(StrictInt)
_BOOL = TypeAdapter(StrictBool)
_DATETIME = TypeAdapter(datetime)

_ALIASES = {
    "timeLimit": ("timeLimit", "time_limit"),
    "passingScore": ("passingScore", "passing_score"),
    "availableFrom": ("availableFrom", "available_from"),
    "availableUntil": ("availableUntil", "available_until"),
    "randomizeQuestions": ("randomizeQuestions", "randomize_questions"),
    "allowMultipleAttempts": ("allowMultipleAttempts", "allow_multiple_attempts"),
    "maxAttempts": ("maxAttempts", "max_attempts"),
}


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        if key in raw:
            value = raw[key]
            if isinstance(value, str) and not value.strip():
                return None
            return value
    return None


def _first_message(exc: ValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "invalid value"
    return str(errs[0].get("msg") or "invalid value")


def _parse(adapter: TypeAdapter, raw: Mapping[str, Any], field: str, errors: List[FieldError]) -> Any:
    value = _pick(raw, field)
    if value is None:
        return None
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        errors.append(FieldError(field=field, reason=_first_message(exc)))
        return None


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps are taken as UTC so windows can always be compared.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_settings(questions: Iterable[Any], raw_settings: Optional[Mapping[str, Any]]) -> ContentSettings:
    """
    Derive the content settings for a question list.

    `totalPoints` is always recomputed from the questions; any caller-supplied
    value is ignored. Every violation is collected and raised together as
    FieldErrors.
    """
    if raw_settings is None:
        raw_settings = {}
    if not isinstance(raw_settings, Mapping):
        raise FieldErrors([FieldError(field="settings", reason="must be an object")], message="Invalid settings")
    raw = dict(raw_settings)
    errors: List[FieldError] = []
    total = total_points(questions)

    time_limit = _parse(_INT, raw, "timeLimit", errors)
    if time_limit is None and not any(e.field == "timeLimit" for e in errors):
        errors.append(FieldError(field="timeLimit", reason="time limit is required"))
    elif time_limit is not None and time_limit < 1:
        errors.append(FieldError(field="timeLimit", reason="time limit must be at least 1 minute"))

    passing = _parse(_INT, raw, "passingScore", errors)
    if passing is not None and not (0 <= passing <= total):
        errors.append(
            FieldError(field="passingScore", reason=f"passing score must be between 0 and {total}")
        )

    available_from = _as_utc(_parse(_DATETIME, raw, "availableFrom", errors))
    available_until = _as_utc(_parse(_DATETIME, raw, "availableUntil", errors))
    if available_from is None and not any(e.field == "availableFrom" for e in errors):
        errors.append(FieldError(field="availableFrom", reason="availability start is required"))
    if available_until is None and not any(e.field == "availableUntil" for e in errors):
        errors.append(FieldError(field="availableUntil", reason="availability end is required"))
    if available_from is not None and available_until is not None and available_from >= available_until:
        errors.append(FieldError(field="availableUntil", reason="must be after availableFrom"))

    randomize = _parse(_BOOL, raw, "randomizeQuestions", errors)
    multiple = _parse(_BOOL, raw, "allowMultipleAttempts", errors)
    max_attempts = _parse(_INT, raw, "maxAttempts", errors)
    if multiple:
        if max_attempts is None and not any(e.field == "maxAttempts" for e in errors):
            errors.append(
                FieldError(field="maxAttempts", reason="required when multiple attempts are allowed")
            )
        elif max_attempts is not None and max_attempts < 1:
            errors.append(FieldError(field="maxAttempts", reason="must be at least 1"))
    else:
        # The attempt cap only means something alongside the flag.
        max_attempts = None

    if errors:
        raise FieldErrors(errors, message="Invalid settings")

    return ContentSettings(
        total_points=total,
        time_limit=time_limit,
        passing_score=passing,
        available_from=available_from,
        available_until=available_until,
        randomize_questions=bool(randomize),
        allow_multiple_attempts=bool(multiple),
        max_attempts=max_attempts,
    )

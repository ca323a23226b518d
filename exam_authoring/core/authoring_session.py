"""
Authoring session: sequences details, question entry (manual or generated),
settings and terms acceptance into one creation call.

Nothing is persisted until `submit()`; the session holds the whole draft in
memory and a failed submit leaves it editable.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError

from exam_authoring.core.publication import ContentKind, PublicationWorkflow
from exam_authoring.core.question_builder import ManualQuestionBuilder
from exam_authoring.core.questions import (
    field_errors_from_validation,
    parse_questions,
    serialize_questions,
)
from exam_authoring.core.settings_resolver import resolve_settings
from exam_authoring.models.schemas import (
    AssessmentDetails,
    ContentSettings,
    ExaminationDetails,
    GenerationMethod,
    GenerationRequest,
)
from exam_authoring.utils.errors import (
    FieldError,
    FieldErrors,
    QuestionValidationError,
    SessionStepError,
)
from exam_authoring.utils.observability import log_event
from exam_authoring.utils.user_context import Principal

logger = logging.getLogger(__name__)

DETAILS_MODELS = {
    ContentKind.ASSESSMENT: AssessmentDetails,
    ContentKind.EXAMINATION: ExaminationDetails,
}


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _under_settings(error: FieldError) -> FieldError:
    # A non-object settings value is already reported on `settings` itself.
    return error if error.field == "settings" else error.prefixed("settings")


def validate_details(kind: ContentKind, raw: Mapping[str, Any]):
    """Validate the identity/classification fields for `kind`; raise FieldErrors."""
    model = DETAILS_MODELS[ContentKind(kind)]
    try:
        return model.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise FieldErrors(field_errors_from_validation(exc), message="Invalid details") from exc


def create_content(
    principal: Principal,
    kind: ContentKind,
    draft: Mapping[str, Any],
    *,
    workflow: PublicationWorkflow,
) -> Dict[str, Any]:
    """
    Validate a complete draft and persist it with exactly one creation call.

    `draft` is flat: the details fields, `questions`, `settings`,
    `terms_accepted` and `generation_method` (camelCase keys accepted).
    Every violation across details, questions, settings and terms is raised
    together as FieldErrors; nothing is written in that case.
    """
    kind = ContentKind(kind)
    raw = dict(draft or {})
    errors: List[FieldError] = []

    details = None
    try:
        details = validate_details(kind, raw)
    except FieldErrors as exc:
        errors.extend(exc.errors)

    questions: list = []
    questions_ok = True
    raw_questions = raw.get("questions")
    if raw_questions is not None and not isinstance(raw_questions, list):
        errors.append(FieldError(field="questions", reason="must be a list"))
        questions_ok = False
    else:
        try:
            questions = parse_questions(raw_questions or [])
        except QuestionValidationError as exc:
            errors.extend(exc.errors)
            questions_ok = False
        if questions_ok and not questions:
            errors.append(FieldError(field="questions", reason="at least one question is required"))

    settings: Optional[ContentSettings] = None
    try:
        settings = resolve_settings(questions, raw.get("settings"))
    except FieldErrors as exc:
        for e in exc.errors:
            # The passing-score bound depends on a valid question list.
            if not questions_ok and e.field == "passingScore":
                continue
            errors.append(_under_settings(e))

    if _first_present(raw, "terms_accepted", "termsAccepted") is not True:
        errors.append(FieldError(field="terms_accepted", reason="terms must be accepted"))

    raw_method = _first_present(raw, "generation_method", "generationMethod") or GenerationMethod.MANUAL.value
    method: Optional[GenerationMethod] = None
    try:
        method = GenerationMethod(str(raw_method))
    except ValueError:
        allowed = ", ".join(m.value for m in GenerationMethod)
        errors.append(FieldError(field="generation_method", reason=f"must be one of {allowed}"))

    if errors:
        log_event(
            logger,
            "content_validation_failed",
            kind=kind.value,
            actor=principal.user_id if principal else None,
            errors=len(errors),
        )
        raise FieldErrors(errors)

    record: Dict[str, Any] = details.model_dump(mode="json")
    record.update(
        {
            "questions": serialize_questions(questions),
            "settings": settings.to_wire(),
            "generation_method": method.value,
            "terms_accepted": True,
        }
    )
    return workflow.submit(principal, kind, record)


class SessionStep(str, Enum):
    DETAILS = "details"
    QUESTIONS = "questions"
    SETTINGS = "settings"
    TERMS = "terms"
    SUBMITTED = "submitted"


_STEP_ORDER = [
    SessionStep.DETAILS,
    SessionStep.QUESTIONS,
    SessionStep.SETTINGS,
    SessionStep.TERMS,
    SessionStep.SUBMITTED,
]


class AuthoringSession:
    """Single-author wizard over one content item."""

    def __init__(
        self,
        principal: Principal,
        kind: ContentKind,
        *,
        workflow: Optional[PublicationWorkflow] = None,
        generator: Any = None,
        builder: Optional[ManualQuestionBuilder] = None,
    ):
        self.principal = principal
        self.kind = ContentKind(kind)
        self.step = SessionStep.DETAILS
        self.details: Optional[Dict[str, Any]] = None
        self.method: Optional[GenerationMethod] = None
        self.builder = builder if builder is not None else ManualQuestionBuilder()
        self.raw_settings: Dict[str, Any] = {}
        self.settings: Optional[ContentSettings] = None
        self.terms_accepted = False
        self.result: Optional[Dict[str, Any]] = None
        self._workflow = workflow
        self._generator = generator
        self._generated_ids: Set[str] = set()
        self._manual_ids: Set[str] = set()

    # --- helpers ---
    def _require_step(self, *allowed: SessionStep) -> None:
        if self.step not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise SessionStepError(
                [FieldError(field="step", reason=f"expected step {names}, session is at {self.step.value}")],
                message="Operation not allowed at this step",
            )

    @property
    def questions(self) -> list:
        return self.builder.questions

    @property
    def generation_method(self) -> GenerationMethod:
        ai = bool(self._generated_ids)
        manual = bool(self._manual_ids)
        if ai and manual:
            return GenerationMethod.MIXED
        if ai:
            return GenerationMethod.AI
        return GenerationMethod.MANUAL

    # --- steps ---
    def set_details(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        self._require_step(SessionStep.DETAILS)
        details = validate_details(self.kind, raw)
        self.details = details.model_dump(mode="json")
        self.step = SessionStep.QUESTIONS
        return dict(self.details)

    def choose_method(self, method: Any) -> GenerationMethod:
        self._require_step(SessionStep.QUESTIONS)
        try:
            chosen = GenerationMethod(str(getattr(method, "value", method)))
        except ValueError:
            chosen = None
        if chosen not in (GenerationMethod.AI, GenerationMethod.MANUAL):
            raise FieldErrors([FieldError(field="method", reason="must be ai or manual")])
        self.method = chosen
        return chosen

    def _require_method(self, method: GenerationMethod) -> None:
        if self.method != method:
            raise SessionStepError(
                [FieldError(field="method", reason=f"choose method {method.value} first")],
                message="Operation not allowed for the chosen method",
            )

    def generate(self, request: GenerationRequest) -> list:
        """Generate questions and append them to the list; nothing is added on failure."""
        self._require_step(SessionStep.QUESTIONS)
        self._require_method(GenerationMethod.AI)
        if self._generator is None:
            from exam_authoring.services.generator import get_content_generator

            self._generator = get_content_generator()
        generated = self._generator.generate(request)
        self.builder.extend(generated)
        self._generated_ids.update(q.id for q in generated)
        return self.questions

    def add_question(self, draft: Optional[Dict[str, Any]] = None) -> list:
        self._require_step(SessionStep.QUESTIONS)
        self._require_method(GenerationMethod.MANUAL)
        before = {q.id for q in self.builder.questions}
        questions = self.builder.add_question(draft)
        self._manual_ids.update(q.id for q in questions if q.id not in before)
        return questions

    def remove_question(self, question_id: str) -> list:
        self._require_step(SessionStep.QUESTIONS)
        self._generated_ids.discard(question_id)
        self._manual_ids.discard(question_id)
        return self.builder.remove_question(question_id)

    def set_settings(self, raw: Mapping[str, Any]) -> ContentSettings:
        self._require_step(SessionStep.QUESTIONS, SessionStep.SETTINGS)
        if not len(self.builder):
            raise FieldErrors([FieldError(field="questions", reason="at least one question is required")])
        self.step = SessionStep.SETTINGS
        resolved = resolve_settings(self.builder.questions, raw)
        self.raw_settings = dict(raw or {})
        self.settings = resolved
        self.step = SessionStep.TERMS
        return resolved

    def accept_terms(self) -> None:
        self._require_step(SessionStep.TERMS)
        self.terms_accepted = True

    def back(self) -> SessionStep:
        """Return to the previous step; accepted terms must be re-accepted."""
        if self.step in (SessionStep.DETAILS, SessionStep.SUBMITTED):
            self._require_step(*_STEP_ORDER[1:-1])
        idx = _STEP_ORDER.index(self.step)
        self.step = _STEP_ORDER[idx - 1]
        if self.step != SessionStep.TERMS:
            self.terms_accepted = False
        if self.step == SessionStep.DETAILS:
            self.details = None
        return self.step

    def to_draft(self) -> Dict[str, Any]:
        return {
            **(self.details or {}),
            "questions": serialize_questions(self.builder.questions),
            "settings": dict(self.raw_settings),
            "terms_accepted": self.terms_accepted,
            "generation_method": self.generation_method.value,
        }

    def submit(self) -> Dict[str, Any]:
        """Persist through the publication workflow. The session stays at `terms` on failure."""
        self._require_step(SessionStep.TERMS)
        if not self.terms_accepted:
            raise FieldErrors([FieldError(field="terms_accepted", reason="terms must be accepted")])
        workflow = self._workflow if self._workflow is not None else PublicationWorkflow()
        self.result = create_content(self.principal, self.kind, self.to_draft(), workflow=workflow)
        self.step = SessionStep.SUBMITTED
        return self.result


def prepare_revision(questions: Any, raw_settings: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate a resubmitted question list and settings; return their stored forms."""
    errors: List[FieldError] = []
    parsed: list = []
    try:
        parsed = parse_questions(questions or [])
    except QuestionValidationError as exc:
        errors.extend(exc.errors)
    else:
        if not parsed:
            errors.append(FieldError(field="questions", reason="at least one question is required"))
    settings: Optional[ContentSettings] = None
    try:
        settings = resolve_settings(parsed, raw_settings)
    except FieldErrors as exc:
        errors.extend(_under_settings(e) for e in exc.errors)
    if errors:
        raise FieldErrors(errors)
    return {"questions": serialize_questions(parsed), "settings": settings.to_wire()}

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from exam_authoring.core.questions import parse_question
from exam_authoring.models.schemas import QUESTION_CLASSES, QuestionType


def _new_question_id() -> str:
    return f"q-{uuid.uuid4().hex[:12]}"


def blank_draft() -> Dict[str, Any]:
    """The draft a fresh builder starts from: a two-option multiple choice."""
    return {
        "type": QuestionType.MULTIPLE_CHOICE.value,
        "question": "",
        "points": 1,
        "difficulty": "medium",
        "options": [
            {"id": "1", "text": "", "isCorrect": False},
            {"id": "2", "text": "", "isCorrect": False},
        ],
    }


class ManualQuestionBuilder:
    """
    Accretes a question list one validated draft at a time.

    State is the accepted list plus the in-progress draft. Ordinal positions
    are kept contiguous (1..n). Duplicate prompts are allowed.
    """

    def __init__(
        self,
        questions: Optional[Iterable[Any]] = None,
        *,
        id_factory: Callable[[], str] = _new_question_id,
    ):
        self._id_factory = id_factory
        self._questions: List[Any] = []
        self.draft: Dict[str, Any] = blank_draft()
        if questions:
            self.extend(questions)

    @property
    def questions(self) -> List[Any]:
        return list(self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    # --- draft editing ---
    def update_draft(self, **fields: Any) -> Dict[str, Any]:
        self.draft.update(fields)
        if "type" in fields:
            self._reshape_draft_for_type(str(fields["type"]))
        return dict(self.draft)

    def _reshape_draft_for_type(self, qtype: str) -> None:
        if qtype == QuestionType.MULTIPLE_CHOICE.value:
            self.draft.setdefault("options", blank_draft()["options"])
            self.draft.pop("correctAnswer", None)
            self.draft.pop("sampleAnswer", None)
        elif qtype == QuestionType.TRUE_FALSE.value:
            self.draft.pop("options", None)
            self.draft.pop("sampleAnswer", None)
        else:
            self.draft.pop("options", None)
            self.draft.pop("correctAnswer", None)

    def add_option(self, text: str = "") -> str:
        options = list(self.draft.get("options") or [])
        existing = {str(o.get("id")) for o in options}
        n = len(options) + 1
        while str(n) in existing:
            n += 1
        options.append({"id": str(n), "text": text, "isCorrect": False})
        self.draft["options"] = options
        return str(n)

    def update_option(self, option_id: str, text: str) -> None:
        self.draft["options"] = [
            {**o, "text": text} if str(o.get("id")) == option_id else o
            for o in (self.draft.get("options") or [])
        ]

    def remove_option(self, option_id: str) -> None:
        self.draft["options"] = [
            o for o in (self.draft.get("options") or []) if str(o.get("id")) != option_id
        ]

    def mark_correct(self, option_id: str) -> None:
        """Mark one option correct and clear the others."""
        self.draft["options"] = [
            {**o, "isCorrect": str(o.get("id")) == option_id}
            for o in (self.draft.get("options") or [])
        ]

    # --- list operations ---
    def add_question(self, draft: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Validate `draft` (defaults to the in-progress draft) and append it.

        Raises QuestionValidationError and leaves the list unchanged on failure.
        The in-progress draft is reset after a successful add.
        """
        use_own_draft = draft is None
        source = dict(self.draft if use_own_draft else draft)
        source.pop("id", None)
        source.pop("order", None)
        parsed = parse_question(source, draft=True)
        cls = QUESTION_CLASSES[QuestionType(parsed.type)]
        question = cls.model_validate(
            {**parsed.to_wire(), "id": self._id_factory(), "order": len(self._questions) + 1}
        )
        self._questions.append(question)
        if use_own_draft:
            self.draft = blank_draft()
        return self.questions

    def extend(self, questions: Iterable[Any]) -> List[Any]:
        """Append already-validated questions, renumbering their positions."""
        for q in questions:
            self._questions.append(q.model_copy(update={"order": len(self._questions) + 1}))
        return self.questions

    def remove_question(self, question_id: str) -> List[Any]:
        kept = [q for q in self._questions if q.id != question_id]
        self._questions = [
            q if q.order == i else q.model_copy(update={"order": i})
            for i, q in enumerate(kept, start=1)
        ]
        return self.questions

    def clear(self) -> None:
        self._questions = []
        self.draft = blank_draft()

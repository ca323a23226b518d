"""
Publication workflow.

Assessments (non-gated) are published in the same write that creates them.
Examinations (gated) are created `pending` and move to `approved` or
`rejected` by an administrator. Every move goes through `next_status`, and
decisions are committed with a conditional write so that of two concurrent
deciders exactly one wins.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from exam_authoring.services.content_store import ContentStore, get_content_store
from exam_authoring.utils.errors import (
    ContentNotFoundError,
    FieldError,
    FieldErrors,
    InvalidTransitionError,
    UnauthorizedError,
)
from exam_authoring.utils.observability import log_event, trace_span
from exam_authoring.utils.settings import get_settings
from exam_authoring.utils.user_context import Principal, Role, require_role

logger = logging.getLogger(__name__)


class ContentKind(str, Enum):
    ASSESSMENT = "assessment"
    EXAMINATION = "examination"


class AssessmentStatus(str, Enum):
    PUBLISHED = "published"


class ExaminationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


PublicationStatus = Union[AssessmentStatus, ExaminationStatus]


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RESUBMIT = "resubmit"


# (kind, current status or None for not-yet-persisted, action) -> next status
_TRANSITIONS: Dict[tuple, PublicationStatus] = {
    (ContentKind.ASSESSMENT, None, WorkflowAction.SUBMIT): AssessmentStatus.PUBLISHED,
    (ContentKind.EXAMINATION, None, WorkflowAction.SUBMIT): ExaminationStatus.PENDING,
    (ContentKind.EXAMINATION, ExaminationStatus.PENDING, WorkflowAction.APPROVE): ExaminationStatus.APPROVED,
    (ContentKind.EXAMINATION, ExaminationStatus.PENDING, WorkflowAction.REJECT): ExaminationStatus.REJECTED,
    (ContentKind.EXAMINATION, ExaminationStatus.REJECTED, WorkflowAction.RESUBMIT): ExaminationStatus.PENDING,
}

# Columns only the gated subtype carries.
DECISION_FIELDS = ("approved_by", "approved_at", "rejection_reason")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


_STATUS_ENUMS = {
    ContentKind.ASSESSMENT: AssessmentStatus,
    ContentKind.EXAMINATION: ExaminationStatus,
}


def _coerce_status(kind: ContentKind, value: Any) -> Optional[PublicationStatus]:
    if value is None:
        return None
    try:
        return _STATUS_ENUMS[kind](str(value))
    except ValueError:
        return None


def next_status(
    kind: ContentKind,
    current: Optional[str],
    action: WorkflowAction,
    *,
    item_id: Optional[str] = None,
    allow_resubmission: bool = True,
) -> PublicationStatus:
    """Return the status `action` leads to, or raise InvalidTransitionError."""
    kind = ContentKind(kind)
    action = WorkflowAction(action)
    status = _coerce_status(kind, current)
    if current is not None and status is None:
        raise InvalidTransitionError(item_id=item_id, current=str(current), action=action.value)
    if action == WorkflowAction.RESUBMIT and not allow_resubmission:
        raise InvalidTransitionError(item_id=item_id, current=current, action=action.value)
    target = _TRANSITIONS.get((kind, status, action))
    if target is None:
        raise InvalidTransitionError(item_id=item_id, current=current, action=action.value)
    return target


class PublicationWorkflow:
    def __init__(
        self,
        store: Optional[ContentStore] = None,
        *,
        allow_resubmission: Optional[bool] = None,
        clock: Callable[[], str] = _utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        settings = get_settings()
        self.store = store if store is not None else get_content_store()
        self.allow_resubmission = (
            settings.allow_resubmission if allow_resubmission is None else bool(allow_resubmission)
        )
        self._clock = clock
        self._id_factory = id_factory
        self._tables = {
            ContentKind.ASSESSMENT: settings.assessments_table,
            ContentKind.EXAMINATION: settings.examinations_table,
        }

    def table_for(self, kind: ContentKind) -> str:
        return self._tables[ContentKind(kind)]

    # --- creation ---
    @trace_span("publication.submit")
    def submit(self, principal: Principal, kind: ContentKind, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Persist a finished draft in one write.

        Assessments are stored `published` with `published_at`; examinations
        are stored `pending` without it.
        """
        require_role(principal, Role.TEACHER, Role.ADMIN)
        kind = ContentKind(kind)
        if record.get("terms_accepted") is not True:
            raise FieldErrors([FieldError(field="terms_accepted", reason="terms must be accepted")])

        status = next_status(kind, None, WorkflowAction.SUBMIT)
        now = self._clock()
        row = {k: v for k, v in record.items() if k not in DECISION_FIELDS}
        row.update(
            {
                "id": self._id_factory(),
                "teacher_id": principal.user_id,
                "status": status.value,
                "created_at": now,
                "updated_at": now,
            }
        )
        if status == AssessmentStatus.PUBLISHED:
            row["published_at"] = now
        else:
            row.pop("published_at", None)

        saved = self.store.insert(self.table_for(kind), row)
        log_event(
            logger,
            "publication_transition",
            kind=kind.value,
            item_id=saved.get("id"),
            action=WorkflowAction.SUBMIT.value,
            from_status=None,
            to_status=status.value,
            actor=principal.user_id,
        )
        return saved

    # --- decisions ---
    @trace_span("publication.approve")
    def approve(self, item_id: str, principal: Principal) -> Dict[str, Any]:
        require_role(principal, Role.ADMIN)
        now = self._clock()
        # Approval is the publish event for examinations.
        patch = {"approved_by": principal.user_id, "approved_at": now, "published_at": now}
        return self._apply(ContentKind.EXAMINATION, item_id, WorkflowAction.APPROVE, patch, principal)

    @trace_span("publication.reject")
    def reject(self, item_id: str, principal: Principal, reason: Optional[str]) -> Dict[str, Any]:
        require_role(principal, Role.ADMIN)
        reason_text = str(reason or "").strip()
        if not reason_text:
            raise FieldErrors([FieldError(field="reason", reason="a rejection reason is required")])
        now = self._clock()
        patch = {"approved_by": principal.user_id, "approved_at": now, "rejection_reason": reason_text}
        return self._apply(ContentKind.EXAMINATION, item_id, WorkflowAction.REJECT, patch, principal)

    @trace_span("publication.resubmit")
    def resubmit(
        self,
        item_id: str,
        principal: Principal,
        *,
        questions: List[Dict[str, Any]],
        settings: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Move a rejected examination back to `pending` with revised content.

        Only the author may resubmit; the previous decision stamps are cleared.
        `questions`/`settings` must already be validated and serialized.
        """
        require_role(principal, Role.TEACHER, Role.ADMIN)
        row = self.store.get(self.table_for(ContentKind.EXAMINATION), item_id)
        if row is None:
            raise ContentNotFoundError(ContentKind.EXAMINATION.value, item_id)
        if row.get("teacher_id") != principal.user_id:
            raise UnauthorizedError("only the author may resubmit an examination")
        patch = {
            "questions": questions,
            "settings": settings,
            "approved_by": None,
            "approved_at": None,
            "rejection_reason": None,
        }
        return self._apply(ContentKind.EXAMINATION, item_id, WorkflowAction.RESUBMIT, patch, principal, row=row)

    def _apply(
        self,
        kind: ContentKind,
        item_id: str,
        action: WorkflowAction,
        patch: Dict[str, Any],
        principal: Principal,
        *,
        row: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        table = self.table_for(kind)
        if row is None:
            row = self.store.get(table, item_id)
        if row is None:
            raise ContentNotFoundError(kind.value, item_id)
        current = row.get("status")
        target = next_status(
            kind,
            current,
            action,
            item_id=item_id,
            allow_resubmission=self.allow_resubmission,
        )
        updated = self.store.transition(
            table,
            item_id,
            expected_status=str(current),
            patch={**patch, "status": target.value, "updated_at": self._clock()},
        )
        if updated is None:
            # Lost the conditional write: someone else decided first.
            latest = self.store.get(table, item_id)
            if latest is None:
                raise ContentNotFoundError(kind.value, item_id)
            log_event(
                logger,
                "publication_transition_conflict",
                level="warning",
                kind=kind.value,
                item_id=item_id,
                action=action.value,
                expected_status=current,
                actual_status=latest.get("status"),
                actor=principal.user_id,
            )
            raise InvalidTransitionError(item_id=item_id, current=latest.get("status"), action=action.value)

        log_event(
            logger,
            "publication_transition",
            kind=kind.value,
            item_id=item_id,
            action=action.value,
            from_status=current,
            to_status=target.value,
            actor=principal.user_id,
        )
        return updated

    # --- reads ---
    def get(self, principal: Principal, kind: ContentKind, item_id: str) -> Dict[str, Any]:
        row = self.store.get(self.table_for(kind), item_id)
        if row is None:
            raise ContentNotFoundError(ContentKind(kind).value, item_id)
        if not principal.is_admin and row.get("teacher_id") != principal.user_id:
            # Do not reveal other authors' items.
            raise ContentNotFoundError(ContentKind(kind).value, item_id)
        return row

    def list_pending(self, principal: Principal, *, limit: int = 100) -> List[Dict[str, Any]]:
        require_role(principal, Role.ADMIN)
        return self.store.list(
            self.table_for(ContentKind.EXAMINATION),
            status=ExaminationStatus.PENDING.value,
            limit=limit,
        )

    def list_examinations(
        self, principal: Principal, *, status: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        require_role(principal, Role.ADMIN)
        return self.store.list(self.table_for(ContentKind.EXAMINATION), status=status, limit=limit)

    def list_for_author(self, principal: Principal, kind: ContentKind, *, limit: int = 100) -> List[Dict[str, Any]]:
        require_role(principal, Role.TEACHER, Role.ADMIN)
        return self.store.list(self.table_for(kind), teacher_id=principal.user_id, limit=limit)

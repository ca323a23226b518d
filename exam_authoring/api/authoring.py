import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query, status

from exam_authoring.api._deps import get_principal, get_workflow
from exam_authoring.core.authoring_session import create_content, prepare_revision
from exam_authoring.core.publication import ContentKind, PublicationWorkflow
from exam_authoring.core.questions import parse_questions, validate_question
from exam_authoring.core.settings_resolver import resolve_settings
from exam_authoring.models.schemas import ResubmitRequest
from exam_authoring.utils.errors import QuestionValidationError
from exam_authoring.utils.user_context import Principal, Role, require_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authoring"])


def _created(row: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": row.get("id"), "status": row.get("status")}


@router.post("/assessments", status_code=status.HTTP_201_CREATED)
def create_assessment(
    draft: Dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """Create and immediately publish an assessment."""
    return _created(create_content(principal, ContentKind.ASSESSMENT, draft, workflow=workflow))


@router.post("/examinations", status_code=status.HTTP_201_CREATED)
def create_examination(
    draft: Dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """Create an examination; it waits in `pending` for an administrator."""
    return _created(create_content(principal, ContentKind.EXAMINATION, draft, workflow=workflow))


@router.post("/questions/validate")
def validate_question_endpoint(
    question: Dict[str, Any] = Body(...),
    draft: bool = Query(default=False),
) -> Dict[str, Any]:
    errors = validate_question(question, draft=draft)
    if errors:
        raise QuestionValidationError(errors)
    return {"ok": True}


@router.post("/settings/resolve")
def resolve_settings_endpoint(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    questions = parse_questions(body.get("questions") or [])
    return resolve_settings(questions, body.get("settings")).to_wire()


@router.get("/assessments")
def list_assessments(
    limit: int = Query(default=50, ge=1, le=500),
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"items": workflow.list_for_author(principal, ContentKind.ASSESSMENT, limit=limit)}


@router.get("/examinations")
def list_examinations(
    limit: int = Query(default=50, ge=1, le=500),
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"items": workflow.list_for_author(principal, ContentKind.EXAMINATION, limit=limit)}


@router.get("/examinations/{item_id}")
def get_examination(
    item_id: str,
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    return workflow.get(principal, ContentKind.EXAMINATION, item_id)


@router.post("/examinations/{item_id}/resubmit")
def resubmit_examination(
    item_id: str,
    req: ResubmitRequest,
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """Revise a rejected examination and send it back for review."""
    require_role(principal, Role.TEACHER, Role.ADMIN)
    revision = prepare_revision(req.questions, req.settings)
    row = workflow.resubmit(item_id, principal, **revision)
    return {"ok": True, **_created(row)}

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from exam_authoring.api._deps import get_accounts_client, get_principal, get_workflow
from exam_authoring.core.publication import ExaminationStatus, PublicationWorkflow
from exam_authoring.models.schemas import AccountRequest, RejectRequest
from exam_authoring.services.accounts import provision_account
from exam_authoring.utils.errors import FieldError, FieldErrors
from exam_authoring.utils.observability import log_event
from exam_authoring.utils.user_context import Principal, Role, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _audit(request: Request, principal: Principal, action: str, target_id: Optional[str]) -> None:
    log_event(
        logger,
        "admin_audit",
        actor=principal.user_id,
        action=action,
        target_id=target_id,
        request_id=getattr(getattr(request, "state", None), "request_id", None),
        ip=request.client.host if request.client else None,
    )


@router.get("/examinations")
def list_examinations_for_review(
    status_filter: Optional[str] = Query(default=ExaminationStatus.PENDING.value, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    require_role(principal, Role.ADMIN)
    value = str(status_filter or "").strip().lower()
    if value in ("", "all"):
        return {"items": workflow.list_examinations(principal, limit=limit)}
    try:
        wanted = ExaminationStatus(value)
    except ValueError as e:
        allowed = ", ".join(s.value for s in ExaminationStatus)
        raise FieldErrors([FieldError(field="status", reason=f"must be one of {allowed}, all")]) from e
    if wanted == ExaminationStatus.PENDING:
        return {"items": workflow.list_pending(principal, limit=limit)}
    return {"items": workflow.list_examinations(principal, status=wanted.value, limit=limit)}


@router.post("/examinations/{item_id}/approve")
def approve_examination(
    item_id: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    row = workflow.approve(item_id, principal)
    _audit(request, principal, "approve_examination", item_id)
    return {"ok": True, "id": row.get("id"), "status": row.get("status")}


@router.post("/examinations/{item_id}/reject")
def reject_examination(
    item_id: str,
    req: RejectRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    workflow: PublicationWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    row = workflow.reject(item_id, principal, req.reason)
    _audit(request, principal, "reject_examination", item_id)
    return {"ok": True, "id": row.get("id"), "status": row.get("status")}


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
def create_account(
    req: AccountRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    client: Any = Depends(get_accounts_client),
) -> Dict[str, Any]:
    """Create an auth identity plus its profile; the identity is removed again if the profile write fails."""
    profile = provision_account(principal, req, client=client)
    _audit(request, principal, "create_account", profile.get("id"))
    return {"id": profile.get("id"), "role": profile.get("role")}

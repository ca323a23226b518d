"""
Account provisioning: an auth identity plus its `profiles` row.

The two writes are not transactional. If the profile insert fails the
identity is deleted again so no profile-less account is left behind.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from exam_authoring.models.schemas import AccountRequest
from exam_authoring.utils.errors import AccountProvisioningError
from exam_authoring.utils.observability import log_event
from exam_authoring.utils.settings import get_settings
from exam_authoring.utils.user_context import Principal, Role, require_role

logger = logging.getLogger(__name__)


def _user_id_from(resp: Any) -> Optional[str]:
    user = getattr(resp, "user", None)
    if user is None and isinstance(resp, dict):
        user = resp.get("user")
    if user is None:
        return None
    uid = getattr(user, "id", None)
    if uid is None and isinstance(user, dict):
        uid = user.get("id")
    return str(uid) if uid else None


def _profile_row(user_id: str, request: AccountRequest) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": user_id,
        "role": request.role,
        "fullname": request.fullname,
        "email": request.email,
        "status": "active",
    }
    if request.role == Role.TEACHER.value:
        row["employee_id"] = request.employee_id
        row["department"] = request.department
    elif request.role == Role.STUDENT.value:
        row["student_id"] = request.student_id
        row["course"] = request.course
    return row


class AccountProvisioner:
    def __init__(self, client: Any = None):
        if client is None:
            from exam_authoring.utils.supabase_client import get_supabase_client

            client = get_supabase_client(service_role=True)
        self.client = client
        self.profiles_table = get_settings().profiles_table

    def provision(self, principal: Principal, request: AccountRequest) -> Dict[str, Any]:
        """
        Create the identity, then the profile. Returns the profile row.

        Raises AccountProvisioningError; `rolled_back` tells whether the
        identity was removed again after a failed profile write.
        """
        require_role(principal, Role.ADMIN)

        try:
            resp = self.client.auth.admin.create_user(
                {"email": request.email, "password": request.password, "email_confirm": True}
            )
        except Exception as e:
            log_event(logger, "account_create_failed", level="error", actor=principal.user_id, error=str(e))
            raise AccountProvisioningError(f"Failed to create user: {e}", rolled_back=False) from e
        user_id = _user_id_from(resp)
        if not user_id:
            raise AccountProvisioningError("Failed to create user", rolled_back=False)

        row = _profile_row(user_id, request)
        try:
            self.client.table(self.profiles_table).insert(row).execute()
        except Exception as e:
            rolled_back = self._compensate(user_id)
            log_event(
                logger,
                "account_profile_failed",
                level="error",
                actor=principal.user_id,
                user_id=user_id,
                rolled_back=rolled_back,
                error=str(e),
            )
            raise AccountProvisioningError(
                f"Failed to create profile: {e}", rolled_back=rolled_back, user_id=user_id
            ) from e

        log_event(logger, "account_provisioned", actor=principal.user_id, user_id=user_id, role=request.role)
        return row

    def _compensate(self, user_id: str) -> bool:
        try:
            self.client.auth.admin.delete_user(user_id)
        except Exception as e:
            logger.error("Compensating delete failed for user %s: %s", user_id, e, exc_info=True)
            return False
        return True


def provision_account(principal: Principal, request: AccountRequest, *, client: Any = None) -> Dict[str, Any]:
    require_role(principal, Role.ADMIN)
    return AccountProvisioner(client).provision(principal, request)

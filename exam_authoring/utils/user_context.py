from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from exam_authoring.utils.errors import AuthenticationError, UnauthorizedError
from exam_authoring.utils.settings import get_settings

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


@dataclass(frozen=True)
class Principal:
    """The acting user, passed explicitly into every operation."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_role(principal: Optional[Principal], *roles: Role) -> Principal:
    """Raise UnauthorizedError unless `principal` holds one of `roles`."""
    if principal is None:
        raise AuthenticationError("authentication required")
    if principal.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise UnauthorizedError(f"requires role: {allowed}")
    return principal


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    s = str(authorization).strip()
    if not s:
        return None
    if not s.lower().startswith("bearer "):
        return None
    token = s.split(" ", 1)[1].strip()
    return token or None


def _verify_supabase_jwt(token: str) -> Optional[str]:
    """
    Verify a Supabase Auth JWT and return user_id (jwt.sub) via the GoTrue /auth/v1/user endpoint.
    This avoids embedding the JWT secret in the backend.
    """
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY") or "").strip()
    if not url or not key or not token:
        return None
    endpoint = f"{url.rstrip('/')}/auth/v1/user"
    try:
        with httpx.Client(timeout=5.0, follow_redirects=True) as client:
            r = client.get(endpoint, headers={"apikey": key, "Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
        logger.warning("Supabase token verification failed: %s", e)
        return None
    if r.status_code != 200:
        return None
    data = r.json() if r.content else {}
    if not isinstance(data, dict):
        return None
    uid = str(data.get("id") or "").strip()
    return uid or None


def _lookup_role(user_id: str) -> Optional[Role]:
    """Read the role flag from the profiles table."""
    from exam_authoring.utils.supabase_client import get_supabase_client

    settings = get_settings()
    try:
        resp = (
            get_supabase_client(service_role=True)
            .table(settings.profiles_table)
            .select("role")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error("Profile lookup failed for %s: %s", user_id, e)
        return None
    rows = getattr(resp, "data", None) or []
    if not rows or not isinstance(rows[0], dict):
        return None
    try:
        return Role(str(rows[0].get("role") or ""))
    except ValueError:
        return None


def resolve_principal(
    *,
    authorization: Optional[str],
    x_user_id: Optional[str] = None,
    x_user_role: Optional[str] = None,
) -> Principal:
    """
    With a Bearer token, verify it via Supabase and read the role from `profiles`.
    Without one, fall back to the dev headers unless AUTH_REQUIRED=1 or
    APP_ENV is prod. A header-supplied admin role also needs
    DEV_ALLOW_ADMIN_HEADER=1.
    """
    token = _extract_bearer_token(authorization)
    if token:
        uid = _verify_supabase_jwt(token)
        if not uid:
            raise AuthenticationError("invalid auth token")
        role = _lookup_role(uid)
        if role is None:
            raise UnauthorizedError("no profile role for user")
        return Principal(user_id=uid, role=role)

    settings = get_settings()
    env = str(getattr(settings, "app_env", "dev") or "dev").strip().lower()
    if bool(getattr(settings, "auth_required", False)) or env in {"prod", "production"}:
        raise AuthenticationError("missing Authorization bearer token")

    uid = (x_user_id or os.getenv("DEV_USER_ID") or "dev_user").strip() or "dev_user"
    raw_role = (x_user_role or os.getenv("DEV_USER_ROLE") or Role.TEACHER.value).strip().lower()
    try:
        role = Role(raw_role)
    except ValueError as e:
        raise AuthenticationError(f"unknown role {raw_role!r}") from e
    if role == Role.ADMIN and not bool(getattr(settings, "dev_allow_admin_header", False)):
        logger.warning("Rejected header-supplied admin role for %s", uid)
        raise UnauthorizedError("admin role requires a verified bearer token")
    return Principal(user_id=uid, role=role)

"""Request-scoped dependencies shared by the routers (overridable in tests)."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Header

from exam_authoring.core.publication import PublicationWorkflow
from exam_authoring.services.generator import ContentGenerator, get_content_generator
from exam_authoring.utils.user_context import Principal, resolve_principal


def get_principal(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Principal:
    return resolve_principal(authorization=authorization, x_user_id=x_user_id, x_user_role=x_user_role)


def get_workflow() -> PublicationWorkflow:
    return PublicationWorkflow()


def get_generator() -> ContentGenerator:
    return get_content_generator()


def get_accounts_client() -> Any:
    # None means: build the service-role Supabase client on first use.
    return None

"""API router aggregation."""

from __future__ import annotations

from fastapi import APIRouter

from exam_authoring.api import admin as admin_api
from exam_authoring.api import authoring as authoring_api
from exam_authoring.api import generation as generation_api

router = APIRouter()
router.include_router(authoring_api.router)
router.include_router(generation_api.router)
router.include_router(admin_api.router)


@router.get("/healthz")
def healthz():
    return {"status": "ok"}

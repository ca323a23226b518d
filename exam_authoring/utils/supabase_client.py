"""Supabase client construction (hosted relational store + auth admin API)."""

from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client

from exam_authoring.utils.settings import get_settings


def supabase_configured() -> bool:
    settings = get_settings()
    return bool(settings.supabase_url and (settings.supabase_service_role_key or settings.supabase_key))


@lru_cache(maxsize=2)
def get_supabase_client(service_role: bool = True) -> Client:
    """
    Build a Supabase client.

    Server-side writes use the service-role key so row-level security does not
    hide rows the workflow must transition; the anon key is the fallback.
    """
    settings = get_settings()
    url = settings.supabase_url
    key = (settings.supabase_service_role_key if service_role else None) or settings.supabase_key
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) must be set")
    return create_client(url, key)

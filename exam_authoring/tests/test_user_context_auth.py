from __future__ import annotations

import types

import pytest

import exam_authoring.utils.user_context as uc
from exam_authoring.utils.errors import AuthenticationError, UnauthorizedError


def _settings(auth_required: bool = False, app_env: str = "dev", allow_admin_header: bool = False):
    return lambda: types.SimpleNamespace(
        auth_required=auth_required,
        app_env=app_env,
        dev_allow_admin_header=allow_admin_header,
        profiles_table="profiles",
    )


def test_bearer_token_resolves_user_and_profile_role(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "_verify_supabase_jwt", lambda token: "user_123" if token == "t" else None)
    monkeypatch.setattr(uc, "_lookup_role", lambda uid: uc.Role.ADMIN if uid == "user_123" else None)
    monkeypatch.setattr(uc, "get_settings", _settings())
    p = uc.resolve_principal(authorization="Bearer t", x_user_id="dev_x", x_user_role="teacher")
    assert p == uc.Principal(user_id="user_123", role=uc.Role.ADMIN)
    assert p.is_admin


def test_invalid_token_raises_401(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "_verify_supabase_jwt", lambda _token: None)
    monkeypatch.setattr(uc, "get_settings", _settings())
    with pytest.raises(AuthenticationError) as ei:
        uc.resolve_principal(authorization="Bearer bad", x_user_id="dev_x")
    assert ei.value.status_code == 401


def test_user_without_profile_role_is_forbidden(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "_verify_supabase_jwt", lambda _token: "u1")
    monkeypatch.setattr(uc, "_lookup_role", lambda _uid: None)
    monkeypatch.setattr(uc, "get_settings", _settings())
    with pytest.raises(UnauthorizedError) as ei:
        uc.resolve_principal(authorization="Bearer t")
    assert ei.value.status_code == 403


def test_auth_required_raises_401_when_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "get_settings", _settings(auth_required=True))
    with pytest.raises(AuthenticationError):
        uc.resolve_principal(authorization=None, x_user_id="u", x_user_role="admin")


def test_dev_headers_used_when_not_required(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "get_settings", _settings(allow_admin_header=True))
    monkeypatch.delenv("DEV_USER_ID", raising=False)
    monkeypatch.delenv("DEV_USER_ROLE", raising=False)
    assert uc.resolve_principal(authorization=None, x_user_id="u", x_user_role="ADMIN") == uc.Principal(
        user_id="u", role=uc.Role.ADMIN
    )
    default = uc.resolve_principal(authorization=None)
    assert default.role == uc.Role.TEACHER
    with pytest.raises(AuthenticationError):
        uc.resolve_principal(authorization=None, x_user_id="u", x_user_role="superuser")


@pytest.mark.parametrize("env", ["prod", "production", " PROD "])
def test_dev_headers_rejected_in_production(monkeypatch: pytest.MonkeyPatch, env: str):
    monkeypatch.setattr(uc, "get_settings", _settings(app_env=env, allow_admin_header=True))
    for role in ("admin", "teacher"):
        with pytest.raises(AuthenticationError) as ei:
            uc.resolve_principal(authorization=None, x_user_id="u", x_user_role=role)
        assert ei.value.status_code == 401


def test_admin_header_rejected_without_dev_flag(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "get_settings", _settings())
    monkeypatch.delenv("DEV_USER_ROLE", raising=False)
    with pytest.raises(UnauthorizedError) as ei:
        uc.resolve_principal(authorization=None, x_user_id="u", x_user_role="admin")
    assert ei.value.status_code == 403
    monkeypatch.setenv("DEV_USER_ROLE", "admin")
    with pytest.raises(UnauthorizedError):
        uc.resolve_principal(authorization=None, x_user_id="u")
    assert uc.resolve_principal(authorization=None, x_user_id="u", x_user_role="teacher").role == uc.Role.TEACHER

def test_non_bearer_authorization_is_ignored(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(uc, "get_settings", _settings())
    p = uc.resolve_principal(authorization="Basic abc", x_user_id="u", x_user_role="student")
    assert p.role == uc.Role.STUDENT


def test_require_role():
    admin = uc.Principal(user_id="a", role=uc.Role.ADMIN)
    assert uc.require_role(admin, uc.Role.ADMIN) is admin
    with pytest.raises(UnauthorizedError):
        uc.require_role(uc.Principal(user_id="t", role=uc.Role.TEACHER), uc.Role.ADMIN)
    with pytest.raises(AuthenticationError):
        uc.require_role(None, uc.Role.ADMIN)


def test_lookup_role_reads_profiles(monkeypatch: pytest.MonkeyPatch):
    class _Q:
        def __init__(self, rows):
            self.rows = rows
            self.filters = []

        def select(self, _cols):
            return self

        def eq(self, k, v):
            self.filters.append((k, v))
            return self

        def limit(self, _n):
            return self

        def execute(self):
            return types.SimpleNamespace(data=self.rows)

    q = _Q([{"role": "teacher"}])
    fake = types.SimpleNamespace(table=lambda _name: q)
    monkeypatch.setattr("exam_authoring.utils.supabase_client.get_supabase_client", lambda service_role=True: fake)
    assert uc._lookup_role("u1") == uc.Role.TEACHER
    assert q.filters == [("id", "u1")]

import os
import sys

# Ensure project root is on sys.path for test imports
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Avoid cross-test contamination: Settings and the content store are cached per process.
import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_cached_state(monkeypatch: pytest.MonkeyPatch) -> None:
    from exam_authoring.services.content_store import reset_content_store
    from exam_authoring.utils.settings import get_settings
    from exam_authoring.utils.supabase_client import get_supabase_client

    for key in (
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
        "AUTH_REQUIRED",
        "APP_ENV",
        "DEV_ALLOW_ADMIN_HEADER",
        "DEV_USER_ROLE",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("LOG_TO_FILE", "0")

    get_settings.cache_clear()
    get_supabase_client.cache_clear()
    reset_content_store()
    yield
    get_settings.cache_clear()
    get_supabase_client.cache_clear()
    reset_content_store()

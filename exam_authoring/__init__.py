from __future__ import annotations

# Load the project `.env` early so components reading `os.getenv` directly
# (Supabase keys used by the auth boundary) see the same values as Settings.
try:
    from exam_authoring.utils.env import load_project_dotenv

    load_project_dotenv()
except Exception:
    # Never hard-fail import for optional dev convenience.
    pass

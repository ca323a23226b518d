from __future__ import annotations

from pathlib import Path


def load_project_dotenv() -> bool:
    """
    Load `.env` from the project root into `os.environ`.

    `pydantic-settings` reads `.env` into Settings but does NOT populate
    `os.environ`; the Supabase auth helpers read the environment directly.

    This is a no-op in production where env vars are already injected by the runtime.
    """
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return False

    here = Path(__file__).resolve()
    project_root = here.parents[2]

    candidates = [
        project_root / ".env",
        project_root / "exam_authoring" / ".env",
    ]

    loaded = False
    for p in candidates:
        if p.exists():
            loaded = bool(load_dotenv(p, override=False)) or loaded
    return loaded

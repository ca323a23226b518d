from __future__ import annotations

import re
from typing import Any, Dict, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_RE_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# Common secret-ish patterns (best-effort). Keep conservative to avoid over-redaction.
_RE_BEARER = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._-]{10,}\b")
_RE_OPENAI_SK = re.compile(r"\bsk-[A-Za-z0-9_-]{10,}\b")
_RE_JWT = re.compile(
    r"\beyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\b"
)
_RE_HTTP_URL = re.compile(r"https?://[^\s)]+")


def redact_url_query_params(
    url: str,
    *,
    redact_params: Tuple[str, ...] = (
        "access_token",
        "apikey",
        "authorization",
        "token",
        "refresh_token",
        "sig",
        "signature",
    ),
) -> str:
    s = str(url or "").strip()
    if not s:
        return s
    parts = urlsplit(s)
    if not parts.scheme or not parts.netloc or not parts.query:
        return s
    redact_set = {p.lower() for p in redact_params}
    q = []
    for k, v in parse_qsl(parts.query, keep_blank_values=True):
        if str(k).lower() in redact_set:
            q.append((k, "***"))
        else:
            q.append((k, v))
    new_query = urlencode(q, doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, new_query, parts.fragment))


def redact_secrets(text: str) -> str:
    if not text:
        return ""
    s = str(text)
    s = _RE_BEARER.sub("Bearer ***", s)
    s = _RE_OPENAI_SK.sub("sk-***", s)
    s = _RE_JWT.sub("***.***.***", s)
    return s


def redact_pii(text: str) -> str:
    if not text:
        return ""
    return _RE_EMAIL.sub("***@***", str(text))


def sanitize_text_for_log(text: str) -> str:
    s = str(text or "")
    if "http://" in s or "https://" in s:
        s = _RE_HTTP_URL.sub(lambda m: redact_url_query_params(m.group(0)), s)
    s = redact_secrets(s)
    s = redact_pii(s)
    return s


def sanitize_value_for_log(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, str):
        return sanitize_text_for_log(value)
    if isinstance(value, (list, tuple)):
        return [sanitize_value_for_log(v) for v in value]
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            out[str(k)] = sanitize_value_for_log(v)
        return out
    try:
        return sanitize_text_for_log(str(value))
    except Exception:
        return ""

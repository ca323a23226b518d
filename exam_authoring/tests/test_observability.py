from __future__ import annotations

import json
import logging

from exam_authoring.core.publication import ContentKind
from exam_authoring.security.safety import redact_secrets, sanitize_text_for_log
from exam_authoring.utils.errors import ErrorCode, build_error_payload
from exam_authoring.utils.observability import log_event, trace_span

logger = logging.getLogger("exam_authoring.tests.observability")


def _events(caplog):
    out = []
    for r in caplog.records:
        try:
            out.append(json.loads(r.getMessage()))
        except ValueError:
            continue
    return out


def test_secrets_and_emails_are_redacted():
    s = sanitize_text_for_log(
        "Bearer abcdefghijklmnop sk-1234567890abcdef contact ada@school.test https://x.test/cb?token=abc&page=2"
    )
    assert "abcdefghijklmnop" not in s
    assert "sk-1234567890abcdef" not in s
    assert "ada@school.test" not in s
    assert "token=abc" not in s
    assert "page=2" in s
    assert redact_secrets("") == ""


def test_log_event_emits_single_line_json(caplog):
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, "publication_transition", kind=ContentKind.EXAMINATION, actor="ada@school.test", skipped=None)
    (event,) = _events(caplog)
    assert event["event"] == "publication_transition"
    assert event["kind"] == "examination"
    assert event["actor"] == "***@***"
    assert "skipped" not in event


def test_log_event_never_raises():
    class _Boom:
        def __str__(self):
            raise RuntimeError("boom")

        def __repr__(self):
            raise RuntimeError("boom")

    log_event(logger, "odd_value", value=_Boom())


def test_trace_span_reraises_and_logs(caplog):
    @trace_span("unit.fail")
    def _fail():
        raise ValueError("nope")

    with caplog.at_level(logging.INFO):
        try:
            _fail()
        except ValueError:
            pass
        else:  # pragma: no cover
            raise AssertionError("expected ValueError")
    names = [e["event"] for e in _events(caplog)]
    assert names == ["trace_start", "trace_end"]


def test_error_payload_shape():
    payload = build_error_payload(
        code=ErrorCode.INVALID_TRANSITION, message="cannot approve", details={"a": 1}, request_id="req_1"
    )
    assert payload == {
        "code": "E4090",
        "error": "cannot approve",
        "message": "cannot approve",
        "details": {"a": 1},
        "request_id": "req_1",
    }

"""
Generative Content Adapter

Turns unstructured source material into a validated question list through an
OpenAI-compatible chat-completions service. The service output is untrusted:
fences are stripped, the JSON is parsed, and every element is run through the
same question validators used for manual entry. One bad element fails the
whole attempt; a partial list is never returned.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
from openai import APIConnectionError, APIError, APITimeoutError, OpenAI
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from exam_authoring.core.prompts import GENERATION_SYSTEM_PROMPT, build_generation_prompt
from exam_authoring.core.questions import parse_question
from exam_authoring.models.schemas import DEFAULT_POINTS, Difficulty, GenerationRequest, QuestionType
from exam_authoring.services.source_material import prepare_material
from exam_authoring.utils.errors import (
    FieldError,
    GenerationParseError,
    GenerationServiceError,
    QuestionValidationError,
)
from exam_authoring.utils.observability import log_event, log_generation_usage, trace_span
from exam_authoring.utils.settings import get_settings

logger = logging.getLogger(__name__)

_RE_OPEN_FENCE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_RE_CLOSE_FENCE = re.compile(r"\n?[ \t]*```\s*$")


def _new_generated_id(index: int) -> str:  # noqa: ARG001
    return f"ai-{uuid.uuid4().hex[:12]}"


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapping the whole response, if any."""
    s = str(text or "").strip()
    if s.startswith("```"):
        s = _RE_OPEN_FENCE.sub("", s, count=1)
        s = _RE_CLOSE_FENCE.sub("", s, count=1)
    return s.strip()


def _is_connect_failure(exc: BaseException) -> bool:
    # APITimeoutError subclasses APIConnectionError; timeouts are never retried.
    return isinstance(exc, APIConnectionError) and not isinstance(exc, APITimeoutError)


def _normalize_points(value: Any, qtype: QuestionType) -> int:
    """Lenient on point values: anything that is not a positive integer gets the kind default."""
    if isinstance(value, bool):
        return DEFAULT_POINTS[qtype]
    if isinstance(value, int) and value >= 1:
        return value
    if isinstance(value, float) and value.is_integer() and value >= 1:
        return int(value)
    return DEFAULT_POINTS[qtype]


def _normalize_element(
    item: Dict[str, Any],
    *,
    index: int,
    qtype: QuestionType,
    difficulty: Difficulty,
    id_factory: Callable[[int], str],
) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": id_factory(index),
        "order": index + 1,
        "type": qtype.value,
        "question": item.get("question"),
        "points": _normalize_points(item.get("points"), qtype),
        "difficulty": item.get("difficulty") or difficulty.value,
    }
    if qtype == QuestionType.MULTIPLE_CHOICE:
        options = item.get("options")
        if isinstance(options, list):
            normalized = []
            for n, opt in enumerate(options, start=1):
                if isinstance(opt, dict):
                    opt = {"id": str(opt.get("id") or n), **{k: v for k, v in opt.items() if k != "id"}}
                normalized.append(opt)
            options = normalized
        out["options"] = options
    elif qtype == QuestionType.TRUE_FALSE:
        out["correctAnswer"] = item.get("correctAnswer")
    else:
        sample = item.get("sampleAnswer")
        if sample is not None:
            out["sampleAnswer"] = sample
    return out


def parse_generated_questions(
    text: str,
    *,
    requested_types: Iterable[QuestionType],
    difficulty: Difficulty,
    id_factory: Callable[[int], str] = _new_generated_id,
) -> list:
    """
    Parse a raw service response into typed questions.

    Raises GenerationParseError (with the raw response attached) when the
    payload is not JSON, is not an array of question objects, or any element
    fails question validation.
    """
    raw = text or ""
    cleaned = strip_code_fences(raw)
    try:
        payload = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        raise GenerationParseError(f"Response is not valid JSON: {e}", raw_response=raw) from e

    if isinstance(payload, dict) and isinstance(payload.get("questions"), list):
        payload = payload["questions"]
    if not isinstance(payload, list):
        raise GenerationParseError("Response is not a JSON array", raw_response=raw)
    if not payload:
        raise GenerationParseError("Response contained no questions", raw_response=raw)

    allowed = {QuestionType(t) for t in requested_types}
    questions = []
    errors: List[FieldError] = []
    for i, item in enumerate(payload):
        prefix = f"[{i}]"
        if not isinstance(item, dict):
            errors.append(FieldError(field=prefix, reason="element must be an object"))
            continue
        try:
            qtype = QuestionType(item.get("type"))
        except ValueError:
            errors.append(FieldError(field=f"{prefix}.type", reason=f"unknown question type {item.get('type')!r}"))
            continue
        if qtype not in allowed:
            errors.append(FieldError(field=f"{prefix}.type", reason=f"{qtype.value} was not requested"))
            continue
        data = _normalize_element(item, index=i, qtype=qtype, difficulty=difficulty, id_factory=id_factory)
        try:
            questions.append(parse_question(data))
        except QuestionValidationError as exc:
            errors.extend(e.prefixed(prefix) for e in exc.errors)

    if errors:
        raise GenerationParseError(
            f"{len(errors)} invalid field(s) in generated questions",
            raw_response=raw,
            errors=errors,
        )
    return questions


class ContentGenerator:
    """Client for the external content-generation service."""

    def __init__(self, client: Optional[OpenAI] = None):
        settings = get_settings()
        self.api_key = settings.openai_api_key
        self.base_url = settings.openai_base_url
        self.model = settings.generation_model
        self.timeout_seconds = float(settings.generation_timeout_seconds)
        self.temperature = float(settings.generation_temperature)
        self.max_tokens = int(settings.generation_max_tokens)
        self.connect_attempts = max(1, int(settings.generation_connect_retries))
        self.max_questions = int(settings.max_generated_questions)
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise GenerationServiceError("OPENAI_API_KEY not configured")
        self._client = OpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout_seconds,
            # Retries are handled below, and only for connection failures.
            max_retries=0,
        )
        return self._client

    def _complete(self, prompt: str) -> Tuple[str, Any]:
        client = self._get_client()
        retrying = Retrying(
            retry=retry_if_exception(_is_connect_failure),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            stop=stop_after_attempt(self.connect_attempts),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = client.chat.completions.create(
                        model=self.model,
                        messages=[
                            {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
                            {"role": "user", "content": prompt},
                        ],
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                        timeout=self.timeout_seconds,
                    )
        except (APITimeoutError, httpx.TimeoutException) as e:
            log_event(logger, "generation_timeout", level="warning", model=self.model, timeout_s=self.timeout_seconds)
            raise GenerationServiceError(
                f"Generation service timed out after {self.timeout_seconds:g}s", timeout=True
            ) from e
        except (APIError, httpx.HTTPError) as e:
            log_event(
                logger,
                "generation_service_failed",
                level="error",
                model=self.model,
                error_type=e.__class__.__name__,
                error=str(e),
            )
            raise GenerationServiceError(str(e) or e.__class__.__name__) from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        return str(content or ""), getattr(response, "usage", None)

    @trace_span("generation.generate")
    def generate(
        self,
        request: GenerationRequest,
        *,
        id_factory: Callable[[int], str] = _new_generated_id,
    ) -> list:
        """
        Generate questions for `request`.

        Raises NoContentError before any network call when the material is
        empty, GenerationServiceError for transport/service failures and
        GenerationParseError for responses that do not hold valid questions.
        """
        material = prepare_material(request.material)
        desired = min(int(request.desired_count), self.max_questions)
        prompt = build_generation_prompt(
            material=material,
            desired_count=desired,
            requested_types=request.requested_types,
            difficulty=request.difficulty,
            subject=request.subject,
            level=request.level,
        )
        text, usage = self._complete(prompt)
        try:
            questions = parse_generated_questions(
                text,
                requested_types=request.requested_types,
                difficulty=request.difficulty,
                id_factory=id_factory,
            )
        except GenerationParseError as e:
            log_event(
                logger,
                "generation_parse_failed",
                level="error",
                model=self.model,
                error=str(e),
                content_len=len(text),
                content_tail=text[-200:],
            )
            raise
        usage_dict = usage.model_dump() if hasattr(usage, "model_dump") else usage
        log_generation_usage(logger, model=self.model, usage=usage_dict, questions=len(questions))
        if len(questions) != desired:
            log_event(
                logger,
                "generation_count_mismatch",
                level="warning",
                requested=desired,
                received=len(questions),
            )
        return questions


def get_content_generator() -> ContentGenerator:
    return ContentGenerator()

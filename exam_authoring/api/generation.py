import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from exam_authoring.api._deps import get_generator, get_principal
from exam_authoring.core.questions import field_errors_from_validation, serialize_questions
from exam_authoring.models.schemas import GenerationRequest
from exam_authoring.services.generator import ContentGenerator
from exam_authoring.services.source_material import extract_text
from exam_authoring.utils.errors import FieldErrors
from exam_authoring.utils.observability import log_event
from exam_authoring.utils.settings import get_settings
from exam_authoring.utils.user_context import Principal, Role, require_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])

_CHUNK_SIZE = 1024 * 1024


def _split_types(values: Optional[List[str]]) -> List[str]:
    out: List[str] = []
    for v in values or []:
        out.extend(p.strip() for p in str(v).split(",") if p.strip())
    return out


async def _read_capped(file: UploadFile, limit: int) -> bytes:
    """Read at most `limit + 1` bytes so oversize uploads are never buffered whole."""
    chunks: List[bytes] = []
    size = 0
    while size <= limit:
        chunk = await file.read(min(_CHUNK_SIZE, limit + 1 - size))
        if not chunk:
            break
        chunks.append(chunk)
        size += len(chunk)
    return b"".join(chunks)


def _response(questions: list) -> Dict[str, Any]:
    return {"questions": serialize_questions(questions), "count": len(questions)}


@router.post("/generate")
def generate_questions(
    req: GenerationRequest,
    principal: Principal = Depends(get_principal),
    generator: ContentGenerator = Depends(get_generator),
) -> Dict[str, Any]:
    """Generate questions from pasted source material."""
    require_role(principal, Role.TEACHER, Role.ADMIN)
    log_event(logger, "generation_requested", actor=principal.user_id, source="text", count=req.desired_count)
    return _response(generator.generate(req))


@router.post("/generate/upload")
async def generate_from_upload(
    file: UploadFile = File(...),
    number_of_questions: int = Form(default=10, alias="numberOfQuestions"),
    question_types: List[str] = Form(..., alias="questionTypes"),
    difficulty: str = Form(default="medium"),
    subject: str = Form(default=""),
    grade_level: str = Form(default="", alias="gradeLevel"),
    principal: Principal = Depends(get_principal),
    generator: ContentGenerator = Depends(get_generator),
) -> Dict[str, Any]:
    """Generate questions from an uploaded document (PDF or plain text)."""
    require_role(principal, Role.TEACHER, Role.ADMIN)
    data = await _read_capped(file, int(get_settings().max_upload_bytes))
    filename = (file.filename or "").strip() or "upload"
    text = await run_in_threadpool(extract_text, filename, data)
    try:
        req = GenerationRequest(
            material=text,
            desired_count=number_of_questions,
            requested_types=_split_types(question_types),
            difficulty=difficulty,
            subject=subject,
            level=grade_level,
        )
    except ValidationError as exc:
        raise FieldErrors(field_errors_from_validation(exc)) from exc
    log_event(
        logger,
        "generation_requested",
        actor=principal.user_id,
        source="upload",
        filename=filename,
        size_bytes=len(data),
        count=req.desired_count,
    )
    questions = await run_in_threadpool(generator.generate, req)
    return _response(questions)

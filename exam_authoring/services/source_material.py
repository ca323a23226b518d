"""Source material for question generation: uploaded documents and pasted text."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from exam_authoring.utils.errors import FieldError, FieldErrors, NoContentError
from exam_authoring.utils.settings import get_settings

logger = logging.getLogger(__name__)


def _pdf_text(data: bytes) -> str:
    import fitz  # PyMuPDF

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise FieldErrors([FieldError(field="file", reason=f"unreadable PDF: {e}")]) from e
    try:
        return "\n".join(page.get_text() for page in doc)
    finally:
        doc.close()


def extract_text(filename: str, data: bytes, *, max_bytes: Optional[int] = None) -> str:
    """Return the text of an uploaded document (PDF via PyMuPDF, anything else as UTF-8)."""
    limit = int(max_bytes if max_bytes is not None else get_settings().max_upload_bytes)
    if len(data) > limit:
        raise FieldErrors(
            [FieldError(field="file", reason=f"file exceeds {limit} bytes")],
            message="Upload too large",
        )
    if Path(filename or "").suffix.lower() == ".pdf" or data[:5] == b"%PDF-":
        text = _pdf_text(data)
    else:
        text = data.decode("utf-8", errors="replace")
    logger.info("Extracted %d chars from upload %s", len(text), filename)
    return text


def prepare_material(text: Optional[str], *, max_chars: Optional[int] = None) -> str:
    """
    Truncate source material to the generative service's input cap.

    Raises NoContentError when nothing usable remains.
    """
    s = str(text or "")
    if not s.strip():
        raise NoContentError()
    cap = int(max_chars if max_chars is not None else get_settings().source_material_max_chars)
    if len(s) > cap:
        logger.info("Truncating source material from %d to %d chars", len(s), cap)
        s = s[:cap]
    return s

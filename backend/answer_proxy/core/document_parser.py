from __future__ import annotations

import io
import logging
import re
from typing import Callable, Dict, Optional

from docx import Document
from pypdf import PdfReader

from backend.answer_proxy.errors import DocumentError, UnsupportedFile

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

_EXTENSION_MIME: Dict[str, str] = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": TEXT_MIME,
}


def normalize_cv_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # collapse 3+ newlines into exactly one blank line
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _extract_pdf_text(file_bytes: bytes) -> str:
    reader = PdfReader(io.BytesIO(file_bytes))
    pages = []
    for p in reader.pages:
        pages.append(p.extract_text() or "")
    return "\n".join(pages)


def _extract_docx_text(file_bytes: bytes) -> str:
    doc = Document(io.BytesIO(file_bytes))
    return "\n".join(p.text for p in doc.paragraphs)


def _extract_plain_text(file_bytes: bytes) -> str:
    return file_bytes.decode("utf-8", errors="replace")


_EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    PDF_MIME: _extract_pdf_text,
    DOCX_MIME: _extract_docx_text,
    TEXT_MIME: _extract_plain_text,
}


def resolve_mime_type(mime_type: Optional[str], filename: Optional[str]) -> Optional[str]:
    """Use the declared type, falling back to the extension for generic uploads."""
    declared = (mime_type or "").split(";")[0].strip().lower()
    if declared in _EXTRACTORS:
        return declared
    name = (filename or "").lower()
    for ext, mime in _EXTENSION_MIME.items():
        if name.endswith(ext):
            return mime
    return None


def extract_text(file_bytes: bytes, mime_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    Extract plain text from a PDF, DOCX or text upload.

    Raises:
        UnsupportedFile: for any other type
        DocumentError: if the file cannot be parsed
    """
    resolved = resolve_mime_type(mime_type, filename)
    if resolved is None:
        raise UnsupportedFile()

    try:
        text = _EXTRACTORS[resolved](file_bytes)
    except Exception as e:
        logger.warning("CV text extraction failed for %s: %s", resolved, type(e).__name__)
        raise DocumentError() from e

    return normalize_cv_text(text)

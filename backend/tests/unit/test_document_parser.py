import io

import pytest
from docx import Document

from backend.answer_proxy.core.document_parser import (
    DOCX_MIME,
    PDF_MIME,
    TEXT_MIME,
    extract_text,
    normalize_cv_text,
    resolve_mime_type,
)
from backend.answer_proxy.errors import DocumentError, UnsupportedFile


def _docx_bytes(*paragraphs):
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def test_normalize_cv_text():
    raw = "  Jane Doe\r\nEngineer\r\r\r\n\n\nSKILLS\rPython  "
    assert normalize_cv_text(raw) == "Jane Doe\nEngineer\n\nSKILLS\nPython"


def test_plain_text_upload():
    text = extract_text(b"SUMMARY\r\nData scientist\n\n\n\nSKILLS\nPython", TEXT_MIME, "cv.txt")
    assert text == "SUMMARY\nData scientist\n\nSKILLS\nPython"


def test_docx_upload():
    data = _docx_bytes("EXPERIENCE", "- Built models", "", "", "", "EDUCATION")
    text = extract_text(data, DOCX_MIME, "cv.docx")

    assert "Built models" in text
    assert "\n\n\n" not in text


@pytest.mark.parametrize(
    "mime,filename,expected",
    [
        (PDF_MIME, "whatever", PDF_MIME),
        ("text/plain; charset=utf-8", None, TEXT_MIME),
        ("application/octet-stream", "CV.DOCX", DOCX_MIME),
        (None, "resume.pdf", PDF_MIME),
        ("image/png", "photo.png", None),
    ],
)
def test_resolve_mime_type(mime, filename, expected):
    assert resolve_mime_type(mime, filename) == expected


def test_unsupported_type():
    with pytest.raises(UnsupportedFile):
        extract_text(b"\x89PNG", "image/png", "photo.png")


def test_corrupt_pdf_is_document_error():
    with pytest.raises(DocumentError):
        extract_text(b"definitely not a pdf", PDF_MIME, "cv.pdf")

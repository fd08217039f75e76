"""
Bounds CV text and job context into prompt-sized blocks.

CVs are usually reverse-chronological, so cutting only the tail would hide
early-career roles that the prompts explicitly ask the model to use. Long CVs
are therefore cut in the middle (head + tail) instead.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from backend.answer_proxy.models.schemas import JobContext

MIN_CV_CAP = 500
HEAD_SHARE = 0.6
SNIP_MARKER = "\n\n...[snip - middle omitted to fit prompt]...\n\n"
TRUNCATED_MARKER = "\n[...truncated...]"

EXTRACTION_CV_CHARS = 10000
NARRATIVE_CV_CHARS = 8000
JOB_DESCRIPTION_CHARS = 10000
MAX_REQUIREMENTS = 10
REQUIREMENT_CHARS = 300
SHORT_FIELD_CHARS = 200
QUESTION_CHARS = 2000


@dataclass
class AssembledContext:
    cv_block: str
    job_block: str = ""
    requirements: List[str] = field(default_factory=list)
    job_title: Optional[str] = None
    company: Optional[str] = None

    @property
    def has_job_context(self) -> bool:
        return bool(self.job_block or self.requirements)


def head_tail_truncate(text: str | None, max_chars: int) -> str:
    raw = text or ""
    cap = max(MIN_CV_CAP, int(max_chars or 0))
    if len(raw) <= cap:
        return raw

    head_len = int(cap * HEAD_SHARE)
    tail_len = cap - head_len
    return f"{raw[:head_len]}{SNIP_MARKER}{raw[-tail_len:]}"


def truncate_job_description(text: str | None, max_chars: int = JOB_DESCRIPTION_CHARS) -> str:
    raw = text or ""
    if len(raw) <= max_chars:
        return raw
    return raw[:max_chars] + TRUNCATED_MARKER


def bound_text(text: str | None, max_chars: int) -> Optional[str]:
    if not text:
        return None
    value = text.strip()
    return value[:max_chars] if value else None


def cap_requirements(
    items: Optional[Iterable[str]],
    limit: int = MAX_REQUIREMENTS,
    item_chars: int = REQUIREMENT_CHARS,
) -> List[str]:
    """Dedupe (exact match, first occurrence wins), then cap count and length."""
    seen = set()
    out: List[str] = []
    for item in items or []:
        if not isinstance(item, str):
            continue
        value = item.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value[:item_chars])
        if len(out) >= limit:
            break
    return out


def assemble(
    cv_text: str,
    job_context: Optional[JobContext],
    max_cv_chars: int = NARRATIVE_CV_CHARS,
    max_job_chars: int = JOB_DESCRIPTION_CHARS,
) -> AssembledContext:
    job = job_context or JobContext()
    return AssembledContext(
        cv_block=head_tail_truncate(cv_text, max_cv_chars),
        job_block=truncate_job_description(job.job_description, max_job_chars),
        requirements=cap_requirements(job.requirements),
        job_title=bound_text(job.job_title, SHORT_FIELD_CHARS),
        company=bound_text(job.company, SHORT_FIELD_CHARS),
    )

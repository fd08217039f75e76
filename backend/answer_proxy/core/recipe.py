"""
Default recipe: turns a structured request into a system/user prompt pair.

Contract shared by every recipe:

    build_prompts(request: StructuredGenerationRequest) -> PromptPair
"""
from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from backend.answer_proxy.core.context_assembler import (
    EXTRACTION_CV_CHARS,
    NARRATIVE_CV_CHARS,
    QUESTION_CHARS,
    AssembledContext,
    assemble,
)
from backend.answer_proxy.core.prompts import (
    ANSWER_WORD_TARGETS,
    COVER_LETTER_WORD_TARGETS,
    PromptVersion,
    Prompts,
)
from backend.answer_proxy.core.question_classifier import QuestionClass, classify, clean_field_label
from backend.answer_proxy.models.schemas import PromptPair, StructuredGenerationRequest

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.1
NARRATIVE_TEMPERATURE = 0.7


@runtime_checkable
class PromptBuilder(Protocol):
    def build_prompts(self, request: StructuredGenerationRequest) -> PromptPair:
        ...


def _job_context_section(ctx: AssembledContext) -> str:
    if not ctx.has_job_context:
        return ""

    lines = ["## JOB CONTEXT"]
    if ctx.job_title:
        lines.append(f"**Position:** {ctx.job_title}")
    if ctx.company:
        lines.append(f"**Company:** {ctx.company}")
    lines.append("")

    if ctx.requirements:
        lines.append("### Key Requirements")
        lines.extend(f"- {req}" for req in ctx.requirements)
        lines.append("")

    if ctx.job_block:
        lines.append("### Job Description")
        lines.append(ctx.job_block)
        lines.append("")

    return "\n".join(lines) + "\n"


class DefaultRecipe:
    """Bundled recipe, used unless another one is configured."""

    name = "default"

    def __init__(self, version: PromptVersion = PromptVersion.V1):
        self.version = version

    def build_prompts(self, request: StructuredGenerationRequest) -> PromptPair:
        question_class = classify(request.question)
        logger.debug("Building prompts for question class %s", question_class.value)

        if question_class == QuestionClass.DATA_EXTRACTION:
            return self._extraction_prompts(request)
        return self._answer_prompts(request, question_class)

    def _extraction_prompts(self, request: StructuredGenerationRequest) -> PromptPair:
        ctx = assemble(request.cv_text, None, max_cv_chars=EXTRACTION_CV_CHARS)
        label = clean_field_label(request.question)[:QUESTION_CHARS]
        user_prompt = (
            f"CV:\n{ctx.cv_block}\n\n"
            f"Extract: {label}\n\n"
            "Return ONLY the value, nothing else."
        )
        return PromptPair(
            system_prompt=Prompts.get_extraction_system(self.version),
            user_prompt=user_prompt,
            temperature=EXTRACTION_TEMPERATURE,
        )

    def _answer_prompts(self, request: StructuredGenerationRequest, question_class: QuestionClass) -> PromptPair:
        ctx = assemble(request.cv_text, request.job_context, max_cv_chars=NARRATIVE_CV_CHARS)
        cover_letter = question_class == QuestionClass.COVER_LETTER
        why_company = question_class == QuestionClass.WHY_COMPANY

        system_prompt = Prompts.get_answer_system(self.version, has_job_context=ctx.has_job_context)
        if cover_letter:
            system_prompt += Prompts.get_cover_letter_mode(self.version)

        targets = COVER_LETTER_WORD_TARGETS if cover_letter else ANSWER_WORD_TARGETS
        word_target = targets[request.length]
        tailoring = (
            "Tailor the answer to the job requirements above"
            if ctx.has_job_context
            else "Show breadth of experience across your career"
        )

        user_prompt = (
            "## CANDIDATE CV (use ALL relevant roles; older roles may be most relevant)\n"
            f"{ctx.cv_block}\n\n"
            f"{_job_context_section(ctx)}"
            f"## QUESTION\n{request.question.strip()[:QUESTION_CHARS]}\n\n"
            "## INSTRUCTIONS\n"
            f"- Length: approximately {word_target}\n"
            "- IMPORTANT: Reference experiences from AT LEAST 2 different roles/time periods in your answer\n"
            "- Do NOT focus only on the most recent role\n"
            f"- {tailoring}\n"
        )

        if why_company:
            user_prompt += Prompts.get_why_company_block(self.version)
        if cover_letter:
            user_prompt += Prompts.get_cover_letter_block(
                self.version,
                role=ctx.job_title or "the role",
                company=ctx.company,
            )

        user_prompt += "\nWrite the answer now. First person, no preamble."

        return PromptPair(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=NARRATIVE_TEMPERATURE,
        )

"""
Request gateway: everything between an authenticated, rate-limited request
and the model backend.

    body -> payload detection -> [structured: recipe] | [legacy: passthrough]
         -> prompt size ceiling -> model call -> answer shaping

The size ceiling applies to recipe output as well as legacy prompts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from backend.answer_proxy.core.answer_polisher import answer_warnings, polish_answer
from backend.answer_proxy.core.document_parser import extract_text
from backend.answer_proxy.core.question_classifier import QuestionClass, classify, clean_field_label
from backend.answer_proxy.core.recipe import PromptBuilder
from backend.answer_proxy.errors import (
    FileTooLarge,
    GatewayError,
    PromptTooLarge,
    RecipeError,
    UpstreamError,
    ValidationFailed,
)
from backend.answer_proxy.models.schemas import (
    MIN_CV_CHARS,
    SYSTEM_PROMPT_MAX_CHARS,
    SYSTEM_PROMPT_MIN_CHARS,
    USER_PROMPT_MAX_CHARS,
    USER_PROMPT_MIN_CHARS,
    GenerateResponse,
    LegacyGenerationRequest,
    PromptPair,
    StructuredGenerationRequest,
    UploadResponse,
)
from backend.answer_proxy.utils.prometheus_metrics import record_prompt

logger = logging.getLogger(__name__)

MISSING_PROMPT_DATA = (
    "Missing prompt data. Send either structured (question + cvText) "
    "or legacy (systemPrompt + userPrompt)."
)

GenerationRequest = Union[StructuredGenerationRequest, LegacyGenerationRequest]


class PayloadFormat(str, Enum):
    STRUCTURED = "structured"
    LEGACY = "legacy"


@dataclass
class RoutedRequest:
    payload_format: PayloadFormat
    prompt: PromptPair
    question_class: Optional[QuestionClass] = None
    cv_text: Optional[str] = None


def parse_generation_request(body: Any) -> GenerationRequest:
    """
    Detect the payload shape. A non-empty ``question`` string selects the
    structured shape and is checked before the legacy fields.
    """
    if not isinstance(body, dict):
        raise ValidationFailed(MISSING_PROMPT_DATA)

    question = body.get("question")
    if isinstance(question, str) and question:
        cv_text = body.get("cvText")
        if not isinstance(cv_text, str) or len(cv_text) < MIN_CV_CHARS:
            raise ValidationFailed("Missing or empty cvText")
        fields = {**body, "question": clean_field_label(question) or question}
        try:
            return StructuredGenerationRequest.model_validate(fields)
        except ValidationError:
            raise ValidationFailed("Invalid structured payload")

    if isinstance(body.get("systemPrompt"), str) and isinstance(body.get("userPrompt"), str):
        return LegacyGenerationRequest.model_validate(body)

    raise ValidationFailed(MISSING_PROMPT_DATA)


def enforce_prompt_limits(prompt: PromptPair) -> None:
    if len(prompt.system_prompt) < SYSTEM_PROMPT_MIN_CHARS:
        raise ValidationFailed("System prompt too short")
    if len(prompt.user_prompt) < USER_PROMPT_MIN_CHARS:
        raise ValidationFailed("User prompt too short")
    if len(prompt.system_prompt) > SYSTEM_PROMPT_MAX_CHARS or len(prompt.user_prompt) > USER_PROMPT_MAX_CHARS:
        raise PromptTooLarge()


class RequestGateway:
    def __init__(self, recipe: PromptBuilder, llm_service: Any):
        self.recipe = recipe
        self.llm = llm_service

    def _run_recipe(self, request: StructuredGenerationRequest) -> PromptPair:
        try:
            result = self.recipe.build_prompts(request)
            if isinstance(result, PromptPair):
                return result
            return PromptPair.model_validate(result)
        except GatewayError:
            raise
        except Exception as e:
            logger.error("Recipe failed: %s", type(e).__name__)
            raise RecipeError(e)

    def route(self, body: Any) -> RoutedRequest:
        request = parse_generation_request(body)

        if isinstance(request, StructuredGenerationRequest):
            question_class = classify(request.question)
            routed = RoutedRequest(
                payload_format=PayloadFormat.STRUCTURED,
                prompt=self._run_recipe(request),
                question_class=question_class,
                cv_text=request.cv_text,
            )
        else:
            routed = RoutedRequest(payload_format=PayloadFormat.LEGACY, prompt=request.to_prompt_pair())

        enforce_prompt_limits(routed.prompt)
        record_prompt(
            routed.payload_format.value,
            len(routed.prompt.system_prompt),
            len(routed.prompt.user_prompt),
            routed.question_class.value if routed.question_class else None,
        )
        logger.info(
            "Routed %s request (class=%s, system=%d chars, user=%d chars)",
            routed.payload_format.value,
            routed.question_class.value if routed.question_class else "-",
            len(routed.prompt.system_prompt),
            len(routed.prompt.user_prompt),
        )
        return routed

    async def generate(self, body: Any) -> GenerateResponse:
        routed = self.route(body)
        result = await self.llm.generate(routed.prompt)

        answer = polish_answer(result.text)
        if not answer:
            raise UpstreamError("No answer from provider")

        warnings = []
        if routed.cv_text and routed.question_class != QuestionClass.DATA_EXTRACTION:
            warnings = answer_warnings(answer, routed.cv_text)

        return GenerateResponse(answer=answer, provider=result.provider, model=result.model, warnings=warnings)


def process_cv_upload(
    file_bytes: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    max_bytes: int,
) -> UploadResponse:
    if len(file_bytes) > max_bytes:
        raise FileTooLarge(f"File too large. Max size is {max_bytes // (1024 * 1024)}MB.")

    text = extract_text(file_bytes, content_type, filename)
    logger.info("CV upload processed (%d bytes -> %d chars)", len(file_bytes), len(text))
    return UploadResponse(text=text, filename=filename or "", size=len(file_bytes))

from __future__ import annotations

import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_TEMPERATURE = 0.7
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0

SYSTEM_PROMPT_MIN_CHARS = 10
SYSTEM_PROMPT_MAX_CHARS = 30000
USER_PROMPT_MIN_CHARS = 10
USER_PROMPT_MAX_CHARS = 120000

MIN_CV_CHARS = 5


class AnswerLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _optional_text(value: Any) -> Optional[str]:
    # Page extraction sends "" or null for fields it could not find.
    if isinstance(value, str) and value.strip():
        return value
    return None


class JobContext(_CamelModel):
    """Job details scraped from the page being filled in."""

    job_title: Optional[str] = None
    company: Optional[str] = None
    job_description: Optional[str] = None
    requirements: Optional[List[str]] = None
    platform: Optional[str] = None

    @field_validator("job_title", "company", "job_description", "platform", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("requirements", mode="before")
    @classmethod
    def _string_items_only(cls, value: Any) -> Optional[List[str]]:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, str)]


class StructuredGenerationRequest(JobContext):
    """Discrete fields for server-side prompt assembly."""

    question: str = Field(..., min_length=1)
    length: AnswerLength = AnswerLength.MEDIUM
    cv_text: str = Field(..., min_length=MIN_CV_CHARS)
    page_url: Optional[str] = None

    @field_validator("length", mode="before")
    @classmethod
    def _unknown_length_is_medium(cls, value: Any) -> AnswerLength:
        try:
            return AnswerLength(value)
        except ValueError:
            return AnswerLength.MEDIUM

    @field_validator("page_url", mode="before")
    @classmethod
    def _blank_url_to_none(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @property
    def job_context(self) -> JobContext:
        return JobContext(
            job_title=self.job_title,
            company=self.company,
            job_description=self.job_description,
            requirements=self.requirements,
            platform=self.platform,
        )


class LegacyGenerationRequest(_CamelModel):
    """Pre-built prompt pair that bypasses prompt assembly. Sizes are checked by the gateway."""

    system_prompt: str
    user_prompt: str
    temperature: float = DEFAULT_TEMPERATURE

    @field_validator("temperature", mode="before")
    @classmethod
    def _non_numeric_is_default(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return DEFAULT_TEMPERATURE
        try:
            temperature = float(value)
        except OverflowError:
            return DEFAULT_TEMPERATURE
        if not math.isfinite(temperature):
            return DEFAULT_TEMPERATURE
        return min(MAX_TEMPERATURE, max(MIN_TEMPERATURE, temperature))

    def to_prompt_pair(self) -> "PromptPair":
        return PromptPair(
            system_prompt=self.system_prompt,
            user_prompt=self.user_prompt,
            temperature=self.temperature,
        )


class PromptPair(_CamelModel):
    system_prompt: str
    user_prompt: str
    temperature: float = DEFAULT_TEMPERATURE


class GenerateResponse(BaseModel):
    answer: str
    provider: str
    model: str
    warnings: List[str] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    expires_at: int = Field(..., alias="expiresAt", description="Epoch milliseconds")


class HealthResponse(BaseModel):
    ok: bool = True
    provider: str
    model: str


class UploadResponse(BaseModel):
    success: bool = True
    text: str
    filename: str
    size: int

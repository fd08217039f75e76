"""
LLM Service with Multi-Provider Fallback

Architecture:
- build_fallback_chain(settings): pure, returns the ordered provider list
  (primary first, then every cloud provider that has an API key)
- try_in_order(chain, prompt, call): stateless loop, returns the first
  non-empty answer and collects every failure into one combined error
- LLMService: LangChain chat models behind the chain, bounded by a single
  upstream timeout

No automatic retries: a failed provider is skipped, never retried.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import mlflow
import tiktoken
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from backend.answer_proxy.config import Settings, get_settings
from backend.answer_proxy.errors import UpstreamError, UpstreamTimeout
from backend.answer_proxy.models.schemas import DEFAULT_TEMPERATURE, PromptPair
from backend.answer_proxy.utils.prometheus_metrics import record_llm_call, record_llm_usage

# Setup structured logging
logger = logging.getLogger(__name__)

PROVIDER_ERROR_CHARS = 200
LOCAL_API_KEY_PLACEHOLDER = "not-needed"


class LLMProvider(str, Enum):
    """Available LLM providers."""
    GROQ = "groq"
    OPENAI = "openai"
    GEMINI = "gemini"
    MISTRAL = "mistral"
    TOGETHER = "together"
    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    LOCALAI = "localai"


LOCAL_PROVIDERS = frozenset({LLMProvider.OLLAMA, LLMProvider.LMSTUDIO, LLMProvider.LOCALAI})

# Order in which cloud providers are appended after the primary.
CLOUD_FALLBACK_ORDER: Tuple[LLMProvider, ...] = (
    LLMProvider.GROQ,
    LLMProvider.GEMINI,
    LLMProvider.MISTRAL,
    LLMProvider.TOGETHER,
    LLMProvider.OPENAI,
)


@dataclass(frozen=True)
class ProviderConfig:
    model: str
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None


@dataclass(frozen=True)
class ProviderEntry:
    name: LLMProvider
    config: ProviderConfig


@dataclass
class ModelResult:
    text: str
    provider: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)


@dataclass
class ProviderFailure:
    provider: str
    error: str
    status: Optional[int] = None
    empty_answer: bool = False
    timed_out: bool = False


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def get_provider_config(provider: LLMProvider, settings: Settings, *, primary: bool = False) -> ProviderConfig:
    """Resolve model, key and base URL for one provider from settings."""
    name = provider.value
    api_key = _secret(getattr(settings, f"{name}_api_key", None))
    model = getattr(settings, f"{name}_model")
    if primary:
        api_key = api_key or _secret(settings.llm_api_key)
        model = settings.llm_model or model
    return ProviderConfig(
        model=model,
        api_key=api_key,
        base_url=getattr(settings, f"{name}_base_url", None),
    )


def _is_usable(provider: LLMProvider, config: ProviderConfig) -> bool:
    return provider in LOCAL_PROVIDERS or bool(config.api_key)


def build_fallback_chain(settings: Settings) -> List[ProviderEntry]:
    """
    Ordered providers to try: the configured primary, then (if fallback is
    enabled) each cloud provider with an API key. Providers without
    credentials are left out, so an empty list means nothing is configured.

    Raises:
        ValueError: if ``llm_provider`` names an unknown provider
    """
    try:
        primary = LLMProvider(settings.llm_provider.strip().lower())
    except ValueError:
        available = ", ".join(p.value for p in LLMProvider)
        raise ValueError(f"Unknown provider: {settings.llm_provider}. Available: {available}")

    chain: List[ProviderEntry] = []
    primary_config = get_provider_config(primary, settings, primary=True)
    if _is_usable(primary, primary_config):
        chain.append(ProviderEntry(primary, primary_config))

    if settings.llm_fallback_enabled:
        for provider in CLOUD_FALLBACK_ORDER:
            if provider == primary:
                continue
            config = get_provider_config(provider, settings)
            if _is_usable(provider, config):
                chain.append(ProviderEntry(provider, config))

    return chain


ProviderCall = Callable[[ProviderEntry, PromptPair], Awaitable[ModelResult]]


def _failure_from_exception(entry: ProviderEntry, exc: Exception) -> ProviderFailure:
    return ProviderFailure(
        provider=entry.name.value,
        error=f"{type(exc).__name__}: {exc}"[:PROVIDER_ERROR_CHARS],
        status=getattr(exc, "status_code", None),
        timed_out=isinstance(exc, asyncio.TimeoutError) or "Timeout" in type(exc).__name__,
    )


def _combined_error(failures: List[ProviderFailure]) -> Exception:
    if failures and all(f.timed_out for f in failures):
        return UpstreamTimeout()
    details = "; ".join(f"{f.provider}: {f.error}" for f in failures)
    statuses = [f.status for f in failures if f.status is not None]
    if failures and all(f.empty_answer for f in failures):
        return UpstreamError("No answer from provider")
    return UpstreamError(status=statuses[-1] if statuses else None, details=details)


async def try_in_order(chain: List[ProviderEntry], prompt: PromptPair, call: ProviderCall) -> ModelResult:
    """Try each provider in order until one returns a non-empty answer."""
    failures: List[ProviderFailure] = []

    for entry in chain:
        try:
            logger.debug("Trying provider %s", entry.name.value)
            result = await call(entry, prompt)
        except Exception as e:
            failure = _failure_from_exception(entry, e)
            logger.warning("Provider %s failed: %s", failure.provider, type(e).__name__)
            failures.append(failure)
            continue

        if not result.text or not result.text.strip():
            logger.warning("Provider %s returned no answer", entry.name.value)
            failures.append(ProviderFailure(entry.name.value, "No answer from provider", empty_answer=True))
            continue

        if failures:
            logger.info("Fallback succeeded with %s after %d failure(s)", entry.name.value, len(failures))
        return result

    if not failures:
        failures.append(ProviderFailure("none", "No providers configured"))
    raise _combined_error(failures)


def _message_text(content: Any) -> str:
    """LangChain content is either a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


class LLMService:
    """
    Multi-provider LLM service with automatic fallback.

    Flow:
    1. Try the primary provider
    2. On failure or empty answer, try the next provider in the chain
    3. If every provider fails, raise UpstreamError (or UpstreamTimeout)

    The whole chain is bounded by ``upstream_timeout_seconds``.
    """

    configured = True

    def __init__(self, settings: Optional[Settings] = None, chain: Optional[List[ProviderEntry]] = None):
        self.settings = settings or get_settings()
        self.chain = chain if chain is not None else build_fallback_chain(self.settings)

        if not self.chain:
            raise RuntimeError("No LLM providers configured. Set GROQ_API_KEY (or another provider key).")

        self._clients: Dict[LLMProvider, Any] = {}
        self._encoding = None

        if self.settings.mlflow_enabled:
            mlflow.set_tracking_uri(self.settings.mlflow_tracking_uri)
            mlflow.set_experiment(self.settings.experiment_name)

        logger.info("LLM Service initialized: chain=%s", " -> ".join(e.name.value for e in self.chain))

    @property
    def provider_name(self) -> str:
        return self.chain[0].name.value

    @property
    def model_name(self) -> str:
        return self.chain[0].config.model

    def count_tokens(self, text: str) -> int:
        """
        Estimate token count when the provider reports no usage.
        Note: Approximation for every provider.
        """
        try:
            if self._encoding is None:
                self._encoding = tiktoken.encoding_for_model("gpt-4")
            return len(self._encoding.encode(text))
        except Exception as e:
            logger.warning(f"Token counting failed: {e}. Using word estimate.")
            return int(len(text.split()) * 1.3)

    def _build_client(self, entry: ProviderEntry):
        timeout = self.settings.upstream_timeout_seconds
        if entry.name == LLMProvider.GEMINI:
            return ChatGoogleGenerativeAI(
                model=entry.config.model,
                google_api_key=entry.config.api_key,
                temperature=DEFAULT_TEMPERATURE,
                timeout=timeout,
                max_retries=0,
            )
        return ChatOpenAI(
            model=entry.config.model,
            api_key=entry.config.api_key or LOCAL_API_KEY_PLACEHOLDER,
            base_url=entry.config.base_url,
            temperature=DEFAULT_TEMPERATURE,
            timeout=timeout,
            max_retries=0,  # No automatic retries
        )

    def _client_for(self, entry: ProviderEntry, temperature: float):
        """One client per provider. The per-request copy shares its HTTP connection pool."""
        if entry.name not in self._clients:
            self._clients[entry.name] = self._build_client(entry)
        return self._clients[entry.name].model_copy(update={"temperature": temperature})

    def _usage(self, response: Any, prompt: PromptPair, text: str) -> Dict[str, int]:
        metadata = getattr(response, "usage_metadata", None)
        if isinstance(metadata, dict) and "input_tokens" in metadata:
            input_tokens = int(metadata.get("input_tokens", 0))
            output_tokens = int(metadata.get("output_tokens", 0))
        else:
            input_tokens = self.count_tokens(prompt.system_prompt + prompt.user_prompt)
            output_tokens = self.count_tokens(text)
        return {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        }

    async def _call_provider(self, entry: ProviderEntry, prompt: PromptPair) -> ModelResult:
        client = self._client_for(entry, prompt.temperature)
        messages = [
            SystemMessage(content=prompt.system_prompt),
            HumanMessage(content=prompt.user_prompt),
        ]

        start_time = time.time()
        try:
            response = await client.ainvoke(messages)
        except Exception:
            record_llm_call(entry.name.value, entry.config.model, "failure", time.time() - start_time)
            raise

        text = _message_text(response.content)
        record_llm_call(entry.name.value, entry.config.model, "success", time.time() - start_time)
        usage = self._usage(response, prompt, text)
        record_llm_usage(entry.name.value, usage["input_tokens"], usage["output_tokens"])
        return ModelResult(text=text, provider=entry.name.value, model=entry.config.model, usage=usage)

    def _log_run(self, result: ModelResult, temperature: float, duration: float) -> None:
        if not self.settings.mlflow_enabled:
            return
        try:
            with mlflow.start_run(nested=True, run_name="llm_generation"):
                mlflow.log_param("provider", result.provider)
                mlflow.log_param("model", result.model)
                mlflow.log_param("temperature", temperature)
                mlflow.log_param("input_tokens", result.usage.get("input_tokens", 0))
                mlflow.log_metric("duration_seconds", duration)
                mlflow.log_metric("output_tokens", result.usage.get("output_tokens", 0))
                mlflow.log_metric("total_tokens", result.usage.get("total_tokens", 0))
        except Exception as e:
            logger.warning(f"MLflow logging failed: {e}")

    async def generate(self, prompt: PromptPair) -> ModelResult:
        """
        Generate an answer for a prompt pair.

        Raises:
            UpstreamError: every provider failed or returned nothing
            UpstreamTimeout: the chain did not finish within the upstream timeout
        """
        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                try_in_order(self.chain, prompt, self._call_provider),
                timeout=self.settings.upstream_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("LLM generation timed out after %.0fs", self.settings.upstream_timeout_seconds)
            raise UpstreamTimeout()

        duration = time.time() - start_time
        logger.info("LLM generation succeeded via %s in %.2fs", result.provider, duration)
        self._log_run(result, prompt.temperature, duration)
        return result

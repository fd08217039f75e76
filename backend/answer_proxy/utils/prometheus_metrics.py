"""
Prometheus Metrics for the answer proxy.

Metrics Categories:
- Request metrics: requests per endpoint and terminal outcome
- Security metrics: auth rejections by reason, rate-limit rejections by scope
- LLM metrics: calls, latency and token usage per provider
- Prompt metrics: question class mix and prompt sizes

Labels carry only codes and names. No CV text, prompt or answer content is
ever recorded.
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST METRICS
# =============================================================================

gateway_requests_total = Counter(
    'gateway_requests_total',
    'Total number of gateway requests by terminal outcome',
    ['endpoint', 'outcome']  # outcome: succeeded, validation_failed, auth_failed, ...
)

gateway_latency_seconds = Histogram(
    'gateway_latency_seconds',
    'Gateway request duration in seconds',
    ['endpoint'],
    buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0]
)


# =============================================================================
# SECURITY METRICS
# =============================================================================

auth_failures_total = Counter(
    'auth_failures_total',
    'Install token rejections',
    ['reason']  # missing, format, sig, payload, expired, iat, jti
)

rate_limited_total = Counter(
    'rate_limited_total',
    'Requests rejected by the rate limiter',
    ['scope']  # register, generate, ip
)


# =============================================================================
# LLM-SPECIFIC METRICS
# =============================================================================

llm_api_calls_total = Counter(
    'llm_api_calls_total',
    'Total number of LLM API calls',
    ['provider', 'model', 'status']
)

llm_latency_seconds = Histogram(
    'llm_latency_seconds',
    'LLM API call duration in seconds',
    ['provider'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 45.0, 90.0]
)

llm_tokens_total = Counter(
    'llm_tokens_total',
    'Total number of tokens consumed',
    ['provider', 'token_type']  # token_type: input, output
)


# =============================================================================
# PROMPT METRICS
# =============================================================================

question_class_total = Counter(
    'question_class_total',
    'Structured requests by question class',
    ['question_class']
)

payload_format_total = Counter(
    'payload_format_total',
    'Generation requests by payload format',
    ['payload_format']  # structured, legacy
)

prompt_chars = Histogram(
    'prompt_chars',
    'Prompt size in characters',
    ['part'],  # system, user
    buckets=[500, 1000, 2500, 5000, 10000, 20000, 30000, 60000, 120000]
)


# =============================================================================
# METRIC RECORDING FUNCTIONS
# =============================================================================

def record_request(endpoint: str, outcome: str, duration: float) -> None:
    gateway_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()
    gateway_latency_seconds.labels(endpoint=endpoint).observe(duration)


def record_auth_failure(reason: str) -> None:
    auth_failures_total.labels(reason=reason).inc()


def record_rate_limited(scope: str) -> None:
    rate_limited_total.labels(scope=scope).inc()


def record_llm_call(provider: str, model: str, status: str, duration: float) -> None:
    llm_api_calls_total.labels(provider=provider, model=model, status=status).inc()
    llm_latency_seconds.labels(provider=provider).observe(duration)


def record_llm_usage(provider: str, input_tokens: int, output_tokens: int) -> None:
    llm_tokens_total.labels(provider=provider, token_type='input').inc(input_tokens)
    llm_tokens_total.labels(provider=provider, token_type='output').inc(output_tokens)


def record_prompt(payload_format: str, system_len: int, user_len: int, question_class: str = None) -> None:
    payload_format_total.labels(payload_format=payload_format).inc()
    if question_class:
        question_class_total.labels(question_class=question_class).inc()
    prompt_chars.labels(part='system').observe(system_len)
    prompt_chars.labels(part='user').observe(user_len)


# =============================================================================
# METRICS ENDPOINT
# =============================================================================

def get_metrics() -> tuple[bytes, str]:
    """
    Get Prometheus metrics in text format.

    Returns:
        Tuple of (metrics_bytes, content_type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request, Response

from backend.answer_proxy.config import Settings
from backend.answer_proxy.core.recipe import PromptBuilder
from backend.answer_proxy.core.security import TokenAuthenticator, TokenClaims, bearer_token
from backend.answer_proxy.errors import AuthError, RateLimitExceeded, ServerMisconfigured
from backend.answer_proxy.services.gateway import RequestGateway
from backend.answer_proxy.utils.prometheus_metrics import record_auth_failure, record_rate_limited
from backend.answer_proxy.utils.rate_limiter import FixedWindowRateLimiter, RateLimitDecision, token_fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallIdentity:
    fingerprint: str
    claims: TokenClaims


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authenticator(request: Request) -> TokenAuthenticator:
    authenticator = request.app.state.authenticator
    if authenticator is None:
        raise ServerMisconfigured()
    return authenticator


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_recipe(request: Request) -> PromptBuilder:
    return request.app.state.recipe


def get_llm_service(request: Request):
    return request.app.state.llm_service


def require_model_backend(llm=Depends(get_llm_service)):
    if not getattr(llm, "configured", True):
        raise ServerMisconfigured()
    return llm


def get_gateway(
    recipe: PromptBuilder = Depends(get_recipe),
    llm=Depends(get_llm_service),
) -> RequestGateway:
    return RequestGateway(recipe=recipe, llm_service=llm)


async def require_install_token(
    authorization: Optional[str] = Header(default=None),
    authenticator: TokenAuthenticator = Depends(get_authenticator),
) -> InstallIdentity:
    token = bearer_token(authorization)
    result = authenticator.verify(token)
    if not result.ok:
        record_auth_failure(result.reason.value)
        logger.info("Install token rejected: %s", result.reason.value)
        raise AuthError(result.reason.value)
    return InstallIdentity(fingerprint=token_fingerprint(token), claims=result.claims)


async def _enforce(limiter: FixedWindowRateLimiter, scope: str, identity: str, limit: int) -> RateLimitDecision:
    try:
        return await limiter.enforce(scope, identity, limit)
    except RateLimitExceeded:
        record_rate_limited(scope)
        raise


async def limit_register(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> None:
    decision = await _enforce(limiter, "register", client_ip(request), settings.rate_limit_register_per_hour)
    response.headers.update(decision.headers())


async def limit_generate(
    request: Request,
    response: Response,
    identity: InstallIdentity = Depends(require_install_token),
    settings: Settings = Depends(get_app_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> InstallIdentity:
    """
    Keyed by (token, ip) so a leaked token cannot be amplified across many
    IPs, plus a per-IP ceiling across all tokens so one IP cannot multiply
    its quota by registering many tokens.
    """
    ip = client_ip(request)
    decision = await _enforce(
        limiter, "generate", f"{identity.fingerprint}:{ip}", settings.rate_limit_generate_per_hour
    )
    await _enforce(limiter, "ip", ip, settings.rate_limit_ip_per_hour)
    response.headers.update(decision.headers())
    return identity

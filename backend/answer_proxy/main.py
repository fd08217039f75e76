from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.answer_proxy.api.routes.auth import router as auth_router
from backend.answer_proxy.api.routes.cv import router as cv_router
from backend.answer_proxy.api.routes.generate import router as generate_router
from backend.answer_proxy.api.routes.health import router as health_router
from backend.answer_proxy.config import Settings, get_settings
from backend.answer_proxy.core.recipe_registry import load_recipe
from backend.answer_proxy.core.security import TokenAuthenticator
from backend.answer_proxy.errors import GatewayError
from backend.answer_proxy.services.llm_service import LLMService, build_fallback_chain
from backend.answer_proxy.services.null_llm import NullLLMService
from backend.answer_proxy.utils.prometheus_metrics import record_request
from backend.answer_proxy.utils.rate_limiter import build_rate_limiter

logger = logging.getLogger(__name__)

_OUTCOMES = {
    200: "succeeded",
    400: "validation_failed",
    401: "auth_failed",
    413: "validation_failed",
    429: "rate_limited",
    502: "upstream_failed",
    504: "upstream_failed",
}


def _build_authenticator(settings: Settings) -> Optional[TokenAuthenticator]:
    if settings.token_secret is None or not settings.token_secret.get_secret_value():
        logger.error("Missing TOKEN_SECRET env var. Token-gated routes will answer 500.")
        return None
    return TokenAuthenticator(
        settings.token_secret.get_secret_value(),
        ttl_seconds=settings.token_ttl_days * 24 * 3600,
        clock_skew_seconds=settings.token_clock_skew_seconds,
        min_nonce_length=settings.token_min_nonce_length,
    )


def _build_llm_service(settings: Settings):
    try:
        chain = build_fallback_chain(settings)
    except ValueError as e:
        logger.error("Invalid LLM provider configuration: %s", e)
        chain = []

    if not chain:
        logger.error("Missing model API key for provider '%s'. /api/generate will answer 500.", settings.llm_provider)
        return NullLLMService(provider_name=settings.llm_provider, model_name=settings.llm_model or "none")
    return LLMService(settings=settings, chain=chain)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")

    app.state.settings = settings
    app.state.authenticator = _build_authenticator(settings)
    app.state.rate_limiter = build_rate_limiter(settings)
    app.state.recipe = load_recipe(settings.recipe_name)
    app.state.llm_service = _build_llm_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.middleware("http")
    async def record_outcome(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            outcome = _OUTCOMES.get(response.status_code, "server_error")
            record_request(endpoint, outcome, time.time() - start)
        return response

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_content(), headers=exc.headers or None)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(generate_router)
    app.include_router(cv_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("backend.answer_proxy.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

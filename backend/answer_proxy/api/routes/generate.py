from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request

from backend.answer_proxy.api.deps import InstallIdentity, get_gateway, limit_generate, require_model_backend
from backend.answer_proxy.errors import PromptTooLarge, ValidationFailed
from backend.answer_proxy.models.schemas import GenerateResponse
from backend.answer_proxy.services.gateway import RequestGateway

router = APIRouter(prefix="/api", tags=["generate"])

MAX_JSON_BODY_BYTES = 1024 * 1024  # 1MB


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if len(raw) > MAX_JSON_BODY_BYTES:
        raise PromptTooLarge("Request body too large")
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationFailed("Invalid JSON body")


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: Request,
    _identity: InstallIdentity = Depends(limit_generate),
    _llm=Depends(require_model_backend),
    gateway: RequestGateway = Depends(get_gateway),
):
    body = await _json_body(request)
    return await gateway.generate(body)

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from backend.answer_proxy.api.deps import get_authenticator, limit_register
from backend.answer_proxy.core.security import TokenAuthenticator
from backend.answer_proxy.models.schemas import RegisterResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", response_model=RegisterResponse)
async def register(
    _limit: None = Depends(limit_register),
    authenticator: TokenAuthenticator = Depends(get_authenticator),
):
    issued = authenticator.issue()
    logger.info("Install token issued")
    return RegisterResponse(token=issued.token, expires_at=issued.expires_at_ms)

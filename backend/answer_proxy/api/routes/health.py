from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from backend.answer_proxy.api.deps import get_llm_service
from backend.answer_proxy.models.schemas import HealthResponse
from backend.answer_proxy.utils.prometheus_metrics import get_metrics

router = APIRouter(tags=["health"])


@router.get("/api/health", response_model=HealthResponse)
async def health(llm=Depends(get_llm_service)):
    return HealthResponse(ok=True, provider=llm.provider_name, model=llm.model_name)


@router.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    data, content_type = get_metrics()
    return Response(content=data, media_type=content_type)

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from backend.answer_proxy.api.deps import InstallIdentity, get_app_settings, limit_generate
from backend.answer_proxy.config import Settings
from backend.answer_proxy.errors import ValidationFailed
from backend.answer_proxy.models.schemas import UploadResponse
from backend.answer_proxy.services.gateway import process_cv_upload

router = APIRouter(prefix="/api/cv", tags=["cv"])


@router.post("/upload", response_model=UploadResponse)
async def upload_cv(
    _identity: InstallIdentity = Depends(limit_generate),
    settings: Settings = Depends(get_app_settings),
    cv: Optional[UploadFile] = File(default=None),
):
    if cv is None:
        raise ValidationFailed("No file provided")

    # one byte past the limit is enough to detect oversize
    content = await cv.read(settings.max_upload_bytes + 1)
    return process_cv_upload(content, cv.filename, cv.content_type, settings.max_upload_bytes)

"""
CardLink Backend — Public Route Handlers
==========================================

What:  Unauthenticated endpoints: profile pages, vCard download redirect
       and photo upload for the submission form.
Why:   Everything here is reachable by anyone holding a QR code, so
       disabled and deleted clients are invisible (404) and responses use
       the public-safe projection.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cardlink.database import get_db_session
from cardlink.schemas.client import ClientPublicProfile, PhotoUploadResult
from cardlink.schemas.common import ApiResponse
from cardlink.services.client_service import ClientService, UploadedPhoto, get_client_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Public"])


@router.get(
    "/api/public/profiles/{slug_or_id}",
    response_model=ApiResponse[ClientPublicProfile],
    summary="Public profile by slug or id",
)
async def get_public_profile(
    slug_or_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientPublicProfile]:
    client = await service.public_profile(db, slug_or_id)
    return ApiResponse(data=ClientPublicProfile.model_validate(client), message="Profile retrieved")


@router.get(
    "/vcard/{client_id}",
    response_class=RedirectResponse,
    status_code=302,
    summary="Redirect to the stored vCard file of an active client",
)
async def download_vcard(
    client_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> RedirectResponse:
    url = await service.vcard_redirect_url(db, client_id)
    return RedirectResponse(url=url, status_code=302)


@router.post(
    "/api/upload-photo",
    status_code=201,
    response_model=ApiResponse[PhotoUploadResult],
    summary="Upload a profile photo (PNG/JPEG)",
)
async def upload_photo(
    photo: UploadFile = File(..., description="Profile photo (PNG, JPG or JPEG)"),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[PhotoUploadResult]:
    try:
        content = await photo.read()
    finally:
        await photo.close()

    logger.info("Received photo upload: filename=%s, size=%d bytes", photo.filename or "unknown", len(content))
    url = await service.upload_photo(
        UploadedPhoto(filename=photo.filename or "", content=content, content_length=photo.size),
        actor="public",
    )
    return ApiResponse(data=PhotoUploadResult(photo_url=url), message="Photo uploaded successfully")

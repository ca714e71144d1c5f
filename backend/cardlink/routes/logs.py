"""
CardLink Backend — Audit Log Route
====================================

What:  GET /api/logs, newest first, optionally for one client.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cardlink.database import get_db_session
from cardlink.schemas.audit import AuditLogResponse
from cardlink.schemas.common import ApiResponse, PageMeta
from cardlink.services.audit_service import audit_service

router = APIRouter(prefix="/api", tags=["Audit"])


@router.get(
    "/logs",
    response_model=ApiResponse[List[AuditLogResponse]],
    summary="List audit log entries",
)
async def list_logs(
    client_id: Optional[UUID] = Query(default=None, description="Only entries for this client"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[AuditLogResponse]]:
    entries, total = await audit_service.list_logs(db, client_id=client_id, skip=skip, limit=limit)
    return ApiResponse(
        data=[AuditLogResponse.model_validate(e) for e in entries],
        message=f"{len(entries)} of {total} log entries",
        meta=PageMeta(total=total, skip=skip, limit=limit).model_dump(),
    )

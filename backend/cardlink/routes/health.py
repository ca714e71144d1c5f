"""
CardLink Backend — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs a trivial query against the database and reports storage
       configuration and render-slot occupancy.

Status levels:
    - healthy:   database reachable and storage configured
    - degraded:  database reachable, storage credentials missing
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from cardlink import __version__
from cardlink.database import engine
from cardlink.schemas.common import ApiResponse, HealthResponse
from cardlink.services.media_service import media_service
from cardlink.services.pdf_service import pdf_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=ApiResponse[HealthResponse],
    summary="Service health check",
)
async def health_check(response: Response) -> ApiResponse[HealthResponse]:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    storage_status = "configured" if media_service.is_configured else "unconfigured"
    if storage_status == "unconfigured" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return ApiResponse(
        success=overall != "unhealthy",
        data=HealthResponse(
            status=overall,
            version=__version__,
            database=db_status,
            storage=storage_status,
            pdf_gate="busy" if pdf_service.gate.busy else "idle",
            uptime_seconds=round(time.time() - _start_time, 2),
        ),
        message=f"Service is {overall}",
    )

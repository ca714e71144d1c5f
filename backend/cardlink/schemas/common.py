"""
CardLink Backend — Shared Response Schemas
============================================

What:  The response envelope every endpoint answers with, plus the health model.
Why:   Clients parse one shape for success and failure alike:
       { success, data, message, meta? }
"""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    What:  Standard envelope for every API response.

    Fields:
        success: False on every error response
        data:    Operation payload (null on errors)
        message: Human-readable summary, never raw internal error text
        meta:    Pagination on listings; error code and request id on errors
    """
    success: bool = Field(default=True)
    data: Optional[T] = Field(default=None)
    message: str = Field(default="")
    meta: Optional[Dict[str, Any]] = Field(default=None)


class PageMeta(BaseModel):
    """Pagination metadata returned alongside listings."""
    total: int = Field(description="Total number of records matching the filters")
    skip: int = Field(description="Number of records skipped")
    limit: int = Field(description="Maximum records in this page")


def envelope(
    data: Any = None,
    message: str = "",
    success: bool = True,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Plain-dict envelope for handlers that build JSONResponse directly."""
    body: Dict[str, Any] = {"success": success, "data": data, "message": message}
    if meta is not None:
        body["meta"] = meta
    return body


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer checks.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Object storage: configured, unconfigured")
    pdf_gate: str = Field(description="Render slot state: idle, busy")
    uptime_seconds: float = Field(description="Seconds since service started")

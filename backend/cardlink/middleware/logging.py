"""
CardLink Backend — Request Logging Middleware
===============================================

What:  One access-log line per request: method, path, status, duration,
       request id, client IP and, for admin writes, the acting admin.
Why:   Correlates slow or failing requests (PDF renders, uploads) with the
       service logs and audit entries that share the request id and actor.

What we log vs what we DON'T log (privacy):
    Log:       method, path, status, duration, IP, request ID, X-Actor-Email
    Don't log: request bodies (client contact details), uploaded files
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from cardlink.middleware.request_id import request_id_var

logger = logging.getLogger("cardlink.access")

UNLOGGED_PATHS = frozenset({"/health"})
WRITE_METHODS = frozenset({"POST", "PUT", "DELETE"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """5xx logs at ERROR, 4xx at WARNING, the rest at INFO. Health probes are skipped."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in UNLOGGED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        rid = request_id_var.get("")
        client_ip = request.client.host if request.client else "unknown"
        actor = request.headers.get("X-Actor-Email", "") if request.method in WRITE_METHODS else ""

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.log(
            _level_for(response.status_code),
            "%s %s %d %.1fms [%s] from %s%s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            rid,
            client_ip,
            f" as {actor}" if actor else "",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "actor": actor or None,
            },
        )
        return response

"""
CardLink Backend — Request ID Middleware
==========================================

What:  Assigns a correlation id to each request and returns it in X-Request-ID.
Why:   Every log line of one request, and the error envelope the caller
       receives, carry the same id.
How:   Reuses the caller's X-Request-ID when it is a short token, otherwise
       mints 8 hex chars; stored in a ContextVar and on request.state.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Incoming ids end up in log lines; anything else is replaced
_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_request_id(incoming: str) -> str:
    if incoming and _SAFE_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get("X-Request-ID", ""))
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

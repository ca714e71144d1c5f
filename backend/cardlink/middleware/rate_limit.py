"""
CardLink Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding window limit on the public submission endpoint.
Why:   POST /api/clients is unauthenticated and writes a row, renders a
       PDF and emails the admin on every call.
How:   Keeps the request timestamps per IP in memory; timestamps older
       than the window are dropped on each request.

Algorithm: Sliding Window Counter
    1. Each IP gets a list of request timestamps
    2. On each request, remove timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise, add current timestamp and allow through

    In-memory state is per process. Multi-worker deployments need a
    shared store for an exact limit.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, FrozenSet, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from cardlink.config import settings
from cardlink.middleware.request_id import request_id_var
from cardlink.schemas.common import envelope

logger = logging.getLogger(__name__)

# (method, path) pairs the limiter applies to
LIMITED_ROUTES: FrozenSet[Tuple[str, str]] = frozenset({("POST", "/api/clients")})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Configuration (from settings, overridable per instance for tests):
        rate_limit_requests: Max requests per window (default: 100)
        rate_limit_window:   Window duration in seconds (default: 900)

    Response on rate limit:
        HTTP 429 in the standard envelope, Retry-After header set to the
        seconds until the oldest request leaves the window.
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path.rstrip("/") or "/"
        if (request.method, path) not in LIMITED_ROUTES:
            return await call_next(request)

        # Behind a proxy this is the proxy's address
        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )

        now = time.time()
        window_start = now - self.window_seconds

        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        if len(self._requests[client_ip]) >= self.max_requests:
            oldest = self._requests[client_ip][0]
            retry_after = int(oldest + self.window_seconds - now) + 1

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(self._requests[client_ip]),
                self.window_seconds,
            )

            return JSONResponse(
                status_code=429,
                content=envelope(
                    success=False,
                    message=f"Too many submissions. Please wait {retry_after} seconds before retrying.",
                    meta={
                        "error": "rate_limit_exceeded",
                        "request_id": request_id_var.get(""),
                        "details": {"retry_after": retry_after},
                    },
                ),
                headers={"Retry-After": str(retry_after)},
            )

        self._requests[client_ip].append(now)

        # Every 1000th tracked request, drop IPs with no requests left in the window
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))

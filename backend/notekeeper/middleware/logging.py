"""
Notekeeper Backend - Access Log Middleware
===========================================

What:  One log line per request on the "notekeeper.access" logger.
How:   Measures wall time around the downstream call and picks the level
       from the status code (5xx ERROR, 4xx WARNING, otherwise INFO).
When:  Runs inside RequestIDMiddleware, so the correlation id is set.

Logged: method, path, status, duration, request id, client address.
Not logged: form bodies, uploaded images, session cookies.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from notekeeper.middleware.request_id import request_id_var

logger = logging.getLogger("notekeeper.access")

# Probed every few seconds by orchestrators; logging them drowns real traffic
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log with latency and status-based severity."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response

"""
Notekeeper Backend - Request ID Middleware
===========================================

What:  Assigns a correlation id to each request and echoes it back.
How:   Reuses the client's X-Request-ID when sent, otherwise generates a
       short UUID. The id lives in a ContextVar so loggers and exception
       handlers can read it without access to the request object.
Who:   Read by the access log and by every error response body.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local, so concurrent requests on one event loop never share it
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets request_id_var and request.state.request_id, adds X-Request-ID to responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response

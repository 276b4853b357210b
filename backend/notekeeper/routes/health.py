"""
Notekeeper Backend - Health Check Route
========================================

What:  Liveness and storage connectivity for load balancers and monitors.
How:   Asks the storage client for a lightweight probe (SELECT 1 on SQL,
       always true in memory).

Status:
    healthy   → storage reachable (HTTP 200)
    unhealthy → storage unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from notekeeper import __version__
from notekeeper.schemas.note import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Storage unreachable", "model": HealthResponse}},
)
async def health_check(request: Request):
    client = request.app.state.storage_client
    try:
        connected = await client.health_check()
    except Exception as e:
        logger.warning("Health check: storage unreachable: %s", str(e))
        connected = False

    body = HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        storage="connected" if connected else "disconnected",
        backend=client.backend_name,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not connected:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body

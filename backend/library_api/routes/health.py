"""
Library API - Health Check Routes
=================================

What:  GET / (welcome message) and GET /health (database and pool probe).

Status levels:
    - healthy:   SELECT 1 succeeded
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from library_api import __version__
from library_api.database import Gateway, get_gateway
from library_api.schemas.library import HealthResponse, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/", response_model=MessageResponse)
async def welcome() -> MessageResponse:
    return MessageResponse(message="Welcome to the Library Management System API!")


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(gateway: Gateway = Depends(get_gateway)):
    """
    Probe the database with SELECT 1 and report pool usage.

    The pool numbers show whether leased connections are being returned:
    `checked_out` should fall back to zero when the service is idle.
    """
    connected = await gateway.ping()
    health = HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        database="connected" if connected else "disconnected",
        pool=gateway.pool_status(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not connected:
        return JSONResponse(status_code=503, content=health.model_dump())
    return health

"""
Library API - Report Route
==========================

What:  GET /reports/stats, aggregate counts over books, students and loans.
"""

from fastapi import APIRouter, Depends

from library_api.database import Gateway, get_gateway
from library_api.schemas.library import ErrorResponse, StatsResponse
from library_api.services.catalog_service import catalog_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Aggregate library statistics",
)
async def get_stats(gateway: Gateway = Depends(get_gateway)):
    return await catalog_service.get_stats(gateway)

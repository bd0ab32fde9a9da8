"""
Library API - Transaction Route
===============================

What:  POST /transactions/issue, the one route with its own transaction.
How:   Delegates to IssuanceService. Its error body differs from the other
       routes (``success: false`` plus a fixed rollback message), so the
       route catches failures itself instead of leaving them to the
       global handlers.

Status codes on failure:
    404  student or book not found
    409  loan limit reached / no copies available
    500  statement or procedure failed
    503  no connection could be leased
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from library_api.database import Gateway, get_gateway
from library_api.exceptions import LibraryError
from library_api.middleware.request_id import request_id_var
from library_api.schemas.library import ErrorResponse, IssueRequest, IssueResponse
from library_api.services.issuance_service import issuance_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["Transactions"])

ROLLBACK_MESSAGE = "Transaction failed. (ROLLBACK)"


def _rollback_response(status_code: int, error: str, rid: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": ROLLBACK_MESSAGE,
            "error": error,
            "request_id": rid,
        },
    )


@router.post(
    "/issue",
    response_model=IssueResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Issue a book to a student inside one transaction",
)
async def issue_book(
    payload: IssueRequest,
    gateway: Gateway = Depends(get_gateway),
):
    try:
        result = await issuance_service.issue_book(gateway, payload.book_id, payload.student_id)
    except LibraryError as exc:
        rid = request_id_var.get("")
        logger.warning("[%s] Issue failed: %s | Context: %s", rid, exc.detail, exc.context)
        return _rollback_response(exc.status_code, exc.detail, rid)
    except Exception as exc:
        rid = request_id_var.get("")
        logger.error("[%s] Issue failed unexpectedly: %s", rid, exc, exc_info=True)
        return _rollback_response(500, str(exc), rid)
    return IssueResponse(success=result.success, message=result.message)

"""
Library API - SQL Feature Route Handlers
========================================

What:  Endpoints that each exercise one kind of database object: DDL on
       test_table, a view, a stored procedure, a scalar function and a
       cursor-backed listing.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from library_api.database import Gateway, get_gateway
from library_api.schemas.library import (
    ErrorResponse,
    MessageResponse,
    ReturnRequest,
    TotalIssuedResponse,
)
from library_api.services.sql_feature_service import sql_feature_service

router = APIRouter(tags=["SQL Features"], responses={500: {"model": ErrorResponse}})


# ── DDL ───────────────────────────────────────────────────────────────────

@router.post("/sql/ddl/create", response_model=MessageResponse)
async def create_table(gateway: Gateway = Depends(get_gateway)) -> MessageResponse:
    await sql_feature_service.create_test_table(gateway)
    return MessageResponse(message="test_table created successfully")


@router.post("/sql/ddl/alter", response_model=MessageResponse)
async def alter_table(gateway: Gateway = Depends(get_gateway)) -> MessageResponse:
    await sql_feature_service.alter_test_table(gateway)
    return MessageResponse(message="test_table altered successfully")


@router.post("/sql/ddl/drop", response_model=MessageResponse)
async def drop_table(gateway: Gateway = Depends(get_gateway)) -> MessageResponse:
    await sql_feature_service.drop_test_table(gateway)
    return MessageResponse(message="test_table dropped successfully")


# ── Views, Procedures, Functions, Cursors ─────────────────────────────────

@router.get("/views/issued", summary="Rows of v_currently_issued_books")
async def currently_issued(gateway: Gateway = Depends(get_gateway)) -> List[Dict[str, Any]]:
    return await sql_feature_service.list_currently_issued(gateway)


@router.post(
    "/procedures/return",
    response_model=MessageResponse,
    summary="Return a book through sp_return_book",
)
async def return_book(
    payload: ReturnRequest,
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    await sql_feature_service.return_book(gateway, payload.issue_id)
    return MessageResponse(message="Book returned successfully via SP")


@router.get("/functions/total-issued/{student_id}", response_model=TotalIssuedResponse)
async def total_issued(
    student_id: int,
    gateway: Gateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return await sql_feature_service.total_issued(gateway, student_id)


@router.get("/sql/cursor", summary="Book titles collected by a cursor loop")
async def cursor_titles(gateway: Gateway = Depends(get_gateway)) -> List[Dict[str, Any]]:
    return await sql_feature_service.list_book_titles(gateway)

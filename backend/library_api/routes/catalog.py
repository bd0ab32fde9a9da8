"""
Library API - Catalog Route Handlers
====================================

What:  List/create books and students, update/delete books, list issued books.
How:   Each handler is one call into CatalogService.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from library_api.database import Gateway, get_gateway
from library_api.schemas.library import (
    BookCreatedResponse,
    BookPayload,
    ErrorResponse,
    IssuedBookRow,
    MessageResponse,
    StudentCreatedResponse,
    StudentPayload,
)
from library_api.services.catalog_service import catalog_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"], responses={500: {"model": ErrorResponse}})


@router.get("/books", summary="List all books ordered by title")
async def list_books(gateway: Gateway = Depends(get_gateway)) -> List[Dict[str, Any]]:
    return await catalog_service.list_books(gateway)


@router.get("/students", summary="List all students ordered by name")
async def list_students(gateway: Gateway = Depends(get_gateway)) -> List[Dict[str, Any]]:
    return await catalog_service.list_students(gateway)


@router.get(
    "/issued-books",
    response_model=List[IssuedBookRow],
    summary="List issue records with book title and student name",
)
async def list_issued_books(gateway: Gateway = Depends(get_gateway)) -> List[Dict[str, Any]]:
    return await catalog_service.list_issued_books(gateway)


@router.post("/books", response_model=BookCreatedResponse, summary="Add a book")
async def add_book(
    payload: BookPayload,
    gateway: Gateway = Depends(get_gateway),
) -> BookCreatedResponse:
    """
    Insert a book. Copy counters are stored as sent; the database rejects
    available_copies outside 0..total_copies.
    """
    book_id = await catalog_service.add_book(gateway, payload)
    return BookCreatedResponse(message="Book added successfully", book_id=book_id)


@router.post("/students", response_model=StudentCreatedResponse, summary="Add a student")
async def add_student(
    payload: StudentPayload,
    gateway: Gateway = Depends(get_gateway),
) -> StudentCreatedResponse:
    student_id = await catalog_service.add_student(gateway, payload)
    return StudentCreatedResponse(message="Student added successfully", student_id=student_id)


@router.put("/books/{book_id}", response_model=MessageResponse, summary="Replace a book's fields")
async def update_book(
    book_id: int,
    payload: BookPayload,
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    await catalog_service.update_book(gateway, book_id, payload)
    return MessageResponse(message="Book updated successfully")


@router.delete("/books/{book_id}", response_model=MessageResponse, summary="Delete a book")
async def delete_book(
    book_id: int,
    gateway: Gateway = Depends(get_gateway),
) -> MessageResponse:
    """Succeeds whether or not a row matched, like the DELETE it runs."""
    await catalog_service.delete_book(gateway, book_id)
    return MessageResponse(message="Book deleted successfully")

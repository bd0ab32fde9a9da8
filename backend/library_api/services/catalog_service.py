"""
Library API - Catalog Service
=============================

What:  Books, students, issued-book listing and the aggregate report.
How:   One Core statement per operation, run through the pooled gateway.
       Failures keep the database's message in `detail` and get the
       route's message ("Error fetching books", ...) for the response.

Nothing here enforces lending rules. Copy counters are written as sent;
the table's check constraint rejects impossible values.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, delete, func, insert, select, update

from library_api.database import Gateway, Params, Statement
from library_api.exceptions import LibraryError
from library_api.models.library import books, issued_books, students
from library_api.schemas.library import BookPayload, StudentPayload

logger = logging.getLogger(__name__)


async def run_statement(
    gateway: Gateway, failure_message: str, statement: Statement, params: Params = None
) -> Union[List[Dict[str, Any]], int]:
    """Execute through the gateway, relabelling any failure with `failure_message`."""
    try:
        return await gateway.execute(statement, params)
    except LibraryError as exc:
        logger.error("%s: %s", failure_message, exc.detail)
        raise exc.relabel(failure_message)


class CatalogService:
    """Statement-per-route operations over books and students."""

    async def list_books(self, gateway: Gateway) -> List[Dict[str, Any]]:
        return await run_statement(
            gateway, "Error fetching books", select(books).order_by(books.c.title)
        )

    async def list_students(self, gateway: Gateway) -> List[Dict[str, Any]]:
        return await run_statement(
            gateway, "Error fetching students", select(students).order_by(students.c.name)
        )

    async def list_issued_books(self, gateway: Gateway) -> List[Dict[str, Any]]:
        """Issue records joined with book title and student name, newest first."""
        statement = (
            select(
                issued_books.c.issue_id,
                books.c.title.label("book_title"),
                students.c.name.label("student_name"),
                issued_books.c.issue_date,
                issued_books.c.due_date,
                issued_books.c.return_date,
            )
            .select_from(issued_books)
            .join(books, issued_books.c.book_id == books.c.book_id)
            .join(students, issued_books.c.student_id == students.c.student_id)
            .order_by(issued_books.c.issue_date.desc())
        )
        return await run_statement(gateway, "Error fetching issued books", statement)

    async def add_book(self, gateway: Gateway, payload: BookPayload) -> int:
        """Insert a book and return its generated id."""
        statement = insert(books).values(**payload.model_dump()).returning(books.c.book_id)
        rows = await run_statement(gateway, "Error adding book", statement)
        book_id = rows[0]["book_id"]
        logger.info("Book %s added: %s", book_id, payload.title)
        return book_id

    async def add_student(self, gateway: Gateway, payload: StudentPayload) -> int:
        statement = insert(students).values(**payload.model_dump()).returning(students.c.student_id)
        rows = await run_statement(gateway, "Error adding student", statement)
        student_id = rows[0]["student_id"]
        logger.info("Student %s added", student_id)
        return student_id

    async def update_book(self, gateway: Gateway, book_id: int, payload: BookPayload) -> int:
        """Overwrite every column of one book. Returns the affected row count."""
        statement = (
            update(books)
            .where(books.c.book_id == book_id)
            .values(**payload.model_dump())
        )
        return await run_statement(gateway, "Error updating book", statement)

    async def delete_book(self, gateway: Gateway, book_id: int) -> int:
        """
        Delete one book. A missing id affects zero rows and is not an error.
        """
        affected = await run_statement(
            gateway, "Error deleting book", delete(books).where(books.c.book_id == book_id)
        )
        if not affected:
            logger.info("Delete of book %s matched no rows", book_id)
        return affected

    async def get_stats(self, gateway: Gateway) -> Dict[str, Optional[Dict[str, Any]]]:
        """Counts and sums over the three tables, one pooled query each."""
        book_stats = select(
            func.count().label("total_books"),
            func.sum(books.c.total_copies).label("total_copies"),
            func.sum(books.c.available_copies).label("total_available"),
        ).select_from(books)
        student_stats = select(
            func.count().label("total_students"),
            func.avg(students.c.total_books_issued).label("avg_books_per_student"),
        ).select_from(students)
        issued_stats = select(
            func.count().label("total_issued"),
            func.count(case((issued_books.c.return_date.is_(None), 1))).label("currently_issued"),
        ).select_from(issued_books)

        result = {}
        for key, statement in (
            ("books", book_stats),
            ("students", student_stats),
            ("issued", issued_stats),
        ):
            rows = await run_statement(gateway, "Error fetching stats", statement)
            result[key] = rows[0] if rows else None
        return result


catalog_service = CatalogService()

"""
Library API - Issue-Book Transaction Workflow
=============================================

What:  Atomically checks that a student may borrow and that a copy is free,
       then records the loan through the issuance procedure.
Who:   Called by POST /transactions/issue.

Workflow:
    lease ─▶ begin ─▶ student check ─▶ book check ─▶ procedure ─▶ commit
                           │                │             │          │
                           └────────────────┴─────────────┴──────────┴─▶ rollback
    The lease is released in every case.

    Both precondition reads lock their rows (SELECT ... FOR UPDATE) on the
    same connection that later calls the procedure, so two concurrent
    issues of the last copy are serialized by the database: the second
    one reads the decremented count and fails with "no copies available".

    The procedure is injected. It must apply all of its changes within
    the caller's transaction or raise, and the workflow does not repeat
    the counter updates it performs.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy import bindparam, select, text

from library_api.config import settings
from library_api.database import Gateway, ScopedConnection
from library_api.exceptions import IssuanceError
from library_api.models.library import books, students

logger = logging.getLogger(__name__)

IssueProcedure = Callable[[ScopedConnection, Optional[int], Optional[int]], Awaitable[None]]

STUDENT_ISSUED_COUNT = (
    select(students.c.total_books_issued)
    .where(students.c.student_id == bindparam("student_id"))
    .with_for_update()
)

BOOK_AVAILABLE_COPIES = (
    select(books.c.available_copies)
    .where(books.c.book_id == bindparam("book_id"))
    .with_for_update()
)

SP_ISSUE_BOOK = text("CALL sp_issue_book(:book_id, :student_id)")


async def call_issue_procedure(
    connection: ScopedConnection, book_id: Optional[int], student_id: Optional[int]
) -> None:
    """Default issuance capability: the sp_issue_book stored procedure."""
    await connection.execute(SP_ISSUE_BOOK, {"book_id": book_id, "student_id": student_id})


@dataclass(frozen=True)
class IssueResult:
    success: bool
    message: str


class IssuanceService:
    """
    Runs the issue-book unit of work on one leased connection.

    Args:
        issue_procedure: capability that records the loan inside the
            caller's transaction (defaults to sp_issue_book)
        max_books: per-student loan limit
    """

    SUCCESS_MESSAGE = "Book issued successfully! (Transaction COMMIT)"

    def __init__(
        self,
        issue_procedure: IssueProcedure = call_issue_procedure,
        max_books: int = settings.max_books_per_student,
    ):
        self._issue_procedure = issue_procedure
        self._max_books = max_books

    async def issue_book(
        self, gateway: Gateway, book_id: Optional[int], student_id: Optional[int]
    ) -> IssueResult:
        """
        Issue `book_id` to `student_id` or leave no trace.

        Raises:
            PoolExhaustedError: no connection could be leased (no transaction started)
            IssuanceError: a precondition failed (transaction rolled back)
            QueryError: a statement or the procedure failed (transaction rolled back)
        """
        async with gateway.lease() as connection:
            await connection.begin()
            logger.info("Transaction started: book=%s student=%s", book_id, student_id)
            try:
                await self._check_student(connection, student_id)
                await self._check_book(connection, book_id)

                await self._issue_procedure(connection, book_id, student_id)
                logger.info("Issue procedure applied: book=%s student=%s", book_id, student_id)

                await connection.commit()
            except Exception as exc:
                await self._rollback(connection, exc)
                raise

        logger.info("Transaction committed: book=%s student=%s", book_id, student_id)
        return IssueResult(success=True, message=self.SUCCESS_MESSAGE)

    async def _check_student(self, connection: ScopedConnection, student_id: Optional[int]) -> None:
        row = await connection.fetch_one(STUDENT_ISSUED_COUNT, {"student_id": student_id})
        if row is None:
            raise IssuanceError(
                IssuanceError.STUDENT_NOT_FOUND,
                detail="Student not found.",
                context={"student_id": student_id},
            )
        if row["total_books_issued"] >= self._max_books:
            raise IssuanceError(
                IssuanceError.LIMIT_REACHED,
                detail=f"Student has reached the maximum limit of {self._max_books} books.",
                context={"student_id": student_id, "total_books_issued": row["total_books_issued"]},
            )

    async def _check_book(self, connection: ScopedConnection, book_id: Optional[int]) -> None:
        row = await connection.fetch_one(BOOK_AVAILABLE_COPIES, {"book_id": book_id})
        if row is None:
            raise IssuanceError(
                IssuanceError.BOOK_NOT_FOUND,
                detail="Book not found.",
                context={"book_id": book_id},
            )
        if row["available_copies"] <= 0:
            raise IssuanceError(
                IssuanceError.NO_COPIES,
                detail="No available copies of this book.",
                context={"book_id": book_id},
            )

    async def _rollback(self, connection: ScopedConnection, cause: Exception) -> None:
        """Roll back after `cause`; a failing rollback is logged, `cause` still propagates."""
        logger.warning("Issue transaction failed, rolling back: %s", cause)
        try:
            await connection.rollback()
        except Exception:
            logger.error("Rollback failed; releasing connection anyway", exc_info=True)
            return
        logger.info("Transaction rolled back.")


issuance_service = IssuanceService()

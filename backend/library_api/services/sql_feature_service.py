"""
Library API - SQL Feature Service
=================================

What:  Demonstration routes for DDL, views, stored procedures, functions and
       cursors. Each is a single pass-through statement.

Database objects (created by the 001 migration):
    v_currently_issued_books   view of loans with no return date
    sp_return_book(issue_id)   sets return_date; t_after_book_return
                               restores the book and student counters
    f_get_total_issued(id)     scalar function over students
    f_list_book_titles()       walks books with an explicit cursor

The DDL statements act on `test_table` only, never on the lending tables.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from library_api.database import Gateway
from library_api.services.catalog_service import run_statement

logger = logging.getLogger(__name__)

CREATE_TEST_TABLE = text(
    "CREATE TABLE IF NOT EXISTS test_table (id SERIAL PRIMARY KEY, name VARCHAR(100))"
)
ALTER_TEST_TABLE = text("ALTER TABLE test_table ADD COLUMN description TEXT")
DROP_TEST_TABLE = text("DROP TABLE IF EXISTS test_table")

SELECT_CURRENTLY_ISSUED = text("SELECT * FROM v_currently_issued_books")
CALL_RETURN_BOOK = text("CALL sp_return_book(:issue_id)")
SELECT_TOTAL_ISSUED = text("SELECT f_get_total_issued(:student_id) AS total_issued")
SELECT_BOOK_TITLES = text("SELECT * FROM f_list_book_titles()")


class SqlFeatureService:
    """One pass-through statement per demonstration route; failures carry the route's message."""

    async def create_test_table(self, gateway: Gateway) -> None:
        await run_statement(gateway, "Error creating table", CREATE_TEST_TABLE)
        logger.info("test_table created")

    async def alter_test_table(self, gateway: Gateway) -> None:
        # Not idempotent: a second call fails because the column exists
        await run_statement(gateway, "Error altering table", ALTER_TEST_TABLE)
        logger.info("test_table altered")

    async def drop_test_table(self, gateway: Gateway) -> None:
        await run_statement(gateway, "Error dropping table", DROP_TEST_TABLE)
        logger.info("test_table dropped")

    async def list_currently_issued(self, gateway: Gateway) -> List[Dict[str, Any]]:
        return await run_statement(gateway, "Error fetching from view", SELECT_CURRENTLY_ISSUED)

    async def return_book(self, gateway: Gateway, issue_id: Optional[int]) -> None:
        """Close a loan; counters are restored by the after-return trigger."""
        await run_statement(
            gateway, "Error calling sp_return_book", CALL_RETURN_BOOK, {"issue_id": issue_id}
        )
        logger.info("Issue %s returned", issue_id)

    async def total_issued(self, gateway: Gateway, student_id: int) -> Dict[str, Any]:
        rows = await run_statement(
            gateway,
            "Error calling f_get_total_issued",
            SELECT_TOTAL_ISSUED,
            {"student_id": student_id},
        )
        return rows[0] if rows else {"total_issued": None}

    async def list_book_titles(self, gateway: Gateway) -> List[Dict[str, Any]]:
        return await run_statement(gateway, "Error calling cursor procedure", SELECT_BOOK_TITLES)


sql_feature_service = SqlFeatureService()

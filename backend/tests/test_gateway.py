"""
Library API - Data Access Gateway Tests
=======================================

What:  Gateway and ScopedConnection against a real aiosqlite database.

What we test:
    ✅ Pooled execute returns row dicts or affected counts
    ✅ Database failures surface as QueryError with the driver message
    ✅ Leased connections commit, roll back and always return to the pool
    ✅ Pool exhaustion raises PoolExhaustedError after the pool timeout
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import insert, select

from library_api.database import Gateway, build_engine
from library_api.config import Settings
from library_api.exceptions import IssuanceError, PoolExhaustedError, QueryError
from library_api.models.library import books


async def _add_book(gateway: Gateway, title: str = "Dune", copies: int = 3) -> int:
    rows = await gateway.execute(
        insert(books)
        .values(title=title, author="Frank Herbert", total_copies=copies, available_copies=copies)
        .returning(books.c.book_id)
    )
    return rows[0]["book_id"]


class TestPooledExecute:

    @pytest.mark.asyncio
    async def test_select_returns_row_dicts(self, sqlite_gateway):
        book_id = await _add_book(sqlite_gateway)

        rows = await sqlite_gateway.execute(select(books))

        assert rows == [{
            "book_id": book_id,
            "title": "Dune",
            "author": "Frank Herbert",
            "total_copies": 3,
            "available_copies": 3,
        }]

    @pytest.mark.asyncio
    async def test_text_statement_with_params(self, sqlite_gateway):
        await _add_book(sqlite_gateway, title="Solaris")

        rows = await sqlite_gateway.execute(
            "SELECT title FROM books WHERE title = :title", {"title": "Solaris"}
        )

        assert rows == [{"title": "Solaris"}]

    @pytest.mark.asyncio
    async def test_dml_returns_affected_count(self, sqlite_gateway):
        await _add_book(sqlite_gateway)

        affected = await sqlite_gateway.execute("UPDATE books SET available_copies = 1")
        missing = await sqlite_gateway.execute("DELETE FROM books WHERE book_id = 999")

        assert affected == 1
        assert missing == 0

    @pytest.mark.asyncio
    async def test_syntax_error_raises_query_error(self, sqlite_gateway):
        with pytest.raises(QueryError) as exc_info:
            await sqlite_gateway.execute("SELEC * FROM books")

        assert "syntax error" in exc_info.value.detail
        assert sqlite_gateway.pool_status()["checked_out"] == 0

    @pytest.mark.asyncio
    async def test_check_constraint_violation_raises_query_error(self, sqlite_gateway):
        with pytest.raises(QueryError) as exc_info:
            await _add_book(sqlite_gateway, copies=-1)

        assert "CHECK constraint failed" in exc_info.value.detail


class TestLease:

    @pytest.mark.asyncio
    async def test_commit_persists(self, sqlite_gateway):
        async with sqlite_gateway.lease() as connection:
            await connection.begin()
            await connection.execute(
                "INSERT INTO books (title, author, total_copies, available_copies) "
                "VALUES ('Emma', 'Jane Austen', 1, 1)"
            )
            await connection.commit()

        rows = await sqlite_gateway.execute("SELECT title FROM books")
        assert rows == [{"title": "Emma"}]

    @pytest.mark.asyncio
    async def test_rollback_discards(self, sqlite_gateway):
        async with sqlite_gateway.lease() as connection:
            await connection.begin()
            await connection.execute(
                "INSERT INTO books (title, author, total_copies, available_copies) "
                "VALUES ('Emma', 'Jane Austen', 1, 1)"
            )
            await connection.rollback()
            assert connection.in_transaction is False

        assert await sqlite_gateway.execute("SELECT title FROM books") == []

    @pytest.mark.asyncio
    async def test_fetch_one(self, sqlite_gateway):
        book_id = await _add_book(sqlite_gateway)

        async with sqlite_gateway.lease() as connection:
            found = await connection.fetch_one(
                "SELECT available_copies FROM books WHERE book_id = :id", {"id": book_id}
            )
            missing = await connection.fetch_one(
                "SELECT available_copies FROM books WHERE book_id = :id", {"id": 999}
            )

        assert found == {"available_copies": 3}
        assert missing is None

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self, sqlite_gateway):
        with pytest.raises(RuntimeError):
            async with sqlite_gateway.lease() as connection:
                await connection.begin()
                assert sqlite_gateway.pool_status()["checked_out"] == 1
                raise RuntimeError("boom")

        assert sqlite_gateway.pool_status()["checked_out"] == 0

    @pytest.mark.asyncio
    async def test_open_transaction_rolled_back_on_release(self, sqlite_gateway):
        async with sqlite_gateway.lease() as connection:
            await connection.begin()
            await connection.execute(
                "INSERT INTO books (title, author, total_copies, available_copies) "
                "VALUES ('Emma', 'Jane Austen', 1, 1)"
            )

        assert await sqlite_gateway.execute("SELECT title FROM books") == []

    @pytest.mark.asyncio
    async def test_statement_error_inside_lease(self, sqlite_gateway):
        async with sqlite_gateway.lease() as connection:
            await connection.begin()
            with pytest.raises(QueryError):
                await connection.execute("SELECT * FROM no_such_table")
            await connection.rollback()

    @pytest.mark.asyncio
    async def test_pool_exhausted(self, sqlite_gateway):
        async with sqlite_gateway.lease(), sqlite_gateway.lease():
            assert sqlite_gateway.pool_status()["checked_out"] == 2
            with pytest.raises(PoolExhaustedError) as exc_info:
                async with sqlite_gateway.lease():
                    pass
            assert exc_info.value.status_code == 503

            with pytest.raises(PoolExhaustedError):
                await sqlite_gateway.execute("SELECT 1")

        assert sqlite_gateway.pool_status()["checked_out"] == 0


class TestLeaseRelease:
    """Close failures on a stubbed engine."""

    def _gateway_with_broken_close(self):
        raw = MagicMock()
        raw.close = AsyncMock(side_effect=OSError("broken pipe"))
        engine = MagicMock()
        engine.connect = AsyncMock(return_value=raw)
        return Gateway(engine), raw

    @pytest.mark.asyncio
    async def test_close_failure_does_not_mask_block_error(self):
        gateway, raw = self._gateway_with_broken_close()

        with pytest.raises(IssuanceError) as exc_info:
            async with gateway.lease():
                raise IssuanceError(IssuanceError.NO_COPIES)

        assert exc_info.value.reason == IssuanceError.NO_COPIES
        raw.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_failure_after_clean_block_is_query_error(self):
        gateway, raw = self._gateway_with_broken_close()

        with pytest.raises(QueryError) as exc_info:
            async with gateway.lease():
                pass

        assert exc_info.value.detail == "broken pipe"


class TestHealthHelpers:

    @pytest.mark.asyncio
    async def test_ping(self, sqlite_gateway):
        assert await sqlite_gateway.ping() is True

    @pytest.mark.asyncio
    async def test_pool_status_reports_capacity(self, sqlite_gateway):
        status = sqlite_gateway.pool_status()

        assert status["size"] == 2
        assert status["checked_out"] == 0


class TestBuildEngine:

    def test_pool_sized_from_settings(self):
        config = Settings(
            database_url="sqlite+aiosqlite:///:memory:",
            db_pool_size=4,
            db_max_overflow=0,
            db_pool_timeout=2.5,
        )
        engine = build_engine(config)

        pool = engine.sync_engine.pool
        assert pool.size() == 4
        assert pool.timeout() == 2.5

    def test_rejects_sync_driver(self):
        with pytest.raises(ValueError):
            Settings(database_url="postgresql://library@localhost/library")

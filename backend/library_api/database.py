"""
Library API - Data Access Gateway
=================================

What:  Async SQLAlchemy engine (the connection pool), declarative base, and the
       gateway every route goes through to reach the database.
How:   Two ways in:
       1. `Gateway.execute()` borrows a pooled connection for a single
          statement, commits, returns rows or an affected count.
       2. `Gateway.lease()` hands out one connection for a caller-driven
          transaction and returns it to the pool on every exit path.
Who:   Services receive the gateway through the `get_gateway` dependency.
When:  Engine is created at module import; it is disposed by the app lifespan.

Connection Pooling Strategy:
    AsyncAdaptedQueuePool with fixed capacity (pool_size + max_overflow).
    A checkout that waits longer than pool_timeout raises PoolExhaustedError.
    pool_pre_ping discards connections that died while idle.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlalchemy.sql import Executable

from library_api.config import Settings, settings
from library_api.exceptions import PoolExhaustedError, QueryError

logger = logging.getLogger(__name__)

Statement = Union[str, Executable]
Params = Optional[Mapping[str, Any]]
Rows = List[Dict[str, Any]]


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for the library tables; its metadata feeds Alembic."""
    pass


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(config: Settings = settings, **overrides: Any) -> AsyncEngine:
    """
    Create the async engine that owns the connection pool.

    The queue pool is requested explicitly so pool sizing and timeouts
    apply to every dialect, including file-backed SQLite in tests.
    """
    options: Dict[str, Any] = {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": config.db_pool_size,
        "max_overflow": config.db_max_overflow,
        "pool_timeout": config.db_pool_timeout,
        "pool_pre_ping": config.db_pool_pre_ping,
        "pool_recycle": config.db_pool_recycle,
        "echo": config.log_level == "DEBUG",
    }
    if config.db_isolation_level:
        options["isolation_level"] = config.db_isolation_level
    options.update(overrides)
    return create_async_engine(config.database_url, **options)


def _as_executable(statement: Statement) -> Executable:
    return text(statement) if isinstance(statement, str) else statement


def _collect(result: Result) -> Union[Rows, int]:
    """Rows as plain dicts when the statement returns rows, else the affected count."""
    if result.returns_rows:
        return [dict(row) for row in result.mappings().all()]
    return result.rowcount


def _query_error(exc: Exception) -> QueryError:
    """Wrap a driver/SQLAlchemy failure, keeping the database's own message."""
    orig = getattr(exc, "orig", None)
    detail = str(orig) if orig is not None else str(exc)
    return QueryError(detail=detail, context={"error_type": type(exc).__name__})


class ScopedConnection:
    """
    One connection leased from the pool for exclusive use.

    Only handed out by `Gateway.lease()`, which closes it afterwards.
    Every database failure surfaces as QueryError.
    """

    def __init__(self, connection: AsyncConnection):
        self._connection = connection

    @property
    def in_transaction(self) -> bool:
        return self._connection.in_transaction()

    async def begin(self) -> None:
        try:
            await self._connection.begin()
        except sa_exc.SQLAlchemyError as exc:
            raise _query_error(exc) from exc

    async def execute(self, statement: Statement, params: Params = None) -> Union[Rows, int]:
        try:
            result = await self._connection.execute(_as_executable(statement), params)
            return _collect(result)
        except sa_exc.SQLAlchemyError as exc:
            raise _query_error(exc) from exc

    async def fetch_one(self, statement: Statement, params: Params = None) -> Optional[Dict[str, Any]]:
        """First row of a SELECT as a dict, or None when nothing matched."""
        rows = await self.execute(statement, params)
        if isinstance(rows, int) or not rows:
            return None
        return rows[0]

    async def commit(self) -> None:
        try:
            await self._connection.commit()
        except sa_exc.SQLAlchemyError as exc:
            raise _query_error(exc) from exc

    async def rollback(self) -> None:
        try:
            await self._connection.rollback()
        except sa_exc.SQLAlchemyError as exc:
            raise _query_error(exc) from exc


class Gateway:
    """
    Statement execution against the pool.

    `execute()` hides the connection lifecycle; `lease()` exposes it only
    within an `async with` block so release cannot be skipped.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def _checkout(self) -> AsyncConnection:
        try:
            return await self._engine.connect()
        except sa_exc.TimeoutError as exc:
            pool = self._engine.sync_engine.pool
            timeout = pool.timeout() if hasattr(pool, "timeout") else None
            logger.warning("Connection pool exhausted (timeout=%s)", timeout)
            raise PoolExhaustedError(timeout=timeout) from exc
        except (sa_exc.SQLAlchemyError, OSError) as exc:
            raise _query_error(exc) from exc

    async def execute(self, statement: Statement, params: Params = None) -> Union[Rows, int]:
        """
        Run one parameterized statement on a pooled connection.

        Returns:
            List of row dicts for row-returning statements (SELECT, CALL with
            a result set, INSERT ... RETURNING), otherwise the affected count.

        Raises:
            PoolExhaustedError: no connection within the pool timeout
            QueryError: the database rejected the statement
        """
        connection = await self._checkout()
        try:
            async with connection.begin():
                result = await connection.execute(_as_executable(statement), params)
                return _collect(result)
        except sa_exc.SQLAlchemyError as exc:
            raise _query_error(exc) from exc
        finally:
            await connection.close()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[ScopedConnection]:
        """
        Check out one connection for a caller-managed transaction.

        Closing the connection returns it to the pool and rolls back a
        transaction the caller left open. If the block raised, a failure to
        close is logged and the block's exception propagates.
        """
        connection = await self._checkout()
        logger.debug("Connection leased")
        failed = False
        try:
            yield ScopedConnection(connection)
        except BaseException:
            failed = True
            raise
        finally:
            try:
                await connection.close()
            except (sa_exc.SQLAlchemyError, OSError) as exc:
                if not failed:
                    raise _query_error(exc) from exc
                logger.error("Releasing connection failed after an earlier error", exc_info=True)
            else:
                logger.debug("Connection released")

    async def ping(self) -> bool:
        try:
            await self.execute("SELECT 1")
        except (QueryError, PoolExhaustedError) as exc:
            logger.warning("Database ping failed: %s", exc.detail)
            return False
        return True

    def pool_status(self) -> Dict[str, int]:
        """Capacity and current checkout counts of the pool."""
        pool = self._engine.sync_engine.pool
        return {
            "size": pool.size() if hasattr(pool, "size") else 0,
            "checked_out": pool.checkedout() if hasattr(pool, "checkedout") else 0,
            "overflow": max(pool.overflow(), 0) if hasattr(pool, "overflow") else 0,
        }

    async def dispose(self) -> None:
        await self._engine.dispose()


# ── Process-wide pool ─────────────────────────────────────────────────────
engine = build_engine()
gateway = Gateway(engine)


def get_gateway() -> Gateway:
    """FastAPI dependency returning the process-wide gateway."""
    return gateway


async def dispose_engine() -> None:
    """Close every pooled connection. Called from the lifespan shutdown."""
    await gateway.dispose()

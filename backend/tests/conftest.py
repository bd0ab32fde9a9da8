"""
Library API - Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the test suite.
How:   pytest auto-discovers this file; fixtures are function-scoped.

Fixtures:
    ├── mock_gateway:    MagicMock gateway with an AsyncMock `execute`
    ├── library:         in-memory books/students/issued_books
    ├── fake_gateway:    transactional fake over `library` (row lock, pool slots)
    ├── sqlite_gateway:  real Gateway on a throwaway aiosqlite file
    ├── client_factory:  HTTPX AsyncClient bound to the app with a given gateway
    └── test_client:     client_factory(mock_gateway)
"""

import asyncio
import copy
import os
import tempfile
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Settings are read at import time, so the environment is set first
_test_dir = tempfile.mkdtemp(prefix="library_api_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_dir}/test.db"
os.environ["LOG_LEVEL"] = "WARNING"

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import AsyncAdaptedQueuePool  # noqa: E402

from library_api.database import Base, Gateway, get_gateway  # noqa: E402
from library_api.exceptions import PoolExhaustedError, QueryError  # noqa: E402
from library_api.models import library as library_models  # noqa: E402,F401


# ══════════════════════════════════════════════════════════════════════════
# In-memory database double
# ══════════════════════════════════════════════════════════════════════════


class FakeLibrary:
    """Rows keyed by id, mutated only by the fake issue procedure."""

    def __init__(self):
        self.books: Dict[int, Dict[str, Any]] = {}
        self.students: Dict[int, Dict[str, Any]] = {}
        self.issued: List[Dict[str, Any]] = []

    def add_book(self, book_id: int, total: int, available: int) -> None:
        self.books[book_id] = {
            "book_id": book_id,
            "title": f"Book {book_id}",
            "author": "Author",
            "total_copies": total,
            "available_copies": available,
        }

    def add_student(self, student_id: int, issued: int = 0) -> None:
        self.students[student_id] = {
            "student_id": student_id,
            "name": f"Student {student_id}",
            "email": f"s{student_id}@example.edu",
            "total_books_issued": issued,
        }

    def snapshot(self):
        return copy.deepcopy((self.books, self.students, self.issued))

    def restore(self, snapshot) -> None:
        self.books, self.students, self.issued = snapshot


class FakeScopedConnection:
    """
    Mimics ScopedConnection over FakeLibrary.

    Statements are recognised by their parameter names: the two precondition
    reads bind one id each, the issue procedure binds both. `begin()` takes
    the gateway's row lock until commit/rollback, the way the FOR UPDATE
    reads serialize concurrent issues on a real database.
    """

    def __init__(self, gateway: "FakeGateway"):
        self._gateway = gateway
        self._snapshot = None
        self.in_transaction = False

    async def begin(self) -> None:
        await self._gateway.row_lock.acquire()
        self._snapshot = self._gateway.library.snapshot()
        self.in_transaction = True

    async def execute(self, statement, params: Optional[Dict[str, Any]] = None):
        await asyncio.sleep(0)
        self._gateway.statements.append(statement)
        library = self._gateway.library
        params = params or {}
        keys = set(params)

        if keys == {"student_id"}:
            student = library.students.get(params["student_id"])
            return [{"total_books_issued": student["total_books_issued"]}] if student else []
        if keys == {"book_id"}:
            book = library.books.get(params["book_id"])
            return [{"available_copies": book["available_copies"]}] if book else []
        if keys == {"book_id", "student_id"}:
            self._issue(params["book_id"], params["student_id"])
            return 0
        raise AssertionError(f"Unexpected statement: {statement}")

    async def fetch_one(self, statement, params=None):
        rows = await self.execute(statement, params)
        return rows[0] if rows else None

    def _issue(self, book_id: int, student_id: int) -> None:
        library = self._gateway.library
        library.books[book_id]["available_copies"] -= 1
        if self._gateway.fail_procedure:
            # Counter already decremented, loan not yet recorded
            raise QueryError(detail="Deadlock found when trying to get lock")
        library.students[student_id]["total_books_issued"] += 1
        library.issued.append({
            "issue_id": len(library.issued) + 1,
            "book_id": book_id,
            "student_id": student_id,
            "issue_date": date.today(),
            "due_date": date.today() + timedelta(days=14),
            "return_date": None,
        })

    async def commit(self) -> None:
        await asyncio.sleep(0)
        if self._gateway.fail_commit:
            raise QueryError(detail="could not serialize access due to concurrent update")
        self._finish()

    async def rollback(self) -> None:
        self._gateway.rollbacks += 1
        self._gateway.library.restore(self._snapshot)
        self._finish()

    def _finish(self) -> None:
        self.in_transaction = False
        self._snapshot = None
        self._gateway.row_lock.release()


class FakeGateway:
    """Gateway double with a bounded number of leasable connections."""

    def __init__(self, library: FakeLibrary, capacity: int = 3, timeout: float = 0.05):
        self.library = library
        self.capacity = capacity
        self._timeout = timeout
        self._slots = asyncio.Semaphore(capacity)
        self.row_lock = asyncio.Lock()
        self.checked_out = 0
        self.rollbacks = 0
        self.statements: List[Any] = []
        self.fail_procedure = False
        self.fail_commit = False

    @asynccontextmanager
    async def lease(self):
        try:
            await asyncio.wait_for(self._slots.acquire(), self._timeout)
        except asyncio.TimeoutError:
            raise PoolExhaustedError(timeout=self._timeout)
        self.checked_out += 1
        connection = FakeScopedConnection(self)
        try:
            yield connection
        finally:
            if connection.in_transaction:
                await connection.rollback()
            self.checked_out -= 1
            self._slots.release()


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def mock_gateway():
    """
    MagicMock standing in for the Gateway.

    Usage:
        mock_gateway.execute.return_value = [{"book_id": 1, ...}]
        mock_gateway.execute.side_effect = QueryError(detail="...")
    """
    gateway = MagicMock(spec=Gateway)
    gateway.execute = AsyncMock(return_value=[])
    gateway.ping = AsyncMock(return_value=True)
    gateway.pool_status.return_value = {"size": 10, "checked_out": 0, "overflow": 0}
    return gateway


@pytest.fixture
def library():
    """
    Seed data:
        book 1: 2 of 2 copies available
        book 2: 1 of 1 copy available
        book 3: 0 of 4 copies available
        student 1: no loans
        student 2: 5 loans (at the limit)
        student 3: no loans
    """
    lib = FakeLibrary()
    lib.add_book(1, total=2, available=2)
    lib.add_book(2, total=1, available=1)
    lib.add_book(3, total=4, available=0)
    lib.add_student(1)
    lib.add_student(2, issued=5)
    lib.add_student(3)
    return lib


@pytest.fixture
def fake_gateway(library):
    return FakeGateway(library)


@pytest_asyncio.fixture
async def sqlite_gateway(tmp_path):
    """Real Gateway on a file-backed SQLite database with a 2-connection pool."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'library.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=2,
        max_overflow=0,
        pool_timeout=0.2,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    gateway = Gateway(engine)
    yield gateway
    await engine.dispose()


@pytest.fixture
def client_factory():
    """
    Builds an HTTPX AsyncClient talking to the app with `gateway` injected.

    Usage:
        async with client_factory(fake_gateway) as client:
            response = await client.post("/transactions/issue", json={...})
    """
    from library_api.main import app

    @asynccontextmanager
    async def factory(gateway):
        app.dependency_overrides[get_gateway] = lambda: gateway
        transport = ASGITransport(app=app)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()

    return factory


@pytest_asyncio.fixture
async def test_client(client_factory, mock_gateway):
    async with client_factory(mock_gateway) as client:
        yield client

# tests/conftest.py
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from async_query.base.projection import ProjectionMap
from async_query.config import PaginationConfig


# --- In-memory asyncpg doubles ---
class FakeTransaction:
    """Records start/commit/rollback on the owning connection."""

    def __init__(self, conn: "FakeConnection"):
        self._conn = conn

    async def start(self) -> None:
        self._conn.events.append("start")

    async def commit(self) -> None:
        self._conn.events.append("commit")
        if self._conn.commit_error is not None:
            raise self._conn.commit_error

    async def rollback(self) -> None:
        self._conn.events.append("rollback")
        if self._conn.rollback_error is not None:
            raise self._conn.rollback_error


class FakeConnection:
    """
    Scripted stand-in for asyncpg.Connection.

    Queue results per method with `queue(method, result)`; a queued
    exception is raised instead of returned. Every call is recorded in
    `calls` as (method, query, args, timeout).
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.events: List[str] = []
        self.commit_error: Optional[BaseException] = None
        self.rollback_error: Optional[BaseException] = None
        self._results: Dict[str, List[Any]] = {
            "fetch": [],
            "fetchrow": [],
            "fetchval": [],
            "execute": [],
        }

    def queue(self, method: str, *results: Any) -> "FakeConnection":
        self._results[method].extend(results)
        return self

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def _next(self, method: str, query: str, args: tuple, timeout) -> Any:
        self.calls.append((method, query, list(args), timeout))
        if not self._results[method]:
            raise AssertionError(f"No result queued for {method}: {query}")
        result = self._results[method].pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def fetch(self, query: str, *args: Any, timeout: Optional[float] = None):
        return await self._next("fetch", query, args, timeout)

    async def fetchrow(self, query: str, *args: Any, timeout: Optional[float] = None):
        return await self._next("fetchrow", query, args, timeout)

    async def fetchval(
        self, query: str, *args: Any, column: int = 0, timeout: Optional[float] = None
    ):
        return await self._next("fetchval", query, args, timeout)

    async def execute(self, query: str, *args: Any, timeout: Optional[float] = None):
        return await self._next("execute", query, args, timeout)

    def queries(self, method: Optional[str] = None) -> List[str]:
        return [c[1] for c in self.calls if method is None or c[0] == method]


class FakePool:
    """Hands out the same FakeConnection on every acquire()."""

    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.acquired = 0
        self.closed = False

    @asynccontextmanager
    async def acquire(self, *, timeout: Optional[float] = None):
        self.acquired += 1
        yield self.conn

    async def close(self) -> None:
        self.closed = True


class FakeUniqueViolation(Exception):
    """Carries the same `sqlstate` attribute as asyncpg.UniqueViolationError."""

    sqlstate = "23505"


# --- Fixtures ---
@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def pool(conn: FakeConnection) -> FakePool:
    return FakePool(conn)


@pytest.fixture
def pagination() -> PaginationConfig:
    return PaginationConfig(default_page_size=20, max_page_size=100)


@pytest.fixture
def documents_projection() -> ProjectionMap:
    return (
        ProjectionMap("public", "documents", "d")
        .project("id", "id")
        .project("filename", "filename")
        .project("status", "status")
        .project("tag", "tag")
        .project("created_at", "created_at")
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def document_row(now):
    def _make(**overrides) -> Dict[str, Any]:
        row = {
            "id": uuid.uuid4(),
            "external_id": 42,
            "external_platform": "HQ",
            "filename": "report.pdf",
            "content_type": "application/pdf",
            "size_bytes": 2048,
            "page_count": 3,
            "storage_key": "documents/x/report.pdf",
            "status": "pending",
            "uploaded_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def prompt_row():
    def _make(**overrides) -> Dict[str, Any]:
        row = {
            "id": uuid.uuid4(),
            "name": "strict markings",
            "stage": "classify",
            "instructions": "Only trust banner markings.",
            "description": None,
            "active": False,
        }
        row.update(overrides)
        return row

    return _make


# --- Logger Fixture ---
@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_query_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest.fixture
def unique_violation():
    """Factory for errors shaped like asyncpg.UniqueViolationError."""
    return FakeUniqueViolation

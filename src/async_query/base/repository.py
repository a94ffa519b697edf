# src/async_query/base/repository.py

"""
Execution helpers shared by every repository.

They run builder output against a pool, connection or transaction and
convert driver-level failures into the caller's domain exceptions through
`map_error`. No helper logs-and-continues; errors always propagate.
"""

import logging
from typing import (Any, Awaitable, Callable, List, Optional, Sequence, Type,
                    TypeVar, Union)

from .exceptions import NoRowsException
from .protocols import Connection, Executor, Pool, Querier, ScanFunc

log = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE for unique_violation.
PG_UNIQUE_VIOLATION = "23505"

ErrorLike = Union[BaseException, Type[BaseException]]


async def with_tx(
    pool: Pool,
    fn: Callable[[Connection], Awaitable[T]],
    timeout: Optional[float] = None,
) -> T:
    """
    Runs `fn` inside a transaction on a pooled connection.

    Commits when `fn` returns. Any exception, from `fn` or from the commit
    itself, triggers a rollback and is re-raised unchanged. Rollback is best
    effort: its own failure is logged and otherwise ignored.
    """
    async with pool.acquire(timeout=timeout) as conn:
        tx = conn.transaction()
        await tx.start()
        try:
            result = await fn(conn)
            await tx.commit()
        except BaseException:
            try:
                await tx.rollback()
            except Exception as rollback_error:
                log.warning(f"Rollback failed: {rollback_error}")
            raise
        return result


async def query_one(
    q: Querier,
    query: str,
    args: Sequence[Any],
    scan: ScanFunc[T],
    timeout: Optional[float] = None,
) -> T:
    """
    Fetches exactly one row and scans it.

    Raises:
        NoRowsException: If the query returned no row.
    """
    record = await q.fetchrow(query, *args, timeout=timeout)
    if record is None:
        raise NoRowsException()
    return scan(record)


async def query_many(
    q: Querier,
    query: str,
    args: Sequence[Any],
    scan: ScanFunc[T],
    timeout: Optional[float] = None,
) -> List[T]:
    """Fetches all rows and scans them in order. Returns [] when none match."""
    records = await q.fetch(query, *args, timeout=timeout)
    return [scan(record) for record in records]


async def query_count(
    q: Querier, query: str, args: Sequence[Any], timeout: Optional[float] = None
) -> int:
    """Runs a COUNT(*) query and returns its value."""
    value = await q.fetchval(query, *args, timeout=timeout)
    return int(value or 0)


async def exec_expect_one(
    e: Executor, query: str, *args: Any, timeout: Optional[float] = None
) -> None:
    """
    Executes a mutating statement that must affect at least one row.

    Raises:
        NoRowsException: If no row was affected.
        ValueError: If the status returned by the driver carries no row count.
    """
    status = await e.execute(query, *args, timeout=timeout)
    if rows_affected(status) == 0:
        raise NoRowsException()


def rows_affected(status: str) -> int:
    """Extracts the row count from a command status such as "DELETE 1"."""
    count = (status or "").rsplit(" ", 1)[-1]
    if not count.isdigit():
        raise ValueError(f"Command status {status!r} does not report affected rows")
    return int(count)


def map_error(
    error: Optional[BaseException], not_found: ErrorLike, duplicate: ErrorLike
) -> Optional[ErrorLike]:
    """
    Translates a storage error into the domain vocabulary.

    NoRowsException becomes `not_found`, a unique violation (SQLSTATE 23505)
    becomes `duplicate`, anything else is returned unchanged. The sentinels
    are returned as given (class or instance), so callers write:

        except Exception as e:
            mapped = map_error(e, DocumentNotFoundException, DocumentAlreadyExistsException)
            if mapped is e:
                raise
            raise mapped from e
    """
    if error is None:
        return None
    if isinstance(error, NoRowsException):
        return not_found
    if getattr(error, "sqlstate", None) == PG_UNIQUE_VIOLATION:
        return duplicate
    return error

# src/async_query/base/protocols.py

"""
Structural types for the database collaborators the helpers run against.

They describe the subset of the asyncpg API in use, so an `asyncpg.Pool`,
`asyncpg.Connection` or a test double all satisfy them without inheritance.
"""

from typing import (Any, AsyncContextManager, Callable, List, Mapping,
                    Optional, Protocol, TypeVar, runtime_checkable)

T = TypeVar("T")

# A row as returned by the driver. asyncpg.Record behaves as a Mapping.
Record = Mapping[str, Any]

# Converts one row into a typed value. Domains define one per entity.
ScanFunc = Callable[[Record], T]


@runtime_checkable
class Querier(Protocol):
    async def fetch(
        self, query: str, *args: Any, timeout: Optional[float] = None
    ) -> List[Record]: ...

    async def fetchrow(
        self, query: str, *args: Any, timeout: Optional[float] = None
    ) -> Optional[Record]: ...

    async def fetchval(
        self, query: str, *args: Any, column: int = 0, timeout: Optional[float] = None
    ) -> Any: ...


@runtime_checkable
class Executor(Protocol):
    async def execute(
        self, query: str, *args: Any, timeout: Optional[float] = None
    ) -> str: ...


class Transaction(Protocol):
    async def start(self) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class Connection(Querier, Executor, Protocol):
    def transaction(self) -> Transaction: ...


class Pool(Protocol):
    def acquire(self, *, timeout: Optional[float] = None) -> AsyncContextManager[Connection]: ...

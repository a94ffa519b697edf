# src/async_query/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import (Any, Generic, List, NoReturn, Optional, Sequence, Type,
                    TypeVar)

from pydantic import BaseModel

from async_query.config import PaginationConfig

from .exceptions import (InvalidSortFieldException, KeyAlreadyExistsException,
                         ObjectNotFoundException)
from .pagination import PageRequest, PageResult, new_page_result
from .projection import ProjectionMap
from .protocols import Pool, Record
from .query import Builder, SortField
from .repository import (exec_expect_one, map_error, query_count, query_many,
                         query_one, with_tx)

# Type variable for any entity
T = TypeVar("T", bound=BaseModel)


class Filters(BaseModel, ABC):
    """
    Optional filtering criteria for one domain.

    Every field defaults to None, and a None field adds no condition.
    """

    @abstractmethod
    def apply(self, builder: Builder) -> Builder:
        """Adds this filter's conditions to `builder`."""
        pass


class Repository(Generic[T], ABC):
    """
    Base repository for entities read through a ProjectionMap.

    Subclasses declare the projection, entity type and domain exceptions;
    this class provides paginated listing, lookup by id or filters, and
    deletion. Mutations specific to a domain are written with the helpers
    in `async_query.base.repository`.
    """

    id_field: str = "id"
    id_column: str = "id"
    default_sort: Sequence[SortField] = ()
    search_fields: Sequence[str] = ()
    not_found_exception: Type[ObjectNotFoundException] = ObjectNotFoundException
    duplicate_exception: Type[KeyAlreadyExistsException] = KeyAlreadyExistsException

    def __init__(
        self,
        pool: Pool,
        pagination: Optional[PaginationConfig] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            pool: An asyncpg.Pool (or anything with the same acquire() API).
            pagination: Page size limits. Defaults to PaginationConfig().
            timeout: Per-statement timeout in seconds passed to the driver.
        """
        self._pool = pool
        self._pagination = pagination or PaginationConfig()
        self._timeout = timeout

    @property
    @abstractmethod
    def entity_type(self) -> Type[T]:
        """The entity type this repository manages."""
        pass

    @property
    @abstractmethod
    def projection(self) -> ProjectionMap:
        """The shared projection describing the entity's table."""
        pass

    @property
    def pagination(self) -> PaginationConfig:
        return self._pagination

    def scan(self, record: Record) -> T:
        """Converts one row into an entity. Override for computed columns."""
        return self.entity_type.model_validate(dict(record))

    def builder(self) -> Builder:
        return Builder(self.projection, *self.default_sort)

    def _raise_mapped(self, error: Exception, logger: LoggerAdapter, context: str) -> NoReturn:
        mapped = map_error(error, self.not_found_exception, self.duplicate_exception)
        if mapped is error:
            logger.error(f"Error {context}: {error}", exc_info=True)
            error.add_note(f"while {context}")
            raise error
        logger.warning(f"{self.entity_type.__name__} {context} failed: {error}")
        raise mapped from error

    # --- Queries ---
    async def list(
        self,
        logger: LoggerAdapter,
        page: PageRequest,
        filters: Optional[Filters] = None,
    ) -> PageResult[T]:
        """
        Returns one page of entities matching the search and filters.

        Raises:
            InvalidSortFieldException: If `page.sort` names a field that is
                not projected. Request sort names never reach the SQL text
                unresolved.
        """
        page.normalize(self._pagination)
        name = self.entity_type.__name__

        unknown = [f.field for f in page.sort if not self.projection.has(f.field)]
        if unknown:
            logger.warning(f"Rejected sort on {name}(s) by unknown field(s): {unknown}")
            raise InvalidSortFieldException(unknown)

        qb = self.builder().where_search(page.search, *self.search_fields)
        if filters is not None:
            filters.apply(qb)
        if page.sort:
            qb.order_by_fields(page.sort)

        count_sql, count_args = qb.build_count()
        page_sql, page_args = qb.build_page(page.page, page.page_size)
        logger.debug(f"Listing {name}(s): page={page.page}, page_size={page.page_size}")

        try:
            async with self._pool.acquire() as conn:
                total = await query_count(
                    conn, count_sql, count_args, timeout=self._timeout
                )
                items: List[T] = await query_many(
                    conn, page_sql, page_args, self.scan, timeout=self._timeout
                )
        except Exception as e:
            self._raise_mapped(e, logger, f"listing {name}(s)")

        logger.info(f"Listed {len(items)} of {total} {name}(s).")
        return new_page_result(items, total, page.page, page.page_size)

    async def find(self, logger: LoggerAdapter, id: Any) -> T:
        """Returns the entity with the given id or raises `not_found_exception`."""
        sql, args = Builder(self.projection).build_single(self.id_field, id)
        try:
            async with self._pool.acquire() as conn:
                entity = await query_one(conn, sql, args, self.scan, timeout=self._timeout)
        except Exception as e:
            self._raise_mapped(e, logger, f"finding {id}")
        logger.debug(f"Retrieved {self.entity_type.__name__} '{id}'.")
        return entity

    async def find_one(self, logger: LoggerAdapter, filters: Filters) -> Optional[T]:
        """Returns the first entity matching `filters`, or None."""
        sql, args = filters.apply(Builder(self.projection)).build_single_or_null()
        try:
            async with self._pool.acquire() as conn:
                record = await conn.fetchrow(sql, *args, timeout=self._timeout)
        except Exception as e:
            self._raise_mapped(e, logger, "finding by filters")
        return self.scan(record) if record is not None else None

    # --- Mutations ---
    async def delete(self, logger: LoggerAdapter, id: Any) -> None:
        """Deletes the entity with the given id or raises `not_found_exception`."""
        sql = f"DELETE FROM {self.projection.qualified_name()} WHERE {self.id_column} = $1"

        async def _delete(conn):
            await exec_expect_one(conn, sql, id, timeout=self._timeout)

        try:
            await with_tx(self._pool, _delete)
        except Exception as e:
            self._raise_mapped(e, logger, f"deleting {id}")
        logger.info(f"Deleted {self.entity_type.__name__} '{id}'.")

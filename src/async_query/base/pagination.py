# src/async_query/base/pagination.py
import logging
from typing import Any, Generic, List, Mapping, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field, field_validator

from async_query.config import PaginationConfig

from .query import SortField, parse_sort_fields

log = logging.getLogger(__name__)

T = TypeVar("T")


def _to_int(raw: Optional[str]) -> int:
    try:
        return int(raw) if raw else 0
    except ValueError:
        return 0


class PageRequest(BaseModel):
    """
    A client request for one page of data.

    `page` is 1-indexed. Out-of-range values are accepted as given and
    clamped by `normalize()`; `sort` accepts either "name,-created_at" or a
    list of {"field": ..., "descending": ...} objects.
    """

    page: int = 1
    page_size: int = 0
    search: Optional[str] = None
    sort: List[SortField] = Field(default_factory=list)

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return parse_sort_fields(value)
        return value

    def normalize(self, config: PaginationConfig) -> "PageRequest":
        """Clamps page and page_size into range. Idempotent; mutates in place."""
        if self.page < 1:
            self.page = 1
        if self.page_size < 1:
            self.page_size = config.default_page_size
        if self.page_size > config.max_page_size:
            self.page_size = config.max_page_size
        return self

    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_query(
        cls, values: Mapping[str, str], config: PaginationConfig
    ) -> "PageRequest":
        """Builds a normalized request from `page`, `page_size`, `search` and `sort`."""
        request = cls(
            page=_to_int(values.get("page")),
            page_size=_to_int(values.get("page_size")),
            search=values.get("search") or None,
            sort=parse_sort_fields(values.get("sort")),
        )
        return request.normalize(config)


class PageResult(BaseModel, Generic[T]):
    """One page of results plus the metadata needed to page through the rest."""

    data: List[T] = Field(default_factory=list)
    total: int
    page: int
    page_size: int
    total_pages: int


def new_page_result(
    data: Optional[Sequence[T]], total: int, page: int, page_size: int
) -> PageResult[T]:
    """
    Builds a PageResult, computing total_pages as ceil(total / page_size)
    floored at 1. A missing `data` becomes an empty list.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be at least 1, got {page_size}")

    total_pages = total // page_size
    if total % page_size:
        total_pages += 1
    total_pages = max(total_pages, 1)

    return PageResult(
        data=list(data) if data is not None else [],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )

# src/async_query/base/query.py
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from .projection import ProjectionMap

# --- Setup Logging ---
log = logging.getLogger(__name__)


# --- Sorting ---
@dataclass(frozen=True)
class SortField:
    """
    A single ORDER BY entry.

    `field` is a logical name resolved through the ProjectionMap at render
    time; `descending` selects DESC over ASC.
    """

    field: str
    descending: bool = False


def parse_sort_fields(s: Optional[str]) -> List[SortField]:
    """
    Parses a comma-separated sort string such as "name,-created_at".

    A leading "-" marks a field as descending. Blank segments are ignored and
    an empty input yields an empty list.
    """
    if not s:
        return []

    fields: List[SortField] = []
    for part in s.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            fields.append(SortField(field=part[1:], descending=True))
        else:
            fields.append(SortField(field=part))
    return fields


def escape_like(value: str) -> str:
    """Escapes LIKE wildcards so the value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# --- Conditions ---
@dataclass(frozen=True)
class Condition:
    """
    One WHERE fragment and its positional arguments.

    The clause is stored as the text between placeholders, so a condition
    with N arguments always has N + 1 fragments. Rendering interleaves the
    fragments with sequential `$n` markers.
    """

    fragments: Tuple[str, ...]
    args: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if len(self.fragments) != len(self.args) + 1:
            raise ValueError(
                f"Condition has {len(self.fragments) - 1} placeholders "
                f"but {len(self.args)} arguments"
            )

    @classmethod
    def raw(cls, clause: str) -> "Condition":
        return cls((clause,))

    @classmethod
    def compare(cls, column: str, operator: str, value: Any) -> "Condition":
        return cls((f"{column} {operator} ", ""), (value,))

    @classmethod
    def any_of(cls, column: str, values: Sequence[Any]) -> "Condition":
        inner = [", "] * (len(values) - 1)
        return cls((f"{column} IN (", *inner, ")"), tuple(values))

    @classmethod
    def search(cls, columns: Sequence[str], pattern: str) -> "Condition":
        fragments = [f"({columns[0]} ILIKE "]
        fragments.extend(f" OR {col} ILIKE " for col in columns[1:])
        fragments.append(")")
        return cls(tuple(fragments), (pattern,) * len(columns))

    def render(self, start_index: int) -> Tuple[str, int]:
        """Returns the clause numbered from `start_index` and the next free index."""
        parts = [self.fragments[0]]
        index = start_index
        for fragment in self.fragments[1:]:
            parts.append(f"${index}")
            parts.append(fragment)
            index += 1
        return "".join(parts), index


# --- Query Builder ---
class Builder:
    """
    Builds parameterized SELECT statements against a ProjectionMap using a
    fluent API.

    Every `where_*` method is a no-op when given an absent value, which lets
    optional filters be chained without branching:

        sql, args = (
            Builder(projection, SortField("uploaded_at", descending=True))
            .where_equals("status", filters.status)
            .where_contains("filename", filters.filename)
            .build_page(page, page_size)
        )

    Conditions are AND-combined in insertion order and numbered `$1..$n`
    across the whole statement. A Builder mutates in place and belongs to a
    single request.
    """

    projection: ProjectionMap
    _conditions: List[Condition]
    _order_by_fields: List[SortField]
    _default_sort_fields: List[SortField]

    def __init__(self, projection: ProjectionMap, *default_sort: SortField):
        self.projection = projection
        self._conditions = []
        self._order_by_fields = []
        self._default_sort_fields = list(default_sort)

    @property
    def conditions(self) -> List[Condition]:
        return list(self._conditions)

    def where(self, condition: Condition) -> "Builder":
        """Adds a pre-built condition."""
        log.debug(f"Adding condition: {condition!r}")
        self._conditions.append(condition)
        return self

    def where_equals(self, field: str, value: Any) -> "Builder":
        """Adds `col = $n`. No-op for None."""
        if value is None:
            return self
        return self.where(Condition.compare(self.projection.column(field), "=", value))

    def where_contains(self, field: str, value: Optional[str]) -> "Builder":
        """Adds a case-insensitive substring match. No-op for None or ""."""
        if not value:
            return self
        pattern = f"%{escape_like(value)}%"
        return self.where(
            Condition.compare(self.projection.column(field), "ILIKE", pattern)
        )

    def where_in(self, field: str, values: Optional[Sequence[Any]]) -> "Builder":
        """
        Adds `col IN ($n, ...)` with one parameter per value. No-op when empty.

        Raises:
            TypeError: If `values` is a str or bytes rather than a collection.
        """
        if isinstance(values, (str, bytes)):
            raise TypeError(
                f"where_in({field!r}) expects a sequence of values, got {type(values).__name__}"
            )
        if not values:
            return self
        return self.where(Condition.any_of(self.projection.column(field), list(values)))

    def where_nullable(self, field: str, value: Any) -> "Builder":
        """Adds `col IS NULL` for None, otherwise `col = $n`."""
        col = self.projection.column(field)
        if value is None:
            return self.where(Condition.raw(f"{col} IS NULL"))
        return self.where(Condition.compare(col, "=", value))

    def where_search(self, search: Optional[str], *fields: str) -> "Builder":
        """
        Adds one parenthesized OR-group matching `search` against every field.
        No-op when the search string or the field list is empty.
        """
        if not search or not fields:
            return self
        columns = [self.projection.column(f) for f in fields]
        return self.where(Condition.search(columns, f"%{escape_like(search)}%"))

    def order_by_fields(self, fields: Optional[Sequence[SortField]]) -> "Builder":
        """Overrides the default sort. An empty list restores the default."""
        self._order_by_fields = list(fields or [])
        return self

    # --- Rendering ---
    def _build_where(self, start_index: int) -> Tuple[str, List[Any], int]:
        """
        Renders " WHERE ..." numbering placeholders from `start_index`.

        Returns the clause (empty without conditions), the flattened
        arguments and the next free parameter index.
        """
        if not self._conditions:
            return "", [], start_index

        clauses: List[str] = []
        args: List[Any] = []
        index = start_index
        for condition in self._conditions:
            clause, index = condition.render(index)
            clauses.append(clause)
            args.extend(condition.args)

        return " WHERE " + " AND ".join(clauses), args, index

    def _build_order_by(self) -> str:
        fields = self._order_by_fields or self._default_sort_fields
        if not fields:
            return ""

        parts = [
            f"{self.projection.column(f.field)} {'DESC' if f.descending else 'ASC'}"
            for f in fields
        ]
        return " ORDER BY " + ", ".join(parts)

    def build(self) -> Tuple[str, List[Any]]:
        """SELECT of all matching rows, ordered."""
        where, args, _ = self._build_where(1)
        sql = (
            f"SELECT {self.projection.columns()} FROM {self.projection.from_()}"
            f"{where}{self._build_order_by()}"
        )
        return self._log_built("select", sql, args)

    def build_count(self) -> Tuple[str, List[Any]]:
        where, args, _ = self._build_where(1)
        sql = f"SELECT COUNT(*) FROM {self.projection.from_()}{where}"
        return self._log_built("count", sql, args)

    def build_page(self, page: int, page_size: int) -> Tuple[str, List[Any]]:
        """SELECT of one page. `page` is 1-indexed."""
        page, page_size = int(page), int(page_size)
        if page < 1:
            raise ValueError(f"page must be at least 1, got {page}")
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")

        where, args, _ = self._build_where(1)
        offset = (page - 1) * page_size
        sql = (
            f"SELECT {self.projection.columns()} FROM {self.projection.from_()}"
            f"{where}{self._build_order_by()} LIMIT {page_size} OFFSET {offset}"
        )
        return self._log_built("page", sql, args)

    def build_single(self, id_field: str, id: Any) -> Tuple[str, List[Any]]:
        """SELECT of one row by id. Ignores accumulated conditions."""
        sql = (
            f"SELECT {self.projection.columns()} FROM {self.projection.from_()} "
            f"WHERE {self.projection.column(id_field)} = $1"
        )
        return self._log_built("single", sql, [id])

    def build_single_or_null(self) -> Tuple[str, List[Any]]:
        """SELECT of at most one row matching the accumulated conditions."""
        where, args, _ = self._build_where(1)
        sql = (
            f"SELECT {self.projection.columns()} FROM {self.projection.from_()}"
            f"{where} LIMIT 1"
        )
        return self._log_built("single-or-null", sql, args)

    @staticmethod
    def _log_built(shape: str, sql: str, args: List[Any]) -> Tuple[str, List[Any]]:
        log.debug(f"Built {shape} query: SQL='{sql}', {len(args)} params")
        return sql, args

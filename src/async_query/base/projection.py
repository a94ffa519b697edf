# src/async_query/base/projection.py
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinClause:
    """A JOIN between the base table and another table.

    `index` preserves insertion order so the rendered FROM clause is stable.
    """

    index: int
    join_type: str
    schema: str
    table: str
    alias: str
    on: str

    def render(self) -> str:
        return f"{self.join_type} {self.schema}.{self.table} {self.alias} ON {self.on}"


class ProjectionMap:
    """
    Maps logical field names to alias-qualified column references.

    A projection is declared once per repository and then shared read-only
    by every request:

        projection = (
            ProjectionMap("public", "documents", "d")
            .project("id", "id")
            .project("filename", "filename")
        )

    `join()` switches the alias used by subsequent `project()` calls, so
    columns of a joined table are registered right after the join itself.
    """

    _schema: str
    _table: str
    _alias: str
    _current_alias: str
    _columns: Dict[str, str]
    _column_list: List[str]
    _joins: Dict[str, JoinClause]

    def __init__(self, schema: str, table: str, alias: str):
        self._schema = schema
        self._table = table
        self._alias = alias
        self._current_alias = alias
        self._columns = {}
        self._column_list = []
        self._joins = {}
        log.debug(f"Created ProjectionMap for {schema}.{table} (alias '{alias}')")

    def project(self, column: str, view_name: str) -> "ProjectionMap":
        """Registers `current_alias.column` under the logical name `view_name`."""
        qualified = f"{self._current_alias}.{column}"
        self._columns[view_name] = qualified
        self._column_list.append(qualified)
        return self

    def join(
        self, schema: str, table: str, alias: str, join_type: str, on: str
    ) -> "ProjectionMap":
        """Adds a JOIN and projects subsequent columns against its alias."""
        existing = self._joins.get(alias)
        index = existing.index if existing else len(self._joins)
        self._joins[alias] = JoinClause(
            index=index,
            join_type=join_type,
            schema=schema,
            table=table,
            alias=alias,
            on=on,
        )
        self._current_alias = alias
        log.debug(f"Added {join_type} {schema}.{table} {alias} to projection")
        return self

    @property
    def alias(self) -> str:
        return self._alias

    def table(self) -> str:
        """The base table reference with its alias (schema.table alias)."""
        return f"{self._schema}.{self._table} {self._alias}"

    def qualified_name(self) -> str:
        """The base table without alias, for UPDATE and DELETE targets."""
        return f"{self._schema}.{self._table}"

    def joins(self) -> List[JoinClause]:
        return sorted(self._joins.values(), key=lambda j: j.index)

    def from_(self) -> str:
        """Renders the FROM target: the base table followed by each join."""
        joins = self.joins()
        if not joins:
            return self.table()
        return " ".join([self.table(), *(j.render() for j in joins)])

    def lookup(self, view_name: str) -> Optional[str]:
        """Returns the qualified column for `view_name`, or None if it is not projected."""
        return self._columns.get(view_name)

    def has(self, view_name: str) -> bool:
        return view_name in self._columns

    def column(self, view_name: str) -> str:
        """
        Returns the qualified column for `view_name`.

        Unmapped names are returned unchanged so already-qualified identifiers
        can be passed through. Names must come from trusted code, never from
        request input; check request-supplied names with `has()` first.
        """
        col = self._columns.get(view_name)
        if col is None:
            log.debug(f"Field '{view_name}' is not projected; using it verbatim")
            return view_name
        return col

    def columns(self) -> str:
        return ", ".join(self._column_list)

    def column_list(self) -> List[str]:
        return list(self._column_list)

    def __repr__(self) -> str:
        return f"ProjectionMap(from={self.from_()!r}, columns={self._column_list!r})"

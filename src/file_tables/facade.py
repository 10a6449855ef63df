"""Prepared-statement style facade over the query executor.

A :class:`PreparedStatement` pairs one entity type with one parsed
instruction and turns each ``get``/``all``/``run`` call into a tagged query by
binding the positional parameters. Instructions that cannot be understood
yield a :class:`NullStatement`, whose operations find nothing and change
nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from file_tables.entities import CompositeKey, EntityType, Record
from file_tables.executor import QueryExecutor
from file_tables.parsing import (
    Condition,
    CountStatement,
    DeleteStatement,
    InsertStatement,
    Placeholder,
    SelectStatement,
    Statement,
    UpdateStatement,
)
from file_tables.queries import (
    Count,
    Delete,
    FieldFilter,
    FilterScan,
    Insert,
    MutationResult,
    PointLookup,
    Query,
    SortSpec,
    Update,
)

logger = logging.getLogger(__name__)


class NullStatement:
    """Statement for instructions naming no known table, or not understood."""

    def __init__(self, source: str, table: str | None = None) -> None:
        self.source = source
        self.table = table

    def get(self, *params: Any) -> Record | None:
        return None

    def all(self, *params: Any) -> list[Record]:
        return []

    def run(self, *params: Any) -> MutationResult:
        return MutationResult()

    def __repr__(self) -> str:
        return f"NullStatement({self.source!r})"


def _bind(value: Any, params: tuple[Any, ...]) -> Any:
    if isinstance(value, Placeholder):
        if value.index < len(params):
            return params[value.index]
        logger.debug("No parameter supplied for placeholder %d; binding None", value.index)
        return None
    return value


def _filters(conditions: list[Condition], params: tuple[Any, ...]) -> tuple[FieldFilter, ...]:
    return tuple(FieldFilter(c.field, c.operator, _bind(c.value, params)) for c in conditions)


def count_placeholders(statement: Statement) -> int:
    """Number of ``?`` parameters an instruction expects."""
    values: list[Any] = []
    if isinstance(statement, (SelectStatement, CountStatement, UpdateStatement, DeleteStatement)):
        values.extend(c.value for c in statement.where)
    if isinstance(statement, SelectStatement):
        values.append(statement.limit)
    elif isinstance(statement, InsertStatement):
        values.extend(statement.values)
    elif isinstance(statement, UpdateStatement):
        values.extend(v for _, v in statement.assignments)
    return sum(1 for v in values if isinstance(v, Placeholder))


class PreparedStatement:
    """A parsed instruction bound to one entity type.

    Usage:
        stmt = db.prepare("SELECT * FROM stages WHERE task_id = ? ORDER BY idx")
        rows = stmt.all("t1")
    """

    def __init__(
        self,
        executor: QueryExecutor,
        entity: EntityType,
        source: str,
        statement: Statement,
    ) -> None:
        self.executor = executor
        self.entity = entity
        self.source = source
        self.statement = statement
        self.placeholder_count = count_placeholders(statement)

    @property
    def table(self) -> str:
        return self.entity.name

    def __repr__(self) -> str:
        return f"PreparedStatement({self.entity.name!r}, {self.source!r})"

    # --- Binding ---

    def _point_key(self, filters: tuple[FieldFilter, ...]) -> Any:
        """Return the key when *filters* are exactly a primary key match."""
        if not filters or any(f.op != "=" for f in filters):
            return None
        values = {f.field: f.value for f in filters}
        if len(values) != len(filters):
            return None
        if set(values) == {self.entity.key_field}:
            return values[self.entity.key_field]
        spec = self.entity.composite
        if spec is not None and set(values) == {spec.parent_field, spec.index_field}:
            return CompositeKey.of(values[spec.parent_field], values[spec.index_field])
        return None

    def _limit(self, limit: int | Placeholder | None, params: tuple[Any, ...]) -> int | None:
        if limit is None:
            return None
        if isinstance(limit, Placeholder):
            # The cap always travels as the last positional parameter
            if not params or params[-1] is None:
                return None
            return int(params[-1])
        return limit

    def _select_query(self, statement: SelectStatement, params: tuple[Any, ...], single: bool) -> Query:
        columns = tuple(statement.columns) if statement.columns is not None else None
        filters = _filters(statement.where, params)

        if single and not statement.order_by:
            if not statement.where and self.placeholder_count == 0 and len(params) == 1:
                return PointLookup(key=params[0], columns=columns)
            key = self._point_key(filters)
            if key is not None:
                return PointLookup(key=key, columns=columns)

        sort = None
        if statement.order_by:
            first = statement.order_by[0]
            sort = SortSpec(first.field, first.descending)
        return FilterScan(
            filters=filters,
            sort=sort,
            limit=self._limit(statement.limit, params),
            columns=columns,
        )

    def _insert_record(self, statement: InsertStatement, params: tuple[Any, ...]) -> Record | None:
        if (
            statement.columns is None
            and len(params) == 1
            and isinstance(params[0], Mapping)
            and len(statement.values) == 1
        ):
            return dict(params[0])

        values = [_bind(v, params) for v in statement.values]
        columns = statement.columns if statement.columns is not None else self.entity.positional_layout
        if len(values) > len(columns) or (statement.columns is not None and len(values) != len(columns)):
            logger.warning(
                "Insert into %s has %d values for %d columns: %s",
                self.entity.name, len(values), len(columns), self.source,
            )
            return None
        return dict(zip(columns, values))

    def _unsupported(self, method: str) -> None:
        logger.warning(
            "%s() is not supported for %s instruction: %s",
            method, type(self.statement).__name__, self.source,
        )

    # --- Public API ---

    def get(self, *params: Any) -> Record | None:
        """Return one record (or a count record), or None."""
        statement = self.statement
        if isinstance(statement, CountStatement):
            return self.executor.execute(
                self.entity.name, Count(_filters(statement.where, params), statement.alias)
            )
        if isinstance(statement, SelectStatement):
            query = self._select_query(statement, params, single=True)
            result = self.executor.execute(self.entity.name, query)
            if isinstance(query, PointLookup):
                return result
            return result[0] if result else None
        self._unsupported("get")
        return None

    def all(self, *params: Any) -> list[Record]:
        """Return every matching record, in the requested order."""
        statement = self.statement
        if isinstance(statement, CountStatement):
            return [self.get(*params)]
        if isinstance(statement, SelectStatement):
            query = self._select_query(statement, params, single=False)
            return self.executor.execute(self.entity.name, query)
        self._unsupported("all")
        return []

    def run(self, *params: Any) -> MutationResult:
        """Execute an insert, update or delete."""
        statement = self.statement
        if isinstance(statement, InsertStatement):
            record = self._insert_record(statement, params)
            if record is None:
                return MutationResult()
            return self.executor.execute(
                self.entity.name, Insert(record=record, replace=statement.replace)
            )
        if isinstance(statement, UpdateStatement):
            assignments = {name: _bind(value, params) for name, value in statement.assignments}
            return self.executor.execute(
                self.entity.name,
                Update(match=_filters(statement.where, params), assignments=assignments),
            )
        if isinstance(statement, DeleteStatement):
            return self.executor.execute(
                self.entity.name, Delete(match=_filters(statement.where, params))
            )
        self._unsupported("run")
        return MutationResult()

"""Tagged query values understood by the executor.

Callers may build these directly instead of going through instruction text::

    db.execute("stages", FilterScan(filters=(FieldFilter("task_id", "=", "t1"),),
                                    sort=SortSpec("idx")))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from file_tables.entities import Record

COMPARISON_OPERATORS = frozenset({"=", "!=", "<", "<=", ">", ">="})
NULL_OPERATORS = frozenset({"is null", "is not null"})


def _loose_equal(left: Any, right: Any) -> bool:
    """Equality that lets an int field match a numeric string parameter."""
    if left == right:
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if isinstance(left, int) and isinstance(right, str):
        left, right = right, left
    if isinstance(left, str) and isinstance(right, int):
        stripped = left.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped) == right
    return False


def _is_null(value: Any) -> bool:
    return value is None or value == ""


@dataclass(frozen=True)
class FieldFilter:
    """A single ``field <op> value`` condition."""

    field: str
    op: str = "="
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in COMPARISON_OPERATORS and self.op not in NULL_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, record: Record) -> bool:
        actual = record.get(self.field)
        if self.op == "is null":
            return _is_null(actual)
        if self.op == "is not null":
            return not _is_null(actual)
        if self.op == "=":
            return _loose_equal(actual, self.value)
        if self.op == "!=":
            return not _loose_equal(actual, self.value)
        if actual is None or self.value is None:
            return False
        try:
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            return False


def matches_all(record: Record, filters: tuple[FieldFilter, ...]) -> bool:
    return all(f.matches(record) for f in filters)


@dataclass(frozen=True)
class SortSpec:
    """Sort by one field.

    Ascending sorts place records missing the field last. Descending sorts
    treat a missing value as ``0``, the way timestamps were compared.
    """

    field: str
    descending: bool = False

    def apply(self, records: list[Record]) -> list[Record]:
        if self.descending:
            return sorted(records, key=lambda r: _sort_value(r.get(self.field) or 0), reverse=True)
        return sorted(records, key=lambda r: _sort_value(r.get(self.field)))


def _sort_value(value: Any) -> tuple[int, Any]:
    # Numbers sort before strings; mixed columns never raise.
    if value is None:
        return (2, 0)
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


@dataclass(frozen=True)
class PointLookup:
    """Fetch one record by primary key."""

    key: Any
    columns: tuple[str, ...] | None = None


@dataclass(frozen=True)
class FilterScan:
    """Filtered, optionally sorted and capped read of a table."""

    filters: tuple[FieldFilter, ...] = ()
    sort: SortSpec | None = None
    limit: int | None = None
    columns: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Count:
    """Count records, optionally restricted by filters."""

    filters: tuple[FieldFilter, ...] = ()
    alias: str = "count"


@dataclass(frozen=True)
class Insert:
    """Store a new record.

    An existing record with the same key is overwritten either way; ``replace``
    marks the overwrite as intended, otherwise it is logged as a warning.
    """

    record: Record = field(default_factory=dict)
    replace: bool = False


@dataclass(frozen=True)
class Update:
    """Overwrite the assigned fields of the first record matching ``match``."""

    match: tuple[FieldFilter, ...] = ()
    assignments: Record = field(default_factory=dict)


@dataclass(frozen=True)
class Delete:
    """Remove every record matching ``match``."""

    match: tuple[FieldFilter, ...] = ()


Query = Union[PointLookup, FilterScan, Count, Insert, Update, Delete]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a write: how many records changed and any generated key."""

    changes: int = 0
    inserted_key: Any = None

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"changes": self.changes}
        if self.inserted_key is not None:
            result["inserted_key"] = self.inserted_key
        return result


def project(record: Record, columns: tuple[str, ...] | None) -> Record:
    """Keep only *columns* of *record*; ``None`` keeps everything."""
    if columns is None:
        return record
    return {c: record.get(c) for c in columns}

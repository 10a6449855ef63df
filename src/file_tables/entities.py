"""Entity type definitions for file tables."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, NamedTuple

Record = dict[str, Any]


def now_ms() -> int:
    """Current wall clock time in milliseconds."""
    return int(time.time() * 1000)


def _coerce_index(value: Any) -> Any:
    """Turn numeric strings into ints so "3" and 3 address the same stage."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    return value


class CompositeKey(NamedTuple):
    """Primary key of a record owned by a parent at a position."""

    parent: Any
    index: Any

    @classmethod
    def of(cls, parent: Any, index: Any) -> CompositeKey:
        return cls(str(parent), _coerce_index(index))

    @property
    def stem(self) -> str:
        """File stem and legacy ``id`` value: ``<parent>_<index>``."""
        return f"{self.parent}_{self.index}"


@dataclass(frozen=True)
class CompositeKeySpec:
    """Names of the two fields a composite key is built from."""

    parent_field: str
    index_field: str


@dataclass(frozen=True)
class Column:
    """A declared column with an optional default.

    A callable default is invoked each time a record is filled.
    """

    name: str
    default: Any = None

    def default_value(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default


KEY_POLICIES = frozenset({"uuid", "timestamp", "explicit", "composite"})


@dataclass
class EntityType:
    """A named category of records stored in its own directory."""

    name: str
    columns: list[Column] = field(default_factory=list)
    key_field: str = "id"
    key_policy: str = "uuid"
    composite: CompositeKeySpec | None = None
    filters: frozenset[str] = frozenset()
    positional: list[str] | None = None
    default_order: str | None = None

    def __post_init__(self) -> None:
        if self.key_policy not in KEY_POLICIES:
            raise ValueError(f"Unknown key policy '{self.key_policy}' for {self.name}")
        if self.key_policy == "composite" and self.composite is None:
            raise ValueError(f"Entity type '{self.name}' needs a composite key spec")

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def positional_layout(self) -> list[str]:
        """Column order used when an insert supplies bare positional values."""
        if self.positional is not None:
            return list(self.positional)
        return self.column_names

    def recognizes(self, field_name: str) -> bool:
        """Return True if equality/range filters on *field_name* are supported."""
        if field_name == self.key_field or field_name in self.filters:
            return True
        if self.composite is not None:
            return field_name in (self.composite.parent_field, self.composite.index_field)
        return False

    def directory(self, root: Path) -> Path:
        return root / self.name

    def cache_key(self, record: Record) -> Any:
        """Return the key a record is cached under, or None if it has none."""
        if self.composite is not None:
            parent = record.get(self.composite.parent_field)
            index = record.get(self.composite.index_field)
            if parent is None or index is None:
                return None
            return CompositeKey.of(parent, index)
        value = record.get(self.key_field)
        if value is None or value == "":
            return None
        return self._canonical(value)

    def file_stem(self, key: Any) -> str:
        if isinstance(key, CompositeKey):
            return key.stem
        return str(key)

    def fill_defaults(self, record: Record) -> Record:
        """Return a copy of *record* with every absent declared column filled."""
        filled = dict(record)
        for column in self.columns:
            if column.name not in filled:
                filled[column.name] = column.default_value()
        return filled

    def assign_key(self, record: Record, existing: Callable[[Any], bool]) -> tuple[Record, Any, bool]:
        """Give *record* a primary key if it lacks one.

        Args:
            record: The record about to be saved.
            existing: Predicate telling whether a cache key is already taken.

        Returns:
            ``(record, cache_key, generated)`` where ``generated`` is True when
            the key was produced here rather than supplied by the caller.
        """
        record = dict(record)
        if self.key_policy == "composite":
            assert self.composite is not None
            key = self.cache_key(record)
            if key is None:
                raise ValueError(
                    f"{self.name} records need both '{self.composite.parent_field}' "
                    f"and '{self.composite.index_field}'"
                )
            record[self.key_field] = key.stem
            return record, key, False

        key = self.cache_key(record)
        if key is not None:
            return record, key, False

        if self.key_policy == "explicit":
            raise ValueError(f"{self.name} records need an explicit '{self.key_field}'")
        if self.key_policy == "timestamp":
            key = now_ms()
            while existing(key):
                key += 1
        else:
            key = str(uuid.uuid4())
        record[self.key_field] = key
        return record, key, True

    def _canonical(self, value: Any) -> Any:
        # Keys naming the same file share one cache key: 5 and "5" alike
        if self.key_policy == "timestamp":
            return _coerce_index(value)
        return str(value)

    def lookup_key(self, value: Any) -> Any:
        """Translate a caller-supplied primary key value into a cache key."""
        if isinstance(value, CompositeKey):
            return CompositeKey.of(value.parent, value.index)
        if self.composite is not None and isinstance(value, str) and "_" in value:
            parent, _, index = value.rpartition("_")
            return CompositeKey.of(parent, index)
        if value is None or value == "":
            return None
        return self._canonical(value)


class EntityRegistry:
    """Registry of all entity types known to a database."""

    def __init__(self, entity_types: list[EntityType] | None = None) -> None:
        self._types: dict[str, EntityType] = {}
        for entity in entity_types or []:
            self.register(entity)

    def register(self, entity: EntityType) -> None:
        """Register an entity type."""
        if entity.name in self._types:
            raise ValueError(f"Entity type '{entity.name}' is already defined")
        self._types[entity.name] = entity

    def get(self, name: str) -> EntityType | None:
        return self._types.get(name)

    def get_or_raise(self, name: str) -> EntityType:
        """Get an entity type by name, raising if not found."""
        entity = self._types.get(name)
        if entity is None:
            raise KeyError(f"Entity type '{name}' not found")
        return entity

    def names(self) -> list[str]:
        return list(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[EntityType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


def _columns(*specs: str | tuple[str, Any]) -> list[Column]:
    result = []
    for spec in specs:
        if isinstance(spec, tuple):
            result.append(Column(spec[0], spec[1]))
        else:
            result.append(Column(spec))
    return result


def default_entity_types() -> list[EntityType]:
    """The tables used by the task/issue/changelog bot."""
    return [
        EntityType(
            name="tasks",
            columns=_columns(
                "id", "name", "description", "deadline",
                ("completion_percentage", 0), ("created_at", now_ms),
                "guild_id", "creator_id",
            ),
            filters=frozenset({"guild_id", "creator_id", "deadline", "completion_percentage"}),
        ),
        EntityType(
            name="stages",
            columns=_columns(
                "id", "task_id", "idx", "name", "desc", "assignee",
                ("done", 0), ("created_at", now_ms),
                "completed_at", "completion_notes", "due_date",
            ),
            key_policy="composite",
            composite=CompositeKeySpec("task_id", "idx"),
            filters=frozenset({"done", "assignee"}),
            positional=[
                "task_id", "idx", "name", "desc", "assignee", "done",
                "created_at", "completed_at", "completion_notes", "due_date",
            ],
            default_order="idx",
        ),
        EntityType(
            name="task_suggestions",
            columns=_columns(
                "id", "task_id", "stage_suggestions",
                ("created_at", now_ms), ("status", "pending"),
            ),
            key_policy="timestamp",
            filters=frozenset({"task_id", "status"}),
            positional=["task_id", "stage_suggestions", "created_at", "status"],
        ),
        EntityType(
            name="bot_settings",
            columns=_columns("key", "value"),
            key_field="key",
            key_policy="explicit",
        ),
        EntityType(
            name="announcements",
            columns=_columns(
                "id", "title", "content", "original_content", "author_id",
                ("created_at", now_ms), ("posted", 0), "posted_channel_id",
            ),
            filters=frozenset({"author_id", "posted"}),
        ),
        EntityType(
            name="changelogs",
            columns=_columns(
                "id", "version", "category", "changes", "author_id",
                ("created_at", now_ms), ("is_patch", 0), "announcement_id",
                ("posted", 0), "posted_channel_id",
            ),
            filters=frozenset({"version", "category", "posted", "is_patch"}),
        ),
        EntityType(
            name="admin_tasks",
            columns=_columns(
                "id", "task_id", "title", "description", ("status", "unassigned"),
                "creator_id", "channel_id", "guild_id", "thread_id", "message_id",
                ("created_at", now_ms),
            ),
            filters=frozenset({"task_id", "status", "guild_id", "creator_id"}),
            positional=[
                "task_id", "title", "description", "status", "creator_id",
                "channel_id", "guild_id", "created_at",
            ],
        ),
        EntityType(
            name="admin_task_assignees",
            columns=_columns("id", "task_id", "user_id"),
            filters=frozenset({"task_id", "user_id"}),
            positional=["task_id", "user_id"],
        ),
        EntityType(
            name="issues",
            columns=_columns(
                "id", "title", "description", ("status", "open"), ("severity", "normal"),
                "reporter_id", "assignee_id", "guild_id", "channel_id", "thread_id",
                "message_id", "details", ("created_at", now_ms), "updated_at",
            ),
            filters=frozenset({"status", "severity", "guild_id", "reporter_id", "assignee_id"}),
        ),
        EntityType(
            name="changelog_versions",
            columns=_columns(
                "id", "version", "thread_id", "channel_id", "guild_id",
                ("status", "open"), ("is_current", 0), "created_by",
                ("created_at", now_ms), "message_id", "completed_at", "completion_report",
            ),
            filters=frozenset({"version", "status", "is_current", "guild_id"}),
            positional=[
                "version", "thread_id", "channel_id", "guild_id", "status",
                "is_current", "created_by", "created_at", "message_id",
            ],
        ),
        EntityType(
            name="changelog_entries",
            columns=_columns(
                "id", "version", "entry_type", "entry_text", "task_id",
                "author_id", ("created_at", now_ms),
            ),
            filters=frozenset({"version", "entry_type", "task_id"}),
        ),
    ]


def default_registry() -> EntityRegistry:
    return EntityRegistry(default_entity_types())

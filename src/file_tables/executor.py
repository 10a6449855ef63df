"""Query executor for tagged file table queries."""

from __future__ import annotations

import logging
from typing import Any

from file_tables.entities import CompositeKey, EntityRegistry, EntityType, Record
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
    matches_all,
    project,
)
from file_tables.storage import RecordStore

logger = logging.getLogger(__name__)

_MISSING = object()


class QueryExecutor:
    """Executes tagged queries against a record store.

    Point lookups are answered from the cache with a disk fallback. Scans,
    counts and write-target searches reload the table from disk.
    """

    def __init__(self, store: RecordStore, registry: EntityRegistry) -> None:
        self.store = store
        self.registry = registry

    def execute(self, entity_name: str, query: Query) -> Any:
        """Execute *query* against *entity_name* and return its result.

        Returns:
            ``Record | None`` for :class:`PointLookup`, ``list[Record]`` for
            :class:`FilterScan`, ``{alias: n}`` for :class:`Count` and a
            :class:`MutationResult` for writes.
        """
        entity = self.registry.get_or_raise(entity_name)
        if isinstance(query, PointLookup):
            return self._execute_point_lookup(entity, query)
        elif isinstance(query, FilterScan):
            return self._execute_filter_scan(entity, query)
        elif isinstance(query, Count):
            return self._execute_count(entity, query)
        elif isinstance(query, Insert):
            return self._execute_insert(entity, query)
        elif isinstance(query, Update):
            return self._execute_update(entity, query)
        elif isinstance(query, Delete):
            return self._execute_delete(entity, query)
        else:
            raise ValueError(f"Unknown query type: {type(query)}")

    # --- Helpers ---

    @staticmethod
    def _unrecognized(entity: EntityType, filters: tuple[FieldFilter, ...]) -> list[str]:
        return [f.field for f in filters if not entity.recognizes(f.field)]

    def _lookup(self, entity: EntityType, key: Any) -> Record | None:
        record = self.store.cache.get(entity.name, key)
        if record is None:
            record = self.store.read(entity.name, key)
        return record

    def _scan(self, entity: EntityType, filters: tuple[FieldFilter, ...]) -> list[Record]:
        records = self.store.load(entity.name)
        if entity.default_order:
            records = SortSpec(entity.default_order).apply(records)
        return [r for r in records if matches_all(r, filters)]

    def _key_from_filters(self, entity: EntityType, filters: tuple[FieldFilter, ...]) -> Any:
        """Return the cache key pinned by equality filters, or ``_MISSING``."""
        equalities = {f.field: f.value for f in filters if f.op == "="}
        if entity.composite is not None:
            spec = entity.composite
            if spec.parent_field in equalities and spec.index_field in equalities:
                return CompositeKey.of(equalities[spec.parent_field], equalities[spec.index_field])
        if entity.key_field in equalities and equalities[entity.key_field] is not None:
            return entity.lookup_key(equalities[entity.key_field])
        return _MISSING

    def _exists(self, entity: EntityType, key: Any) -> bool:
        if self.store.cache.has(entity.name, key):
            return True
        try:
            return self.store.file_path(entity.name, key).exists()
        except ValueError:
            return False

    def _find_targets(self, entity: EntityType, filters: tuple[FieldFilter, ...]) -> list[Record]:
        key = self._key_from_filters(entity, filters)
        if key is _MISSING:
            return self._scan(entity, filters)
        record = self._lookup(entity, key)
        if record is None or not matches_all(record, filters):
            return []
        return [record]

    def _check_write_filters(self, kind: str, entity: EntityType, filters: tuple[FieldFilter, ...]) -> bool:
        if not filters:
            logger.warning("Refusing unfiltered %s on %s", kind, entity.name)
            return False
        unknown = self._unrecognized(entity, filters)
        if unknown:
            logger.warning("Unrecognized %s filter on %s: %s", kind, entity.name, ", ".join(unknown))
            return False
        return True

    # --- Reads ---

    def _execute_point_lookup(self, entity: EntityType, query: PointLookup) -> Record | None:
        if query.key is None or query.key == "":
            return None
        record = self._lookup(entity, entity.lookup_key(query.key))
        if record is None:
            return None
        return project(record, query.columns)

    def _execute_filter_scan(self, entity: EntityType, query: FilterScan) -> list[Record]:
        unknown = self._unrecognized(entity, query.filters)
        if unknown:
            logger.warning("Unrecognized scan filter on %s: %s", entity.name, ", ".join(unknown))
            return []

        rows = self._scan(entity, query.filters)
        if query.sort is not None:
            rows = query.sort.apply(rows)
        if query.limit is not None:
            rows = rows[: max(int(query.limit), 0)]
        return [project(r, query.columns) for r in rows]

    def _execute_count(self, entity: EntityType, query: Count) -> Record:
        filters = query.filters
        unknown = self._unrecognized(entity, filters)
        if unknown:
            logger.warning(
                "Unrecognized count filter on %s (%s); counting every record",
                entity.name, ", ".join(unknown),
            )
            filters = ()
        return {query.alias: len(self._scan(entity, filters))}

    # --- Writes ---

    def _execute_insert(self, entity: EntityType, query: Insert) -> MutationResult:
        record = entity.fill_defaults(query.record)
        key = entity.cache_key(record)
        generated = entity.composite is None and key is None
        if key is not None and self._exists(entity, key):
            if query.replace:
                logger.debug("Replacing %s in %s", key, entity.name)
            else:
                logger.warning("Plain insert into %s overwrites existing key %s", entity.name, key)

        stored = self.store.save(entity.name, record)
        return MutationResult(changes=1, inserted_key=stored[entity.key_field] if generated else None)

    def _execute_update(self, entity: EntityType, query: Update) -> MutationResult:
        if not self._check_write_filters("update", entity, query.match):
            return MutationResult()

        targets = self._find_targets(entity, query.match)
        if not targets:
            return MutationResult()

        target = targets[0]
        old_key = entity.cache_key(target)
        updated = {**target, **query.assignments}
        stored = self.store.save(entity.name, updated)
        new_key = entity.cache_key(stored)
        if new_key != old_key:
            self.store.delete(entity.name, old_key)
        return MutationResult(changes=1)

    def _execute_delete(self, entity: EntityType, query: Delete) -> MutationResult:
        if not self._check_write_filters("delete", entity, query.match):
            return MutationResult()

        deleted = 0
        for record in self._find_targets(entity, query.match):
            if self.store.delete(entity.name, entity.cache_key(record)):
                deleted += 1
        return MutationResult(changes=deleted)

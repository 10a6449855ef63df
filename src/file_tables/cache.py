"""In-memory table cache.

One mapping per entity type from primary key (or :class:`CompositeKey`) to
record. The cache is an accelerator only: point lookups read it, everything
else reloads from the record store, which refreshes the cache as a side effect.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable

from file_tables.entities import EntityRegistry, Record

logger = logging.getLogger(__name__)


class TableCache:
    """Per-entity-type maps of cached records.

    Usage:
        cache = TableCache(registry)
        cache.put("tasks", "t1", {"id": "t1", "name": "Demo"})
        cache.get("tasks", "t1")
    """

    def __init__(self, registry: EntityRegistry) -> None:
        self._tables: dict[str, dict[Any, Record]] = {name: {} for name in registry.names()}

    def _table(self, entity_name: str) -> dict[Any, Record]:
        try:
            return self._tables[entity_name]
        except KeyError:
            raise KeyError(f"No cache table for entity type '{entity_name}'") from None

    def get(self, entity_name: str, key: Any) -> Record | None:
        """Return a copy of the cached record for *key*, or None on a miss."""
        record = self._table(entity_name).get(key)
        if record is None:
            return None
        return copy.deepcopy(record)

    def has(self, entity_name: str, key: Any) -> bool:
        return key in self._table(entity_name)

    def put(self, entity_name: str, key: Any, record: Record) -> None:
        self._table(entity_name)[key] = copy.deepcopy(record)

    def evict(self, entity_name: str, key: Any) -> bool:
        return self._table(entity_name).pop(key, None) is not None

    def replace(self, entity_name: str, entries: Iterable[tuple[Any, Record]]) -> None:
        """Replace an entity type's map wholesale after a full load."""
        self._tables[entity_name] = {key: copy.deepcopy(record) for key, record in entries}

    def values(self, entity_name: str) -> list[Record]:
        return [copy.deepcopy(r) for r in self._table(entity_name).values()]

    def count(self, entity_name: str) -> int:
        return len(self._table(entity_name))

    def clear(self) -> None:
        for table in self._tables.values():
            table.clear()
        logger.debug("Table cache cleared")

    def __contains__(self, entity_name: object) -> bool:
        return entity_name in self._tables

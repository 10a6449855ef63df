"""Record store: one JSON file per record, one directory per entity type."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from file_tables.cache import TableCache
from file_tables.entities import EntityRegistry, EntityType, Record

logger = logging.getLogger(__name__)


class RecordStore:
    """Reads and writes records, keeping a :class:`TableCache` in step.

    Every ``save`` and ``delete`` updates the cache entry for the key before
    returning, so callers never observe the disk and the cache disagreeing.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path, registry: EntityRegistry, cache: TableCache) -> None:
        """Initialize the record store.

        Args:
            root: Directory holding one subdirectory per entity type.
            registry: The entity types this store serves.
            cache: Cache updated on every load, save and delete.
        """
        self.root = root
        self.registry = registry
        self.cache = cache

    def ensure_directories(self) -> None:
        """Create the root and every entity directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        for entity in self.registry:
            entity.directory(self.root).mkdir(exist_ok=True)
        logger.debug("Ensured %d table directories under %s", len(self.registry), self.root)

    def _directory(self, entity: EntityType) -> Path:
        directory = entity.directory(self.root)
        if not directory.is_dir():
            raise FileNotFoundError(
                f"Table directory for '{entity.name}' is missing: {directory}"
            )
        return directory

    def file_path(self, entity_name: str, key: Any) -> Path:
        """Return the file a record with *key* is stored in."""
        entity = self.registry.get_or_raise(entity_name)
        stem = entity.file_stem(key)
        if not stem or stem.startswith(".") or "/" in stem or "\\" in stem:
            raise ValueError(f"Invalid key for {entity_name}: {key!r}")
        return self._directory(entity) / f"{stem}{self.SUFFIX}"

    def _read_file(self, entity: EntityType, path: Path) -> Record | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable record %s in %s: %s", path.name, entity.name, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Skipping non-object record %s in %s", path.name, entity.name)
            return None
        return data

    def load(self, entity_name: str) -> list[Record]:
        """Read every record of an entity type and refresh its cache map.

        Records that fail to deserialize are logged and left out; they never
        abort the load.
        """
        entity = self.registry.get_or_raise(entity_name)
        directory = self._directory(entity)

        entries: list[tuple[Any, Record]] = []
        for path in sorted(directory.glob(f"*{self.SUFFIX}")):
            record = self._read_file(entity, path)
            if record is None:
                continue
            key = entity.cache_key(record)
            if key is None:
                logger.warning("Skipping keyless record %s in %s", path.name, entity.name)
                continue
            entries.append((key, record))

        self.cache.replace(entity.name, entries)
        return [record for _, record in entries]

    def read(self, entity_name: str, key: Any) -> Record | None:
        """Read a single record from disk, caching it when found."""
        entity = self.registry.get_or_raise(entity_name)
        key = entity.lookup_key(key)
        if key is None:
            return None
        try:
            path = self.file_path(entity_name, key)
        except ValueError:
            return None
        if not path.exists():
            return None
        record = self._read_file(entity, path)
        if record is None:
            return None
        record_key = entity.cache_key(record)
        if record_key is None:
            logger.warning("Skipping keyless record %s in %s", path.name, entity.name)
            return None
        self.cache.put(entity.name, record_key, record)
        return record

    def save(self, entity_name: str, record: Record) -> Record:
        """Persist *record*, assigning a primary key if it has none.

        Returns:
            The record exactly as stored on disk and in the cache.

        Raises:
            ValueError: If the record cannot be keyed.
            OSError: If the file cannot be written.
        """
        entity = self.registry.get_or_raise(entity_name)

        def taken(key: Any) -> bool:
            return self.cache.has(entity.name, key) or self.file_path(entity.name, key).exists()

        record, key, _ = entity.assign_key(record, taken)
        path = self.file_path(entity.name, key)

        serialized = json.dumps(record, indent=2, ensure_ascii=False)
        stored: Record = json.loads(serialized)

        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(serialized)
                f.write("\n")
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self.cache.put(entity.name, key, stored)
        return stored

    def delete(self, entity_name: str, key: Any) -> bool:
        """Remove the record stored under *key*.

        Returns:
            True if a file was removed.
        """
        entity = self.registry.get_or_raise(entity_name)
        key = entity.lookup_key(key)
        if key is None:
            raise ValueError(f"Invalid key for {entity_name}: empty")
        path = self.file_path(entity.name, key)
        self.cache.evict(entity.name, key)
        if not path.exists():
            return False
        path.unlink()
        return True

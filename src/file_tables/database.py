"""Database object wiring the file table components together."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from file_tables.cache import TableCache
from file_tables.config import StoreConfig
from file_tables.entities import EntityRegistry, Record, default_registry
from file_tables.executor import QueryExecutor
from file_tables.facade import NullStatement, PreparedStatement
from file_tables.parsing import QueryParser, Statement
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
from file_tables.router import TableRouter
from file_tables.storage import RecordStore

logger = logging.getLogger(__name__)


class TableHandle:
    """Explicit, text-free access to one entity type.

    Usage:
        tasks = db.for_table("tasks")
        result = tasks.insert({"name": "Demo", "guild_id": "g1"})
        tasks.get(result.inserted_key)
    """

    def __init__(self, executor: QueryExecutor, name: str) -> None:
        self.executor = executor
        self.name = name

    def execute(self, query: Query) -> Any:
        return self.executor.execute(self.name, query)

    def get(self, key: Any, columns: tuple[str, ...] | None = None) -> Record | None:
        return self.execute(PointLookup(key=key, columns=columns))

    def all(
        self,
        *filters: FieldFilter,
        sort: SortSpec | None = None,
        limit: int | None = None,
        columns: tuple[str, ...] | None = None,
    ) -> list[Record]:
        return self.execute(FilterScan(filters=filters, sort=sort, limit=limit, columns=columns))

    def count(self, *filters: FieldFilter) -> int:
        return self.execute(Count(filters=filters))["count"]

    def insert(self, record: Mapping[str, Any]) -> MutationResult:
        return self.execute(Insert(record=dict(record)))

    def update(self, assignments: Mapping[str, Any], *match: FieldFilter) -> MutationResult:
        return self.execute(Update(match=match, assignments=dict(assignments)))

    def delete(self, *match: FieldFilter) -> MutationResult:
        return self.execute(Delete(match=match))

    def __repr__(self) -> str:
        return f"TableHandle({self.name!r})"


class Database:
    """A directory of file tables with a statement-style query interface.

    The database owns its table cache; nothing is shared between instances.
    Every table is loaded once on construction so point lookups start warm.
    """

    STATEMENT_CACHE_SIZE = 256

    def __init__(
        self,
        root: Path | str,
        registry: EntityRegistry | None = None,
        create: bool = True,
    ) -> None:
        """Open the file tables under *root*.

        Args:
            root: Directory holding one subdirectory per entity type.
            registry: Entity types to serve; the bot's tables by default.
            create: Create missing table directories. When False nothing is
                written on open and tables without a directory are not loaded.
        """
        self.root = Path(root)
        self.registry = registry if registry is not None else default_registry()
        self.cache = TableCache(self.registry)
        self.store = RecordStore(self.root, self.registry, self.cache)
        self.executor = QueryExecutor(self.store, self.registry)
        self.router = TableRouter(self.registry.names())
        self.parser = QueryParser()
        self.create = create
        self._parse = lru_cache(maxsize=self.STATEMENT_CACHE_SIZE)(self._parse_text)

        if create:
            self.store.ensure_directories()
        self.warm()

    @classmethod
    def from_config(cls, config: StoreConfig, registry: EntityRegistry | None = None) -> Database:
        return cls(config.root, registry)

    def warm(self) -> None:
        """Load every table into the cache."""
        total = 0
        for entity in self.registry:
            if not self.create and not entity.directory(self.root).is_dir():
                logger.debug("Skipping %s: no directory under %s", entity.name, self.root)
                continue
            total += len(self.store.load(entity.name))
        logger.info("Loaded %d records from %d tables under %s", total, len(self.registry), self.root)

    def _parse_text(self, text: str) -> Statement | None:
        try:
            return self.parser.parse(text)
        except SyntaxError as e:
            logger.warning("Unrecognized instruction (%s): %s", e, text)
            return None

    def prepare(self, text: str) -> PreparedStatement | NullStatement:
        """Prepare an instruction string for repeated ``get``/``all``/``run`` calls.

        Instructions naming no known table, or that cannot be parsed, yield a
        :class:`NullStatement`.
        """
        name = self.router.resolve(text)
        if name is None:
            logger.warning("No known table in instruction: %s", text)
            return NullStatement(text)

        statement = self._parse(text)
        if statement is None:
            return NullStatement(text, name)
        if statement.table.lower() != name:
            logger.warning(
                "Instruction targets '%s' but was routed to '%s': %s", statement.table, name, text
            )
            return NullStatement(text, name)

        return PreparedStatement(self.executor, self.registry.get_or_raise(name), text, statement)

    def for_table(self, name: str) -> TableHandle:
        """Return a handle for tagged queries against *name*."""
        self.registry.get_or_raise(name)
        return TableHandle(self.executor, name)

    def execute(self, table: str, query: Query) -> Any:
        """Execute a tagged query against *table*."""
        return self.executor.execute(table, query)

    def exec(self, sql: str) -> bool:
        """Acknowledge a schema declaration; tables are directories, so nothing runs."""
        logger.debug("Ignoring schema statement: %s", sql.strip()[:80])
        return True

    def pragma(self, text: str) -> bool:
        """Acknowledge a pragma; there is no engine to tune."""
        logger.debug("Ignoring pragma: %s", text)
        return True

    def table_names(self) -> list[str]:
        return self.registry.names()

    def close(self) -> None:
        """Drop cached records and prepared instruction parses."""
        self.cache.clear()
        self._parse.cache_clear()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

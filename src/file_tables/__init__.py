"""File Tables - A JSON-file-per-record store with a statement-style query facade."""

from file_tables.cache import TableCache
from file_tables.config import StoreConfig, load_config
from file_tables.database import Database, TableHandle
from file_tables.entities import (
    Column,
    CompositeKey,
    CompositeKeySpec,
    EntityRegistry,
    EntityType,
    default_registry,
)
from file_tables.facade import NullStatement, PreparedStatement
from file_tables.queries import (
    Count,
    Delete,
    FieldFilter,
    FilterScan,
    Insert,
    MutationResult,
    PointLookup,
    SortSpec,
    Update,
)
from file_tables.router import TableRouter
from file_tables.storage import RecordStore

__all__ = [
    # Main API
    "Database",
    "TableHandle",
    "PreparedStatement",
    "NullStatement",
    "StoreConfig",
    "load_config",
    # Entity types
    "Column",
    "CompositeKey",
    "CompositeKeySpec",
    "EntityType",
    "EntityRegistry",
    "default_registry",
    # Storage
    "RecordStore",
    "TableCache",
    "TableRouter",
    # Tagged queries
    "PointLookup",
    "FilterScan",
    "Count",
    "Insert",
    "Update",
    "Delete",
    "FieldFilter",
    "SortSpec",
    "MutationResult",
]

__version__ = "0.1.0"

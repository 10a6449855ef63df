"""Parsing module for table instruction strings."""

from file_tables.parsing.query_parser import (
    Condition,
    CountStatement,
    DeleteStatement,
    InsertStatement,
    OrderItem,
    Placeholder,
    QueryParser,
    SelectStatement,
    Statement,
    UpdateStatement,
)

__all__ = [
    "Condition",
    "CountStatement",
    "DeleteStatement",
    "InsertStatement",
    "OrderItem",
    "Placeholder",
    "QueryParser",
    "SelectStatement",
    "Statement",
    "UpdateStatement",
]

"""Tool for dumping file table contents to the console."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from file_tables.config import load_config
from file_tables.database import Database
from file_tables.entities import Record
from file_tables.facade import NullStatement
from file_tables.parsing import CountStatement, SelectStatement
from file_tables.queries import FilterScan


def _format_value(value: Any, width: int = 40) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)
    text = text.replace("\n", "\\n")
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text


def list_tables(db: Database) -> None:
    """List all tables with their record counts."""
    print("Available tables:")
    print("-" * 40)
    for name in sorted(db.table_names()):
        entity = db.registry.get_or_raise(name)
        print(f"  {name:<24} {entity.key_policy:<10} {db.cache.count(name):>6} records")


def _records(db: Database, table: str, limit: int | None) -> list[Record]:
    return db.execute(table, FilterScan(limit=limit))


def dump_table_json(db: Database, table: str, limit: int | None = None) -> None:
    """Dump table contents as JSON."""
    print(json.dumps(_records(db, table, limit), indent=2, ensure_ascii=False))


def dump_table_text(db: Database, table: str, limit: int | None = None) -> None:
    """Dump table contents one field per line."""
    entity = db.registry.get_or_raise(table)
    records = _records(db, table, limit)

    print(f"Table: {table}")
    print(f"Key: {entity.key_field} ({entity.key_policy})")
    print("-" * 60)
    print(f"Records: {db.cache.count(table)}")

    for record in records:
        print()
        key = entity.cache_key(record)
        print(f"[{entity.file_stem(key) if key is not None else '?'}]")
        names = entity.column_names + sorted(k for k in record if k not in entity.column_names)
        for name in names:
            if name in record:
                print(f"  {name:<20} {_format_value(record[name])}")


def run_command(db: Database, text: str, params: list[str]) -> int:
    """Run one instruction and print its result as JSON."""
    statement = db.prepare(text)
    if isinstance(statement, NullStatement):
        print(f"Error: Unrecognized instruction: {text}", file=sys.stderr)
        return 1

    try:
        if isinstance(statement.statement, CountStatement):
            result: Any = statement.get(*params)
        elif isinstance(statement.statement, SelectStatement):
            result = statement.all(*params)
        else:
            result = statement.run(*params).as_dict()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Dump file table contents to the console"
    )
    parser.add_argument(
        "data_dir",
        type=Path,
        nargs="?",
        default=None,
        help="Path to the directory holding the tables (default: from environment)",
    )
    parser.add_argument(
        "table",
        nargs="?",
        help="Name of the table to dump (omit to list tables)",
    )
    parser.add_argument(
        "-j", "--json",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "-n", "--limit",
        type=int,
        default=None,
        help="Limit number of records to display",
    )
    parser.add_argument(
        "-c", "--command",
        type=str,
        help="Run a single instruction and exit",
    )
    parser.add_argument(
        "-p", "--param",
        action="append",
        default=[],
        help="Positional parameter for -c/--command (repeatable)",
    )

    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = args.data_dir if args.data_dir is not None else config.root
    if not data_dir.exists():
        print(f"Error: Data directory not found: {data_dir}", file=sys.stderr)
        return 1

    try:
        db = Database(data_dir, create=False)
    except OSError as e:
        print(f"Error loading data: {e}", file=sys.stderr)
        return 1

    with db:
        if args.command:
            return run_command(db, args.command, args.param)

        if args.table is None:
            list_tables(db)
            return 0

        if args.table not in db.registry:
            print(f"Error: Unknown table: {args.table}", file=sys.stderr)
            print("\nAvailable tables:")
            list_tables(db)
            return 1

        if not (data_dir / args.table).is_dir():
            print(f"Error: Table directory not found: {data_dir / args.table}", file=sys.stderr)
            return 1

        if args.json:
            dump_table_json(db, args.table, args.limit)
        else:
            dump_table_text(db, args.table, args.limit)

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Tests for the Database object and prepared statements."""

import json

import pytest

from file_tables import (
    Database,
    FieldFilter,
    FilterScan,
    MutationResult,
    NullStatement,
    PreparedStatement,
    SortSpec,
)
from file_tables.cache import TableCache
from file_tables.config import StoreConfig
from file_tables.entities import CompositeKey, default_registry
from file_tables.facade import count_placeholders
from file_tables.parsing import QueryParser
from file_tables.storage import RecordStore


@pytest.fixture
def db(tmp_path):
    with Database(tmp_path / "data") as database:
        yield database


def _add_task(db, task_id="t1", guild_id="g1", stages=3):
    db.prepare(
        "INSERT INTO tasks (id, name, description, deadline, guild_id, creator_id) "
        "VALUES (?, ?, ?, ?, ?, ?)"
    ).run(task_id, f"Task {task_id}", "", None, guild_id, "u1")
    insert_stage = db.prepare("INSERT INTO stages (task_id, idx, name, desc, assignee) VALUES (?, ?, ?, ?, ?)")
    for idx in range(stages):
        insert_stage.run(task_id, idx, f"Stage {idx}", "", None)


class TestDatabaseSetup:
    """Tests for opening and closing a database."""

    def test_creates_directories(self, tmp_path):
        Database(tmp_path / "data")
        assert (tmp_path / "data" / "tasks").is_dir()
        assert (tmp_path / "data" / "changelog_entries").is_dir()

    def test_warm_loads_existing_records(self, tmp_path):
        """Test that records on disk are cached at startup."""
        (tmp_path / "data" / "tasks").mkdir(parents=True)
        (tmp_path / "data" / "tasks" / "t1.json").write_text(
            json.dumps({"id": "t1", "name": "Existing"}), encoding="utf-8"
        )

        db = Database(tmp_path / "data")

        assert db.cache.count("tasks") == 1
        assert db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1")["name"] == "Existing"

    def test_from_config(self, tmp_path):
        db = Database.from_config(StoreConfig(root=tmp_path / "cfg"))
        assert db.root == tmp_path / "cfg"

    def test_instances_do_not_share_cache(self, tmp_path):
        first = Database(tmp_path / "one")
        second = Database(tmp_path / "two")
        first.prepare("INSERT INTO tasks (id) VALUES (?)").run("t1")

        assert second.prepare("SELECT * FROM tasks WHERE id = ?").get("t1") is None

    def test_close_clears_cache(self, tmp_path):
        with Database(tmp_path / "data") as db:
            db.prepare("INSERT INTO tasks (id) VALUES (?)").run("t1")
            assert db.cache.count("tasks") == 1
        assert db.cache.count("tasks") == 0

    def test_exec_and_pragma_are_noops(self, db):
        assert db.exec("CREATE TABLE IF NOT EXISTS tasks (id TEXT PRIMARY KEY)") is True
        assert db.pragma("journal_mode = WAL") is True

    def test_table_names(self, db):
        assert set(db.table_names()) >= {"tasks", "stages", "bot_settings", "issues"}

    def test_open_without_create_writes_nothing(self, tmp_path):
        """Test that a read-only open leaves missing table directories alone."""
        root = tmp_path / "data"
        (root / "tasks").mkdir(parents=True)
        (root / "tasks" / "t1.json").write_text(json.dumps({"id": "t1"}), encoding="utf-8")

        db = Database(root, create=False)

        assert [p.name for p in root.iterdir()] == ["tasks"]
        assert db.cache.count("tasks") == 1
        assert db.cache.count("stages") == 0


class TestPrepare:
    """Tests for routing and parsing instructions."""

    def test_prepared_statement(self, db):
        stmt = db.prepare("SELECT * FROM stages WHERE task_id = ?")

        assert isinstance(stmt, PreparedStatement)
        assert stmt.table == "stages"
        assert stmt.source == "SELECT * FROM stages WHERE task_id = ?"

    def test_unknown_table(self, db, caplog):
        """Test that an unknown table yields a no-op statement."""
        with caplog.at_level("WARNING", logger="file_tables.database"):
            stmt = db.prepare("SELECT * FROM unknown_table")

        assert isinstance(stmt, NullStatement)
        assert stmt.table is None
        assert stmt.get() is None
        assert stmt.all() == []
        assert stmt.run() == MutationResult(changes=0)
        assert "unknown_table" in caplog.text

    def test_unparsable_instruction(self, db):
        stmt = db.prepare("SELECT * FROM tasks WHERE id = ? OR name = ?")

        assert isinstance(stmt, NullStatement)
        assert stmt.table == "tasks"
        assert stmt.all() == []

    def test_schema_query_is_null(self, db):
        stmt = db.prepare("SELECT name FROM sqlite_master WHERE type='table' AND name='tasks'")
        assert isinstance(stmt, NullStatement)

    def test_routed_table_mismatch(self, db):
        """Test that a longer table name in a literal wins routing and is refused."""
        stmt = db.prepare("SELECT * FROM tasks WHERE guild_id = 'stages'")
        assert stmt.table == "stages"
        assert isinstance(stmt, NullStatement)

    def test_repeat_prepare_reuses_parse(self, db):
        text = "SELECT * FROM tasks WHERE id = ?"
        assert db.prepare(text).statement is db.prepare(text).statement

    def test_parse_cache_is_bounded(self, tmp_path, monkeypatch):
        """Test that distinct instructions do not grow the parse cache past its size."""
        monkeypatch.setattr(Database, "STATEMENT_CACHE_SIZE", 2)
        db = Database(tmp_path / "data")

        for column in ("id", "name", "guild_id", "deadline"):
            assert isinstance(db.prepare(f"SELECT * FROM tasks WHERE {column} = ?"), PreparedStatement)

        info = db._parse.cache_info()
        assert info.maxsize == 2
        assert info.currsize == 2
        db.close()
        assert db._parse.cache_info().currsize == 0


class TestStatementReads:
    """Tests for get/all."""

    def test_get_by_primary_key(self, db):
        _add_task(db)
        task = db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1")

        assert task["name"] == "Task t1"
        assert task["completion_percentage"] == 0
        assert db.prepare("SELECT * FROM tasks WHERE id = ?").get("missing") is None

    def test_get_without_where_uses_param_as_key(self, db):
        _add_task(db)
        assert db.prepare("SELECT * FROM tasks").get("t1")["id"] == "t1"

    def test_get_composite(self, db):
        _add_task(db)
        stage = db.prepare("SELECT * FROM stages WHERE task_id = ? AND idx = ?").get("t1", "2")
        assert stage["name"] == "Stage 2"
        assert stage["id"] == "t1_2"

    def test_get_first_of_scan(self, db):
        _add_task(db)
        stage = db.prepare(
            "SELECT * FROM stages WHERE task_id = ? AND done = 0 ORDER BY idx LIMIT 1"
        ).get("t1")
        assert stage["idx"] == 0

    def test_get_columns(self, db):
        _add_task(db)
        row = db.prepare("SELECT name, guild_id FROM tasks WHERE id = ?").get("t1")
        assert row == {"name": "Task t1", "guild_id": "g1"}

    def test_all_with_order_and_limit(self, db):
        """Test that LIMIT ? takes the last parameter."""
        for i, created in enumerate([100, 300, 200]):
            db.prepare("INSERT INTO tasks (id, guild_id, created_at) VALUES (?, ?, ?)").run(
                f"t{i}", "g1", created
            )

        rows = db.prepare(
            "SELECT * FROM tasks WHERE guild_id = ? ORDER BY created_at DESC LIMIT ?"
        ).all("g1", 2)

        assert [r["created_at"] for r in rows] == [300, 200]

    def test_all_unrecognized_filter(self, db):
        _add_task(db)
        assert db.prepare("SELECT * FROM tasks WHERE name = ?").all("Task t1") == []

    def test_deadline_filter(self, db):
        """Test the reminder query for tasks with deadlines."""
        _add_task(db, "t1", stages=0)
        _add_task(db, "t2", stages=0)
        db.prepare("UPDATE tasks SET deadline = ? WHERE id = ?").run("2030-01-01", "t2")

        rows = db.prepare(
            "SELECT * FROM tasks WHERE deadline IS NOT NULL AND deadline != '' "
            "AND completion_percentage < 100"
        ).all()

        assert [r["id"] for r in rows] == ["t2"]

    def test_count_get(self, db):
        _add_task(db)
        assert db.prepare("SELECT COUNT(*) AS count FROM stages WHERE task_id = ?").get("t1") == {"count": 3}
        assert db.prepare("SELECT COUNT(*) AS c FROM tasks").get() == {"c": 1}

    def test_count_all(self, db):
        _add_task(db)
        assert db.prepare("SELECT COUNT(*) FROM stages").all() == [{"count": 3}]

    def test_results_are_copies(self, db):
        _add_task(db)
        stmt = db.prepare("SELECT * FROM tasks WHERE id = ?")
        stmt.get("t1")["name"] = "mutated"

        assert stmt.get("t1")["name"] == "Task t1"


class TestStatementWrites:
    """Tests for run()."""

    def test_insert_reports_generated_key(self, db):
        result = db.prepare("INSERT INTO issues (title, description) VALUES (?, ?)").run("Bug", "Broken")

        assert result.changes == 1
        assert result.inserted_key
        issue = db.prepare("SELECT * FROM issues WHERE id = ?").get(result.inserted_key)
        assert issue["status"] == "open"
        assert issue["severity"] == "normal"

    def test_insert_mapping(self, db):
        result = db.prepare("INSERT INTO announcements VALUES (?)").run(
            {"title": "Hello", "content": "World", "author_id": "u1"}
        )

        stored = db.prepare("SELECT * FROM announcements WHERE id = ?").get(result.inserted_key)
        assert stored["title"] == "Hello"
        assert stored["posted"] == 0

    def test_insert_positional_layout(self, db):
        result = db.prepare("INSERT INTO admin_task_assignees VALUES (?, ?)").run("a1", "u9")

        row = db.prepare("SELECT * FROM admin_task_assignees WHERE id = ?").get(result.inserted_key)
        assert (row["task_id"], row["user_id"]) == ("a1", "u9")

    def test_insert_suggestion_timestamp_key(self, db):
        result = db.prepare(
            "INSERT INTO task_suggestions (task_id, stage_suggestions, created_at, status) "
            "VALUES (?, ?, ?, ?)"
        ).run("t1", "[]", 1, "pending")

        assert isinstance(result.inserted_key, int)
        assert db.prepare("SELECT * FROM task_suggestions WHERE id = ?").get(str(result.inserted_key))["task_id"] == "t1"

    def test_settings_upsert(self, db):
        """Test the key/value settings table."""
        upsert = db.prepare("INSERT OR REPLACE INTO bot_settings VALUES (?, ?)")
        upsert.run("channel", "123")
        upsert.run("channel", "456")

        assert db.prepare("SELECT value FROM bot_settings WHERE key = ?").get("channel") == {"value": "456"}
        assert (db.root / "bot_settings" / "channel.json").exists()

    def test_settings_without_key(self, db):
        with pytest.raises(ValueError):
            db.prepare("INSERT INTO bot_settings (value) VALUES (?)").run("x")

    def test_insert_too_many_values(self, db):
        result = db.prepare("INSERT INTO admin_task_assignees VALUES (?, ?, ?, ?)").run(1, 2, 3, 4)
        assert result.changes == 0

    def test_update_preserves_fields(self, db):
        _add_task(db)
        result = db.prepare("UPDATE tasks SET completion_percentage = ? WHERE id = ?").run(50, "t1")

        assert result.changes == 1
        task = db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1")
        assert task["completion_percentage"] == 50
        assert task["guild_id"] == "g1"

    def test_update_without_where_refused(self, db):
        _add_task(db)
        assert db.prepare("UPDATE tasks SET name = ?").run("x").changes == 0

    def test_delete(self, db):
        _add_task(db)

        assert db.prepare("DELETE FROM stages WHERE task_id = ?").run("t1").changes == 3
        assert db.prepare("DELETE FROM tasks WHERE id = ?").run("t1").changes == 1
        assert db.prepare("DELETE FROM tasks WHERE id = ?").run("t1").changes == 0
        assert not any((db.root / "stages").iterdir())

    def test_run_on_select_is_noop(self, db):
        assert db.prepare("SELECT * FROM tasks").run() == MutationResult()

    def test_get_on_insert_is_noop(self, db):
        assert db.prepare("INSERT INTO tasks (id) VALUES (?)").get("t1") is None
        assert db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1") is None


class TestKeyForms:
    """Tests for ids passed as numbers in one call and strings in another."""

    def test_update_seen_through_numeric_lookup(self, db):
        db.prepare("INSERT INTO tasks (id, name) VALUES (?, ?)").run("123", "old")
        lookup = db.prepare("SELECT * FROM tasks WHERE id = ?")
        assert lookup.get(123)["name"] == "old"

        assert db.prepare("UPDATE tasks SET name = 'new' WHERE id = '123'").run().changes == 1

        assert lookup.get(123)["name"] == "new"
        assert lookup.get("123")["name"] == "new"
        on_disk = json.loads((db.root / "tasks" / "123.json").read_text(encoding="utf-8"))
        assert on_disk["name"] == "new"
        assert db.cache.count("tasks") == 1

    def test_delete_with_string_form_of_numeric_id(self, db):
        db.prepare("INSERT INTO tasks (id, name) VALUES (?, ?)").run(5, "five")

        assert db.prepare("DELETE FROM tasks WHERE id = '5'").run().changes == 1

        lookup = db.prepare("SELECT * FROM tasks WHERE id = ?")
        assert lookup.get("5") is None
        assert lookup.get(5) is None
        assert not (db.root / "tasks" / "5.json").exists()

    def test_lookup_after_cold_read(self, db):
        """Test that a disk read under one key form is visible to the other."""
        db.prepare("INSERT INTO tasks (id, name) VALUES (?, ?)").run("42", "answer")
        db.cache.clear()

        lookup = db.prepare("SELECT * FROM tasks WHERE id = ?")
        assert lookup.get(42)["name"] == "answer"
        db.prepare("UPDATE tasks SET name = ? WHERE id = ?").run("changed", "42")

        assert lookup.get(42)["name"] == "changed"


class TestScenarios:
    """End-to-end flows issued by the bot."""

    def test_create_task_and_list_stages(self, db):
        _add_task(db, stages=3)

        stages = db.prepare("SELECT * FROM stages WHERE task_id = ? ORDER BY idx").all("t1")

        assert [s["idx"] for s in stages] == [0, 1, 2]
        assert [s["id"] for s in stages] == ["t1_0", "t1_1", "t1_2"]
        assert all(s["done"] == 0 for s in stages)

    def test_advance_stage(self, db):
        """Test marking a stage done and recomputing progress."""
        _add_task(db, stages=4)

        result = db.prepare(
            "UPDATE stages SET done = 1, completed_at = ?, completion_notes = ? "
            "WHERE task_id = ? AND idx = ?"
        ).run(1700000000000, "shipped", "t1", "0")
        assert result.changes == 1

        done = db.prepare("SELECT COUNT(*) AS count FROM stages WHERE task_id = ? AND done = 1").get("t1")
        total = db.prepare("SELECT COUNT(*) AS count FROM stages WHERE task_id = ?").get("t1")
        pct = round(done["count"] * 100 / total["count"])
        db.prepare("UPDATE tasks SET completion_percentage = ? WHERE id = ?").run(pct, "t1")

        assert db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1")["completion_percentage"] == 25
        stage = db.prepare("SELECT * FROM stages WHERE task_id = ? AND idx = ?").get("t1", 0)
        assert stage["completion_notes"] == "shipped"
        assert stage["name"] == "Stage 0"

    def test_single_stage_done_leaves_nothing_pending(self, db):
        db.prepare("INSERT INTO tasks (id, name) VALUES (?, ?)").run("t1", "Demo")
        db.prepare("INSERT INTO stages (task_id, idx, name) VALUES (?, ?, ?)").run("t1", 0, "Plan")

        stages = db.prepare("SELECT * FROM stages WHERE task_id = ? ORDER BY idx").all("t1")
        assert len(stages) == 1
        assert (stages[0]["task_id"], stages[0]["idx"], stages[0]["name"], stages[0]["done"]) == (
            "t1", 0, "Plan", 0,
        )

        db.prepare("UPDATE stages SET done = 1 WHERE task_id = ? AND idx = ?").run("t1", 0)

        assert db.prepare("SELECT * FROM stages WHERE task_id = ? AND done = 0").get("t1") is None

    def test_count_fallback_counts_whole_table(self, db):
        _add_task(db, "t1", stages=2)
        _add_task(db, "t2", stages=3)

        result = db.prepare("SELECT COUNT(*) AS count FROM stages WHERE name = ?").get("Stage 0")
        assert result == {"count": 5}

    def test_disk_and_cache_agree(self, db, tmp_path):
        """Test that a fresh database sees what the first one wrote."""
        _add_task(db)
        db.prepare("UPDATE stages SET done = 1 WHERE task_id = ? AND idx = ?").run("t1", 1)
        db.prepare("DELETE FROM stages WHERE task_id = ? AND idx = ?").run("t1", 2)

        fresh = Database(db.root)
        query = "SELECT * FROM stages WHERE task_id = ? ORDER BY idx"
        assert fresh.prepare(query).all("t1") == db.prepare(query).all("t1")
        assert fresh.cache.get("stages", CompositeKey("t1", 1))["done"] == 1

    def test_cache_matches_fresh_load(self, db):
        """Test that the write-through cache holds exactly what a cold load reads."""
        _add_task(db)
        db.prepare("UPDATE stages SET done = 1 WHERE task_id = ? AND idx = ?").run("t1", 1)
        db.prepare("DELETE FROM stages WHERE task_id = ? AND idx = ?").run("t1", 2)
        db.prepare("UPDATE tasks SET completion_percentage = ? WHERE id = ?").run(50, "t1")

        registry = default_registry()
        cold = RecordStore(db.root, registry, TableCache(registry))
        for table in ("stages", "tasks"):
            cached = sorted(db.cache.values(table), key=lambda r: r["id"])
            assert cached == cold.load(table)

        lookup = db.prepare("SELECT * FROM stages WHERE task_id = ? AND idx = ?")
        assert lookup.get("t1", 1) == cold.read("stages", CompositeKey("t1", 1))
        assert lookup.get("t1", 2) is None
        assert cold.read("stages", CompositeKey("t1", 2)) is None
        assert db.prepare("SELECT * FROM tasks WHERE id = ?").get("t1") == cold.read("tasks", "t1")


class TestTableHandle:
    """Tests for tagged queries through for_table/execute."""

    def test_handle_round_trip(self, db):
        tasks = db.for_table("tasks")
        result = tasks.insert({"name": "Direct", "guild_id": "g1"})

        assert tasks.get(result.inserted_key)["name"] == "Direct"
        assert tasks.count(FieldFilter("guild_id", "=", "g1")) == 1
        assert tasks.update({"name": "Renamed"}, FieldFilter("id", "=", result.inserted_key)).changes == 1
        assert [t["name"] for t in tasks.all(sort=SortSpec("name"))] == ["Renamed"]
        assert tasks.delete(FieldFilter("id", "=", result.inserted_key)).changes == 1
        assert tasks.all() == []

    def test_execute(self, db):
        _add_task(db)
        rows = db.execute("stages", FilterScan(filters=(FieldFilter("task_id", "=", "t1"),), limit=2))
        assert len(rows) == 2

    def test_unknown_table(self, db):
        with pytest.raises(KeyError):
            db.for_table("nope")


class TestCountPlaceholders:
    def test_counts(self):
        parser = QueryParser()
        assert count_placeholders(parser.parse("SELECT * FROM tasks")) == 0
        assert count_placeholders(parser.parse("SELECT * FROM tasks WHERE id = ? LIMIT ?")) == 2
        assert count_placeholders(parser.parse("INSERT INTO t VALUES (?, 1, ?)")) == 2
        assert count_placeholders(parser.parse("UPDATE t SET a = ?, b = 2 WHERE id = ?")) == 2

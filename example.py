"""Example usage of the file_tables library."""

from pathlib import Path

from file_tables import Database, FieldFilter, SortSpec

# Create a data directory for storage
data_dir = Path("./example_data")

with Database(data_dir) as db:
    print("Creating a task with three stages...")
    db.prepare(
        "INSERT INTO tasks (id, name, description, guild_id, creator_id) VALUES (?, ?, ?, ?, ?)"
    ).run("launch", "Launch the website", "Ship v1", "guild-1", "user-1")

    insert_stage = db.prepare(
        "INSERT INTO stages (task_id, idx, name, desc, assignee) VALUES (?, ?, ?, ?, ?)"
    )
    for idx, name in enumerate(["Design", "Build", "Deploy"]):
        insert_stage.run("launch", idx, name, "", None)

    # Mark the first stage done and recompute progress
    db.prepare("UPDATE stages SET done = 1 WHERE task_id = ? AND idx = ?").run("launch", 0)
    done = db.prepare("SELECT COUNT(*) AS count FROM stages WHERE task_id = ? AND done = 1").get("launch")
    total = db.prepare("SELECT COUNT(*) AS count FROM stages WHERE task_id = ?").get("launch")
    db.prepare("UPDATE tasks SET completion_percentage = ? WHERE id = ?").run(
        round(done["count"] * 100 / total["count"]), "launch"
    )

    print("\nStages:")
    for stage in db.prepare("SELECT * FROM stages WHERE task_id = ? ORDER BY idx").all("launch"):
        mark = "x" if stage["done"] else " "
        print(f"  [{mark}] {stage['idx']}: {stage['name']}")

    # The same data through tagged queries
    tasks = db.for_table("tasks")
    for task in tasks.all(FieldFilter("guild_id", "=", "guild-1"), sort=SortSpec("created_at")):
        print(f"\n{task['name']}: {task['completion_percentage']}% complete")

    # Show files created
    print(f"\nFiles created in {data_dir}:")
    for f in sorted(data_dir.glob("*/*.json")):
        print(f"  {f.relative_to(data_dir)} ({f.stat().st_size} bytes)")

    print("\n" + "=" * 60)
    print("You can now inspect this data with the dump tool:")
    print(f"  file-tables-dump {data_dir}")
    print(f"  file-tables-dump {data_dir} stages --json")

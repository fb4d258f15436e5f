import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from models import Task, TaskIn

DATABASE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "planner.db")

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )

def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    keys = row.keys()
    return Task(
        id=row["id"],
        title=row["title"],
        done=bool(row["done"]),
        priority=row["priority"] if "priority" in keys else None,
        position=row["position"],
    )

def _renumber_plan(conn, plan_date: str):
    """Make positions of a plan contiguous again (0..n-1), keeping their order."""
    rows = conn.execute(
        "SELECT id FROM tasks WHERE plan_date = ? ORDER BY position",
        (plan_date,)
    ).fetchall()
    for position, row in enumerate(rows):
        conn.execute("UPDATE tasks SET position = ? WHERE id = ?", (position, row["id"]))

# Plan operations
def get_plans() -> dict[str, list[Task]]:
    """All plans keyed by date (YYYY-MM-DD), dates ascending, tasks in plan order."""
    plans: dict[str, list[Task]] = {}
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks ORDER BY plan_date, position").fetchall()
        for row in rows:
            plans.setdefault(row["plan_date"], []).append(_row_to_task(row))
    return plans

def get_plan(plan_date: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE plan_date = ? ORDER BY position",
            (plan_date,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]

def save_plan(plan_date: str, tasks: list[TaskIn]) -> list[Task]:
    """
    Replace the plan for plan_date with the given tasks, in the given order.
    Tasks without an id get a new uuid. A task id that belongs to another
    date is moved to this one.

    Raises:
        ValueError: if the same task id appears twice
    """
    ids = [task.id or str(uuid.uuid4()) for task in tasks]
    if len(set(ids)) != len(ids):
        raise ValueError("Duplicate task id in plan")

    created_at = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute("DELETE FROM tasks WHERE plan_date = ?", (plan_date,))
        moved_from = set()
        for position, (task_id, task) in enumerate(zip(ids, tasks)):
            previous = conn.execute("SELECT plan_date FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if previous:
                moved_from.add(previous["plan_date"])
                conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.execute(
                """INSERT INTO tasks (id, plan_date, position, title, done, priority, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (task_id, plan_date, position, task.title, int(task.done), task.priority, created_at)
            )
        for other_date in moved_from:
            _renumber_plan(conn, other_date)
        conn.commit()

    return get_plan(plan_date)

def delete_plan(plan_date: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE plan_date = ?", (plan_date,))
        conn.commit()
        return cursor.rowcount > 0

def reorder_plan(plan_date: str, task_ids: list[str]) -> Optional[list[Task]]:
    """
    Reorder a plan so its tasks follow task_ids.
    Returns None if no plan exists for plan_date.

    Raises:
        ValueError: if task_ids is not exactly the set of the plan's task ids
    """
    with get_db() as conn:
        rows = conn.execute("SELECT id FROM tasks WHERE plan_date = ?", (plan_date,)).fetchall()
        if not rows:
            return None

        current_ids = {row["id"] for row in rows}
        if len(task_ids) != len(current_ids) or set(task_ids) != current_ids:
            raise ValueError("task_ids must list every task of the plan exactly once")

        for position, task_id in enumerate(task_ids):
            conn.execute("UPDATE tasks SET position = ? WHERE id = ?", (position, task_id))
        conn.commit()

    return get_plan(plan_date)

# Task operations
def get_task(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row:
            return _row_to_task(row)
    return None

def update_task_db(task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.

    Args:
        task_id: Task ID to update
        **updates: Field names and values to update (title, done, priority)
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None

        keys = row.keys()

        # Filter updates: only include fields that differ from current values
        changes = {}
        for field, new_value in updates.items():
            if field not in keys or field in ("id", "plan_date", "position"):
                continue

            # SQLite stores bools as integers
            if isinstance(new_value, bool):
                new_value = int(new_value)

            if new_value != row[field]:
                changes[field] = new_value

        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        # Re-fetch to get current state
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)

def delete_task_db(task_id: str) -> bool:
    with get_db() as conn:
        row = conn.execute("SELECT plan_date FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        _renumber_plan(conn, row["plan_date"])
        conn.commit()
        return True

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Optional
from contextlib import contextmanager

import structlog

from config import DATABASE_PATH
from exceptions import StoreFault
from models import Task, User

log = structlog.get_logger(__name__)

UPDATABLE_TASK_FIELDS = ("title", "description", "completed")


@contextmanager
def get_db():
    """
    Context manager for database connections.
    Any sqlite3 error raised inside the block surfaces as StoreFault.
    """
    try:
        conn = sqlite3.connect(DATABASE_PATH)
    except sqlite3.Error as e:
        log.error("database_connect_failed", path=DATABASE_PATH, error=str(e))
        raise StoreFault("Database unavailable") from e
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    except sqlite3.Error as e:
        log.error("database_error", error=str(e))
        raise StoreFault("Database error") from e
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        completed=bool(row["completed"]),
        user_id=row["user_id"],
        source=row["source"] or "web",
        enhanced=bool(row["enhanced"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Newest first; rowid breaks ties between tasks created in the same instant
NEWEST_FIRST = "ORDER BY created_at DESC, rowid DESC"


# Task operations
def _insert_task(conn: sqlite3.Connection, task: Task) -> None:
    conn.execute(
        """INSERT INTO tasks
           (id, user_id, title, description, completed, source, enhanced, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (task.id, task.user_id, task.title, task.description, int(task.completed),
         task.source, int(task.enhanced), task.created_at, task.updated_at)
    )


def create_task_db(
    user_id: str,
    title: str,
    description: str = "",
    source: str = "web",
    enhanced: bool = False,
    task_id: Optional[str] = None,
) -> Task:
    """Create a task owned by user_id. The id is generated unless given."""
    now = _now()
    task = Task(
        id=task_id or str(uuid.uuid4()),
        title=title,
        description=description,
        completed=False,
        user_id=user_id,
        source=source,
        enhanced=enhanced,
        created_at=now,
        updated_at=now,
    )
    with get_db() as conn:
        _insert_task(conn, task)
        conn.commit()

    log.debug("task_created", task_id=task.id, user_id=user_id, source=source)
    return task


def list_recent_tasks_db(user_id: str, limit: int = 10, offset: int = 0) -> list[Task]:
    """Most recently created tasks for a user, newest first."""
    with get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM tasks WHERE user_id = ? {NEWEST_FIRST} LIMIT ? OFFSET ?",
            (user_id, limit, offset)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def get_user_tasks_db(user_id: str, status: str = "all") -> list[Task]:
    """
    All tasks for a user, newest first.
    status: "all", "active" (not completed) or "completed".
    """
    query = "SELECT * FROM tasks WHERE user_id = ?"
    if status == "active":
        query += " AND completed = 0"
    elif status == "completed":
        query += " AND completed = 1"
    with get_db() as conn:
        rows = conn.execute(f"{query} {NEWEST_FIRST}", (user_id,)).fetchall()
        return [_row_to_task(row) for row in rows]


def get_task_counts_db(user_id: str) -> dict:
    with get_db() as conn:
        row = conn.execute(
            """SELECT COUNT(*) AS total,
                      COALESCE(SUM(completed), 0) AS done
               FROM tasks WHERE user_id = ?""",
            (user_id,)
        ).fetchone()
    return {
        "all": row["total"],
        "active": row["total"] - row["done"],
        "completed": row["done"],
    }


def get_task_db(user_id: str, task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        if row:
            return _row_to_task(row)
    return None


def update_task_db(user_id: str, task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only title, description and completed are updatable; fields that match the
    current value are skipped. updated_at is refreshed when anything changes.

    Returns None if the task doesn't exist for this user.
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        if not row:
            return None

        changes = {}
        for field, new_value in updates.items():
            if field not in UPDATABLE_TASK_FIELDS or new_value is None:
                continue
            # SQLite stores booleans as integers
            if isinstance(new_value, bool):
                new_value = int(new_value)
            if new_value != row[field]:
                changes[field] = new_value

        if changes:
            changes["updated_at"] = _now()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id, user_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(user_id: str, task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def find_task_by_title_db(user_id: str, text: str, include_completed: bool = True) -> Optional[Task]:
    """
    Find the newest task whose title contains text (case-insensitive).
    Completed tasks are skipped when include_completed is False.
    """
    text_lower = text.lower()
    query = "SELECT * FROM tasks WHERE user_id = ?"
    if not include_completed:
        query += " AND completed = 0"
    with get_db() as conn:
        rows = conn.execute(f"{query} {NEWEST_FIRST}", (user_id,)).fetchall()
        for row in rows:
            if text_lower in row["title"].lower():
                return _row_to_task(row)
    return None


def complete_task_by_title_db(user_id: str, text: str, include_completed: bool = True) -> Optional[Task]:
    """
    Mark the first task matching text (see find_task_by_title_db) completed.
    Returns None and changes nothing when no task matches.
    """
    task = find_task_by_title_db(user_id, text, include_completed)
    if not task:
        return None

    now = _now()
    with get_db() as conn:
        conn.execute(
            "UPDATE tasks SET completed = 1, updated_at = ? WHERE id = ? AND user_id = ?",
            (now, task.id, user_id)
        )
        conn.commit()
    return task.model_copy(update={"completed": True, "updated_at": now})


# User directory
def lookup_user_db(email: str) -> Optional[User]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?",
            (email.strip().lower(),)
        ).fetchone()
        if row:
            return _row_to_user(row)
    return None


def register_user_db(email: str, name: str) -> tuple[User, bool]:
    """
    Resume the account for email, or create it on first login.
    Returns (user, created). New accounts get two welcome tasks.

    The account row and its welcome tasks are written in one transaction.
    A login racing another for the same email resumes the account the other
    one created.
    """
    email = email.strip().lower()
    name = name.strip()
    now = _now()
    user = User(id=str(uuid.uuid4()), name=name, email=email, created_at=now, updated_at=now)

    with get_db() as conn:
        conn.execute(
            """INSERT INTO users (id, name, email, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(email) DO UPDATE SET updated_at = excluded.updated_at""",
            (user.id, user.name, user.email, now, now)
        )
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        stored = _row_to_user(row)
        created = stored.id == user.id

        if created:
            first_name = name.split(" ")[0]
            for title in (f"Welcome to TaskFlow, {first_name}!", "Add your first personal task"):
                _insert_task(conn, Task(
                    id=str(uuid.uuid4()), title=title, user_id=user.id, created_at=now, updated_at=now,
                ))
        conn.commit()

    log.info("user_created" if created else "user_resumed", user_id=stored.id)
    return stored, created


def list_users_db(limit: Optional[int] = None) -> list[User]:
    """Users ordered by most recent login first."""
    query = "SELECT * FROM users ORDER BY updated_at DESC, rowid DESC"
    params: tuple = ()
    if limit is not None:
        query += " LIMIT ?"
        params = (limit,)
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_user(row) for row in rows]

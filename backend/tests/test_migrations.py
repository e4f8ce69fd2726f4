"""
Alembic migrations produce the schema database.py expects.
"""
import os
import sqlite3

from alembic import command
from alembic.config import Config

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _columns(db_path: str, table: str) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    finally:
        conn.close()


def test_upgrade_head_creates_schema(tmp_path, monkeypatch):
    import database

    db_path = str(tmp_path / "migrated.db")
    config = Config(os.path.join(BACKEND_DIR, "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")

    command.upgrade(config, "head")

    assert _columns(db_path, "users") == {"id", "name", "email", "created_at", "updated_at"}
    assert _columns(db_path, "tasks") == {
        "id", "user_id", "title", "completed", "created_at", "updated_at",
        "description", "source", "enhanced",
    }

    # The store works against the migrated file
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    task = database.create_task_db("user-1", "Migrated")
    assert database.list_recent_tasks_db("user-1") == [task]


def test_upgrade_is_repeatable(tmp_path):
    db_path = str(tmp_path / "migrated.db")
    config = Config(os.path.join(BACKEND_DIR, "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")

    command.upgrade(config, "head")
    command.upgrade(config, "head")

    assert "enhanced" in _columns(db_path, "tasks")

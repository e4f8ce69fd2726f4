"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database per test for isolation.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database

from fakes import FakeEnhancer


SCHEMA = """
    CREATE TABLE users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        completed INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        description TEXT DEFAULT '',
        source TEXT DEFAULT 'web',
        enhanced INTEGER DEFAULT 0
    );
"""


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def enhancer():
    """Enhancer used by the app and dispatcher; tests tweak it per case."""
    return FakeEnhancer()


@pytest.fixture
def app_client(test_db, enhancer, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Skips alembic and swaps the Anthropic enhancer for a fake.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(main, "setup_logging", lambda: None)
    main.app.dependency_overrides[main.get_enhancer] = lambda: enhancer

    with TestClient(main.app) as client:
        yield client

    main.app.dependency_overrides.clear()

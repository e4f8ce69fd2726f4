"""
Tests for database.py - task store, per-user isolation, user directory.
"""
import sqlite3

import pytest

import database
from database import (
    complete_task_by_title_db,
    create_task_db,
    delete_task_db,
    find_task_by_title_db,
    get_task_counts_db,
    get_task_db,
    get_user_tasks_db,
    list_recent_tasks_db,
    list_users_db,
    lookup_user_db,
    register_user_db,
    update_task_db,
)
from exceptions import StoreFault


class TestTaskCRUD:
    """Tests for basic task create/read/update/delete operations."""

    def test_create_task_basic(self, test_db):
        """Create a simple task with defaults."""
        task = create_task_db("user-1", "Buy groceries")

        assert task.id
        assert task.title == "Buy groceries"
        assert task.user_id == "user-1"
        assert task.completed is False
        assert task.description == ""
        assert task.source == "web"
        assert task.enhanced is False
        assert task.created_at == task.updated_at

    def test_create_task_ids_unique(self, test_db):
        t1 = create_task_db("user-1", "Task 1")
        t2 = create_task_db("user-1", "Task 2")
        assert t1.id != t2.id

    def test_timestamps_are_utc(self, test_db):
        # Ordering compares the strings, so every stamp carries the same offset
        task = create_task_db("user-1", "Task")
        assert task.created_at.endswith("+00:00")

        updated = update_task_db("user-1", task.id, completed=True)
        assert updated.updated_at.endswith("+00:00")

    def test_create_task_with_details(self, test_db):
        task = create_task_db(
            "user-1", "Plan trip", description="Book flights", source="whatsapp", enhanced=True, task_id="id-1"
        )

        stored = get_task_db("user-1", "id-1")
        assert stored == task
        assert stored.description == "Book flights"
        assert stored.source == "whatsapp"
        assert stored.enhanced is True

    def test_update_task_title(self, test_db):
        create_task_db("user-1", "Old title", task_id="id-1")
        updated = update_task_db("user-1", "id-1", title="New title")

        assert updated.title == "New title"
        assert updated.completed is False

    def test_update_task_completed_refreshes_updated_at(self, test_db):
        created = create_task_db("user-1", "Do something", task_id="id-1")
        updated = update_task_db("user-1", "id-1", completed=True)

        assert updated.completed is True
        assert updated.updated_at >= created.updated_at
        assert updated.created_at == created.created_at

    def test_update_ignores_non_updatable_fields(self, test_db):
        created = create_task_db("user-1", "Mine", task_id="id-1")
        updated = update_task_db("user-1", "id-1", created_at="2000-01-01T00:00:00", priority=3)

        assert updated == created

    def test_update_without_changes_keeps_updated_at(self, test_db):
        created = create_task_db("user-1", "Same", task_id="id-1")
        updated = update_task_db("user-1", "id-1", title="Same", completed=False)

        assert updated.updated_at == created.updated_at

    def test_update_task_not_found(self, test_db):
        """Update nonexistent task returns None."""
        assert update_task_db("user-1", "nonexistent", title="New title") is None

    def test_delete_task(self, test_db):
        create_task_db("user-1", "Delete me", task_id="id-1")
        assert delete_task_db("user-1", "id-1") is True
        assert get_user_tasks_db("user-1") == []

    def test_delete_task_not_found(self, test_db):
        assert delete_task_db("user-1", "nonexistent") is False


class TestUserIsolation:
    """Tasks are only visible to the user who owns them."""

    def test_other_user_cannot_read_update_or_delete(self, test_db):
        create_task_db("alice", "Alice's task", task_id="id-1")

        assert get_task_db("bob", "id-1") is None
        assert update_task_db("bob", "id-1", title="Hijacked") is None
        assert delete_task_db("bob", "id-1") is False
        assert get_task_db("alice", "id-1").title == "Alice's task"

    def test_listing_is_per_user(self, test_db):
        create_task_db("alice", "A1")
        create_task_db("bob", "B1")
        create_task_db("alice", "A2")

        assert [t.title for t in list_recent_tasks_db("alice")] == ["A2", "A1"]
        assert [t.title for t in list_recent_tasks_db("bob")] == ["B1"]

    def test_title_match_is_per_user(self, test_db):
        create_task_db("alice", "buy milk")

        assert find_task_by_title_db("bob", "milk") is None
        assert complete_task_by_title_db("bob", "milk") is None
        assert get_user_tasks_db("alice")[0].completed is False


class TestListing:

    def test_list_recent_newest_first(self, test_db):
        for i in range(3):
            create_task_db("user-1", f"Task {i}")

        titles = [t.title for t in list_recent_tasks_db("user-1")]
        assert titles == ["Task 2", "Task 1", "Task 0"]

    def test_list_recent_limit_and_offset(self, test_db):
        for i in range(15):
            create_task_db("user-1", f"Task {i}")

        first_page = list_recent_tasks_db("user-1", limit=10)
        second_page = list_recent_tasks_db("user-1", limit=10, offset=10)

        assert len(first_page) == 10
        assert first_page[0].title == "Task 14"
        assert [t.title for t in second_page] == ["Task 4", "Task 3", "Task 2", "Task 1", "Task 0"]

    def test_list_recent_empty(self, test_db):
        assert list_recent_tasks_db("user-1") == []

    def test_get_user_tasks_status_filter(self, test_db):
        create_task_db("user-1", "Open", task_id="id-1")
        create_task_db("user-1", "Finished", task_id="id-2")
        update_task_db("user-1", "id-2", completed=True)

        assert [t.title for t in get_user_tasks_db("user-1", "all")] == ["Finished", "Open"]
        assert [t.title for t in get_user_tasks_db("user-1", "active")] == ["Open"]
        assert [t.title for t in get_user_tasks_db("user-1", "completed")] == ["Finished"]

    def test_task_counts(self, test_db):
        assert get_task_counts_db("user-1") == {"all": 0, "active": 0, "completed": 0}

        create_task_db("user-1", "Open", task_id="id-1")
        create_task_db("user-1", "Finished", task_id="id-2")
        update_task_db("user-1", "id-2", completed=True)

        assert get_task_counts_db("user-1") == {"all": 2, "active": 1, "completed": 1}


class TestTitleMatch:

    def test_find_task_by_title(self, test_db):
        """Find task by partial title match."""
        create_task_db("user-1", "Buy groceries at store", task_id="id-1")

        # Partial match
        task = find_task_by_title_db("user-1", "groceries")
        assert task is not None
        assert task.id == "id-1"

        # Case insensitive
        assert find_task_by_title_db("user-1", "GROCERIES") is not None

        # No match
        assert find_task_by_title_db("user-1", "nonexistent") is None

    def test_find_prefers_newest_match(self, test_db):
        create_task_db("user-1", "buy milk", task_id="old")
        create_task_db("user-1", "buy oat milk", task_id="new")

        assert find_task_by_title_db("user-1", "milk").id == "new"

    def test_find_can_skip_completed(self, test_db):
        create_task_db("user-1", "buy milk", task_id="id-1")
        update_task_db("user-1", "id-1", completed=True)

        assert find_task_by_title_db("user-1", "milk").id == "id-1"
        assert find_task_by_title_db("user-1", "milk", include_completed=False) is None

    def test_complete_by_title(self, test_db):
        created = create_task_db("user-1", "buy milk", task_id="id-1")

        task = complete_task_by_title_db("user-1", "MILK")

        assert task.id == "id-1"
        assert task.completed is True
        assert task.updated_at >= created.updated_at
        assert get_task_db("user-1", "id-1").completed is True

    def test_complete_by_title_no_match_changes_nothing(self, test_db):
        create_task_db("user-1", "buy milk", task_id="id-1")
        before = get_user_tasks_db("user-1")

        assert complete_task_by_title_db("user-1", "xyz") is None
        assert get_user_tasks_db("user-1") == before

    def test_complete_twice(self, test_db):
        create_task_db("user-1", "buy milk", task_id="id-1")
        complete_task_by_title_db("user-1", "milk")

        again = complete_task_by_title_db("user-1", "milk")
        assert again.id == "id-1"
        assert again.completed is True

        assert complete_task_by_title_db("user-1", "milk", include_completed=False) is None


class TestUserDirectory:

    def test_register_creates_user_with_welcome_tasks(self, test_db):
        user, created = register_user_db("  Jane@Example.com ", "Jane Doe")

        assert created is True
        assert user.email == "jane@example.com"
        assert user.name == "Jane Doe"

        titles = {t.title for t in get_user_tasks_db(user.id)}
        assert titles == {"Welcome to TaskFlow, Jane!", "Add your first personal task"}

    def test_register_resumes_existing_user(self, test_db):
        user, _ = register_user_db("jane@example.com", "Jane Doe")
        again, created = register_user_db("JANE@example.com", "Someone Else")

        assert created is False
        assert again.id == user.id
        assert again.name == "Jane Doe"
        # No extra welcome tasks on a returning login
        assert len(get_user_tasks_db(user.id)) == 2

    def test_lookup_user(self, test_db):
        user, _ = register_user_db("jane@example.com", "Jane")

        assert lookup_user_db("Jane@Example.com").id == user.id
        assert lookup_user_db("nobody@example.com") is None

    def test_list_users_most_recent_login_first(self, test_db):
        jane, _ = register_user_db("jane@example.com", "Jane")
        john, _ = register_user_db("john@example.com", "John")
        register_user_db("jane@example.com", "Jane")

        assert [u.id for u in list_users_db()] == [jane.id, john.id]
        assert [u.id for u in list_users_db(limit=1)] == [jane.id]

    def test_register_resumes_account_created_by_another_login(self, test_db):
        # Another request inserted the account between our check and our write
        conn = sqlite3.connect(test_db)
        conn.execute(
            "INSERT INTO users (id, name, email, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            ("other-id", "Jane", "jane@example.com", "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00")
        )
        conn.commit()
        conn.close()

        user, created = register_user_db("jane@example.com", "Jane")

        assert created is False
        assert user.id == "other-id"
        assert user.updated_at > "2024-01-01T00:00:00+00:00"
        assert get_user_tasks_db("other-id") == []

    def test_register_is_all_or_nothing(self, test_db):
        conn = sqlite3.connect(test_db)
        conn.execute("DROP TABLE tasks")
        conn.commit()
        conn.close()

        with pytest.raises(StoreFault):
            register_user_db("jane@example.com", "Jane")

        # The account was rolled back with its welcome tasks
        assert lookup_user_db("jane@example.com") is None


class TestStoreFault:

    def test_sqlite_error_becomes_store_fault(self, test_db):
        conn = sqlite3.connect(test_db)
        conn.execute("DROP TABLE tasks")
        conn.commit()
        conn.close()

        with pytest.raises(StoreFault):
            list_recent_tasks_db("user-1")

    def test_unreachable_database(self, test_db, monkeypatch, tmp_path):
        monkeypatch.setattr(database, "DATABASE_PATH", str(tmp_path / "missing" / "db.sqlite"))

        with pytest.raises(StoreFault):
            create_task_db("user-1", "Task")

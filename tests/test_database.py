"""
Tests for the SQLite store: schema, pragmas, transactions and cascades.
"""
import os
import shutil
import sqlite3
import tempfile

import pytest

from tinytask.database import TinyTaskDatabase, utc_now
from tinytask.exceptions import DatabaseError


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, "test.db")
    db = TinyTaskDatabase(db_path)
    yield db, db_path
    shutil.rmtree(temp_dir)


def _insert_task(db, title="Task", parent_task_id=None, blocked_by_task_id=None):
    now = utc_now()
    return db.insert(
        "INSERT INTO tasks (title, status, parent_task_id, blocked_by_task_id, created_at, updated_at) "
        "VALUES (?, 'idle', ?, ?, ?, ?)",
        (title, parent_task_id, blocked_by_task_id, now, now),
    )


def test_schema_created(temp_db):
    """Tables and indexes exist after initialization."""
    db, _ = temp_db
    tables = {r["name"] for r in db.query("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"tasks", "comments", "links"} <= tables

    indexes = {r["name"] for r in db.query("SELECT name FROM sqlite_master WHERE type = 'index'")}
    for name in (
        "idx_tasks_assigned_to",
        "idx_tasks_status",
        "idx_tasks_assigned_status",
        "idx_tasks_archived",
        "idx_tasks_parent_task_id",
        "idx_tasks_queue_name",
        "idx_tasks_queue_status",
        "idx_tasks_queue_assigned",
        "idx_tasks_blocked_by_task_id",
    ):
        assert name in indexes


def test_database_directory_created():
    """A missing parent directory is created."""
    temp_dir = tempfile.mkdtemp()
    try:
        db_path = os.path.join(temp_dir, "nested", "dir", "tasks.db")
        TinyTaskDatabase(db_path)
        assert os.path.exists(db_path)
    finally:
        shutil.rmtree(temp_dir)


def test_pragmas(temp_db):
    db, _ = temp_db
    assert db.query_one("PRAGMA journal_mode")["journal_mode"] == "wal"
    assert db.query_one("PRAGMA foreign_keys")["foreign_keys"] == 1


def test_status_check_constraint(temp_db):
    """The store rejects statuses outside idle/working/complete."""
    db, _ = temp_db
    now = utc_now()
    with pytest.raises(DatabaseError) as exc_info:
        db.insert(
            "INSERT INTO tasks (title, status, created_at, updated_at) VALUES (?, ?, ?, ?)",
            ("Bad", "blocked", now, now),
        )
    assert isinstance(exc_info.value.original_error, sqlite3.IntegrityError)


def test_transaction_commits(temp_db):
    db, _ = temp_db
    with db.transaction():
        _insert_task(db, "One")
        _insert_task(db, "Two")
    assert db.count_tasks() == 2


def test_transaction_rolls_back_on_error(temp_db):
    """Nothing written inside a failed transaction is persisted."""
    db, _ = temp_db
    with pytest.raises(RuntimeError):
        with db.transaction():
            _insert_task(db, "Doomed")
            raise RuntimeError("boom")
    assert db.count_tasks() == 0
    assert not db.in_transaction


def test_nested_transaction_joins_outer(temp_db):
    """An inner transaction() shares the outer one and rolls back with it."""
    db, _ = temp_db
    with pytest.raises(RuntimeError):
        with db.transaction() as outer:
            with db.transaction() as inner:
                assert inner is outer
                _insert_task(db, "Inner")
            assert db.in_transaction
            raise RuntimeError("abort outer")
    assert db.count_tasks() == 0


def test_invalid_sql_raises_database_error(temp_db):
    db, _ = temp_db
    with pytest.raises(DatabaseError) as exc_info:
        db.query("SELECT * FROM no_such_table")
    assert exc_info.value.context["operation"] == "select"


def test_parent_delete_cascades(temp_db):
    """Deleting a task removes its descendants, comments and links."""
    db, _ = temp_db
    root = _insert_task(db, "Root")
    child = _insert_task(db, "Child", parent_task_id=root)
    grandchild = _insert_task(db, "Grandchild", parent_task_id=child)
    now = utc_now()
    db.insert(
        "INSERT INTO comments (task_id, content, created_by, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
        (grandchild, "note", "agent", now, now),
    )
    db.insert(
        "INSERT INTO links (task_id, url, created_at) VALUES (?, ?, ?)",
        (child, "https://example.com", now),
    )

    db.execute("DELETE FROM tasks WHERE id = ?", (root,))

    assert db.count_tasks() == 0
    assert db.query("SELECT * FROM comments") == []
    assert db.query("SELECT * FROM links") == []


def test_blocker_delete_sets_null(temp_db):
    db, _ = temp_db
    blocker = _insert_task(db, "Blocker")
    blocked = _insert_task(db, "Blocked", blocked_by_task_id=blocker)

    db.execute("DELETE FROM tasks WHERE id = ?", (blocker,))

    row = db.query_one("SELECT blocked_by_task_id FROM tasks WHERE id = ?", (blocked,))
    assert row["blocked_by_task_id"] is None


def test_migration_adds_missing_columns():
    """Opening a file created by an older schema adds the newer columns."""
    temp_dir = tempfile.mkdtemp()
    try:
        db_path = os.path.join(temp_dir, "old.db")
        conn = sqlite3.connect(db_path)
        conn.execute("""
            CREATE TABLE tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                status TEXT NOT NULL,
                assigned_to TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
        conn.close()

        db = TinyTaskDatabase(db_path)
        columns = {r["name"] for r in db.query("PRAGMA table_info(tasks)")}
        for name in ("queue_name", "blocked_by_task_id", "parent_task_id", "archived_at", "created_by"):
            assert name in columns
    finally:
        shutil.rmtree(temp_dir)


def test_utc_now_sorts_chronologically():
    first = utc_now()
    second = utc_now()
    assert first <= second
    assert first.endswith("+00:00")

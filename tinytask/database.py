"""
SQLite persistence for tinytask.

TinyTaskDatabase owns the schema (tasks, comments, links) and exposes the
four primitives the engines are written against: query, query_one, execute
and transaction. Transactions are re-entrant per thread: a nested
``transaction()`` joins the outer one, so status propagation and the
claim/handoff protocol run inside the transaction of the triggering call.

Writers are serialized by ``BEGIN IMMEDIATE`` plus the SQLite busy timeout;
the engine never implements its own locking.
"""
import os
import sqlite3
import threading
import time
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterator, Sequence

from opentelemetry import trace

from tinytask import config
from tinytask.exceptions import DatabaseError
from tinytask.tracing import trace_span, add_span_attribute

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string with microsecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


TASK_COLUMNS = {
    "description": "TEXT",
    "previous_assigned_to": "TEXT",
    "created_by": "TEXT",
    "priority": "INTEGER DEFAULT 0",
    "tags": "TEXT",
    "parent_task_id": "INTEGER REFERENCES tasks(id) ON DELETE CASCADE",
    "queue_name": "TEXT",
    "blocked_by_task_id": "INTEGER REFERENCES tasks(id) ON DELETE SET NULL",
    "archived_at": "TEXT",
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_status ON tasks(assigned_to, status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_archived ON tasks(archived_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent_task_id ON tasks(parent_task_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_queue_name ON tasks(queue_name)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_queue_status ON tasks(queue_name, status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_queue_assigned ON tasks(queue_name, assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_blocked_by_task_id ON tasks(blocked_by_task_id)",
    "CREATE INDEX IF NOT EXISTS idx_comments_task_id ON comments(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_links_task_id ON links(task_id)",
]


class TinyTaskDatabase:
    """SQLite-backed store for tasks, comments and links."""

    def __init__(self, db_path: Optional[str] = None, busy_timeout: Optional[float] = None):
        """
        Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the SQLite file. Defaults to TINYTASK_DB_PATH.
            busy_timeout: Seconds to wait on a locked database.
        """
        self.db_path = db_path or config.get_db_path()
        self.busy_timeout = busy_timeout if busy_timeout is not None else config.get_busy_timeout()
        self.slow_query_threshold = config.get_slow_query_threshold()
        self.query_logging = config.query_logging_enabled()
        self._local = threading.local()

        self._ensure_db_directory()
        self._init_schema()
        logger.info(f"TinyTaskDatabase ready at {self.db_path}")

    def _ensure_db_directory(self):
        db_dir = os.path.dirname(os.path.abspath(self.db_path))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout * 1000)}")
        return conn

    def _init_schema(self):
        """Create tables, add columns missing from older files, then indexes."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL CHECK(status IN ('idle', 'working', 'complete')),
                    assigned_to TEXT,
                    previous_assigned_to TEXT,
                    created_by TEXT,
                    priority INTEGER DEFAULT 0,
                    tags TEXT,
                    parent_task_id INTEGER,
                    queue_name TEXT,
                    blocked_by_task_id INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    archived_at TEXT,
                    FOREIGN KEY (parent_task_id) REFERENCES tasks(id) ON DELETE CASCADE,
                    FOREIGN KEY (blocked_by_task_id) REFERENCES tasks(id) ON DELETE SET NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS links (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    url TEXT NOT NULL,
                    description TEXT,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
                )
            """)

            # Migration: add columns introduced after the first schema
            existing = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()}
            for name, decl in TASK_COLUMNS.items():
                if name not in existing:
                    conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                    logger.info(f"Adding {name} column to tasks table (migration)")

            for statement in INDEXES:
                conn.execute(statement)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}", operation="init_schema", original_error=e) from e
        finally:
            conn.close()

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run the enclosed block as one atomic transaction.

        Nested calls on the same thread join the outermost transaction. Any
        exception rolls the whole transaction back and propagates; sqlite
        errors surface as DatabaseError.
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._connect()
        self._local.conn = conn
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise DatabaseError(f"Failed to begin transaction: {e}", operation="begin", original_error=e) from e
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                    logger.debug("Transaction rolled back")
                raise
        except sqlite3.Error as e:
            raise DatabaseError(f"Transaction failed: {e}", operation="commit", original_error=e) from e
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Active transaction connection, or a short-lived read connection."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _execute_with_logging(self, cursor: sqlite3.Cursor, query: str, params: Sequence[Any] = ()):
        """Execute a statement inside a span, logging slow queries."""
        query_type = query.strip().split(None, 1)[0].lower() if query.strip() else "unknown"
        start_time = time.time()
        with trace_span(
            f"db.{query_type}",
            attributes={"db.system": "sqlite", "db.operation": query_type},
            kind=trace.SpanKind.CLIENT,
        ):
            try:
                cursor.execute(query, tuple(params))
            except sqlite3.Error as e:
                duration = time.time() - start_time
                logger.error(f"Query failed after {duration:.4f}s: {query.strip()[:200]}", exc_info=True)
                raise DatabaseError(f"{query_type} failed: {e}", operation=query_type, original_error=e) from e

            duration = time.time() - start_time
            add_span_attribute("db.duration_ms", duration * 1000)
            if self.query_logging and duration >= self.slow_query_threshold:
                query_preview = query.strip()[:200]
                logger.warning(
                    f"Slow query: {duration:.4f}s - {query_preview}",
                    extra={"duration": duration, "params_count": len(params)}
                )
                add_span_attribute("db.slow_query", True)
            return cursor

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a SELECT and return all rows as dictionaries."""
        with self._connection() as conn:
            cursor = self._execute_with_logging(conn.cursor(), sql, params)
            return [dict(row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        """Run a SELECT and return the first row, or None."""
        with self._connection() as conn:
            cursor = self._execute_with_logging(conn.cursor(), sql, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        with self.transaction() as conn:
            cursor = self._execute_with_logging(conn.cursor(), sql, params)
            return cursor.rowcount

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run an INSERT and return the new row id."""
        with self.transaction() as conn:
            cursor = self._execute_with_logging(conn.cursor(), sql, params)
            return int(cursor.lastrowid)

    def count_tasks(self) -> int:
        row = self.query_one("SELECT COUNT(*) AS n FROM tasks")
        return int(row["n"]) if row else 0

"""
Repository for task rows.

Holds the SQL for the tasks table and its two child tables so the engines
above it deal in Task models and business rules only. Every method runs on
the store's active transaction when one is open.
"""
import json
import logging
from typing import Optional, List, Dict, Any, TYPE_CHECKING

from tinytask.database import utc_now
from tinytask.models import Task, TaskFilters, Comment, Link

if TYPE_CHECKING:
    from tinytask.database import TinyTaskDatabase

logger = logging.getLogger(__name__)

# is_currently_blocked is derived on read: the blocker exists and is not complete.
TASK_SELECT = """
    SELECT t.*,
           CASE WHEN b.id IS NOT NULL AND b.status != 'complete' THEN 1 ELSE 0 END
               AS is_currently_blocked
    FROM tasks t
    LEFT JOIN tasks b ON b.id = t.blocked_by_task_id
"""

TASK_ORDER = "ORDER BY t.priority DESC, t.created_at ASC, t.id ASC"


def row_to_task(row: Dict[str, Any]) -> Task:
    """Build a Task from a row, deserializing tags."""
    data = dict(row)
    raw_tags = data.get("tags")
    if raw_tags:
        try:
            tags = json.loads(raw_tags)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Task {data.get('id')} has malformed tags; returning none")
            tags = []
        data["tags"] = tags if isinstance(tags, list) else []
    else:
        data["tags"] = []
    data["priority"] = data.get("priority") or 0
    data["is_currently_blocked"] = bool(data.get("is_currently_blocked"))
    return Task.model_validate(data)


def serialize_tags(tags: Optional[List[str]]) -> Optional[str]:
    return json.dumps(tags) if tags is not None else None


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, db: "TinyTaskDatabase"):
        self.db = db

    def get(self, task_id: int) -> Optional[Task]:
        """Get task by ID, including archived tasks."""
        row = self.db.query_one(f"{TASK_SELECT} WHERE t.id = ?", (task_id,))
        return row_to_task(row) if row else None

    def get_link_fields(self, task_id: int) -> Optional[Dict[str, Any]]:
        """Lightweight lookup of the columns the graph walks need."""
        return self.db.query_one(
            "SELECT id, status, parent_task_id, blocked_by_task_id, queue_name, archived_at FROM tasks WHERE id = ?",
            (task_id,),
        )

    def exists(self, task_id: int) -> bool:
        return self.db.query_one("SELECT 1 AS found FROM tasks WHERE id = ?", (task_id,)) is not None

    def list(self, filters: TaskFilters) -> List[Task]:
        """List tasks matching the filters, highest priority first, FIFO within a priority."""
        conditions: List[str] = []
        params: List[Any] = []

        if filters.assigned_to is not None:
            conditions.append("t.assigned_to = ?")
            params.append(filters.assigned_to)
        if filters.status is not None:
            conditions.append("t.status = ?")
            params.append(filters.status.value)
        if not filters.include_archived:
            conditions.append("t.archived_at IS NULL")
        if "parent_task_id" in filters.model_fields_set:
            if filters.parent_task_id is None:
                conditions.append("t.parent_task_id IS NULL")
            else:
                conditions.append("t.parent_task_id = ?")
                params.append(filters.parent_task_id)
        if filters.exclude_subtasks:
            conditions.append("t.parent_task_id IS NULL")
        if filters.queue_name is not None:
            conditions.append("t.queue_name = ?")
            params.append(filters.queue_name)
        if filters.blocked_by_task_id is not None:
            conditions.append("t.blocked_by_task_id = ?")
            params.append(filters.blocked_by_task_id)

        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        limit_clause = ""
        if filters.limit is not None:
            limit_clause = "LIMIT ?"
            params.append(filters.limit)
        if filters.offset:
            if not limit_clause:
                limit_clause = "LIMIT -1"
            limit_clause += " OFFSET ?"
            params.append(filters.offset)

        rows = self.db.query(f"{TASK_SELECT} {where_clause} {TASK_ORDER} {limit_clause}", params)
        return [row_to_task(row) for row in rows]

    def list_descendants(self, parent_id: int, max_levels: int) -> List[Task]:
        """All non-archived descendants of a task, walking at most max_levels levels down."""
        rows = self.db.query(
            f"""
            WITH RECURSIVE subtask_tree(id, level) AS (
                SELECT id, 1 FROM tasks WHERE parent_task_id = ?
                UNION ALL
                SELECT c.id, st.level + 1
                FROM tasks c
                JOIN subtask_tree st ON c.parent_task_id = st.id
                WHERE st.level < ?
            )
            {TASK_SELECT}
            WHERE t.id IN (SELECT id FROM subtask_tree)
              AND t.archived_at IS NULL
            {TASK_ORDER}
            """,
            (parent_id, max_levels),
        )
        return [row_to_task(row) for row in rows]

    def child_ids(self, parent_ids: List[int]) -> List[int]:
        """Direct children (archived included) of any of the given tasks."""
        if not parent_ids:
            return []
        placeholders = ",".join("?" * len(parent_ids))
        rows = self.db.query(f"SELECT id FROM tasks WHERE parent_task_id IN ({placeholders})", parent_ids)
        return [row["id"] for row in rows]

    def active_child_statuses(self, parent_id: int) -> List[str]:
        rows = self.db.query(
            "SELECT status FROM tasks WHERE parent_task_id = ? AND archived_at IS NULL",
            (parent_id,),
        )
        return [row["status"] for row in rows]

    def insert(self, fields: Dict[str, Any]) -> int:
        now = utc_now()
        values = dict(fields, created_at=now, updated_at=now)
        columns = ", ".join(values)
        placeholders = ", ".join("?" * len(values))
        return self.db.insert(f"INSERT INTO tasks ({columns}) VALUES ({placeholders})", list(values.values()))

    def update_fields(self, task_id: int, fields: Dict[str, Any]) -> int:
        """Write the given columns and always bump updated_at."""
        values = dict(fields, updated_at=utc_now())
        assignments = ", ".join(f"{column} = ?" for column in values)
        return self.db.execute(
            f"UPDATE tasks SET {assignments} WHERE id = ?",
            list(values.values()) + [task_id],
        )

    def delete(self, task_id: int) -> int:
        return self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def get_comments(self, task_id: int) -> List[Comment]:
        rows = self.db.query(
            "SELECT * FROM comments WHERE task_id = ? ORDER BY created_at ASC, id ASC",
            (task_id,),
        )
        return [Comment.model_validate(row) for row in rows]

    def get_links(self, task_id: int) -> List[Link]:
        rows = self.db.query(
            "SELECT * FROM links WHERE task_id = ? ORDER BY created_at ASC, id ASC",
            (task_id,),
        )
        return [Link.model_validate(row) for row in rows]

    def add_comment(self, task_id: int, content: str, created_by: Optional[str]) -> int:
        now = utc_now()
        return self.db.insert(
            "INSERT INTO comments (task_id, content, created_by, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (task_id, content, created_by, now, now),
        )

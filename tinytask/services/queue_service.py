"""
Queue service - team queues over the task table.

A queue is not an entity of its own: it is the set of non-archived tasks
sharing a queue_name. Membership changes are single-field task updates and
go through TaskService so they share its validation and timestamps.
"""
import logging
from typing import Optional, Dict, Any, List, Union

from tinytask.database import TinyTaskDatabase, utc_now
from tinytask.exceptions import ValidationError
from tinytask.models import Task, TaskFilters, TaskUpdate, QueueStats, StatusCounts
from tinytask.models.task_models import normalize_queue_name
from tinytask.models.validation import parse_model
from tinytask.services.task_service import TaskService
from tinytask.tracing import trace_span

logger = logging.getLogger(__name__)


def validate_queue_name(queue_name: Optional[str]) -> str:
    """Strip a queue name, rejecting None, blank and over-long names."""
    if queue_name is None:
        raise ValidationError("Queue name is required", field="queue_name")
    try:
        return normalize_queue_name(queue_name)
    except ValueError as e:
        raise ValidationError(str(e), field="queue_name", value=queue_name, original_error=e) from e


class QueueService:
    """Service for queue business logic."""

    def __init__(self, db: TinyTaskDatabase, task_service: Optional[TaskService] = None):
        self.db = db
        self.task_service = task_service or TaskService(db)

    def list_queues(self) -> List[str]:
        """Distinct queue names in use by non-archived tasks, alphabetical."""
        rows = self.db.query(
            """
            SELECT DISTINCT queue_name FROM tasks
            WHERE queue_name IS NOT NULL AND archived_at IS NULL
            ORDER BY queue_name ASC
            """
        )
        return [row["queue_name"] for row in rows]

    def get_queue_stats(self, queue_name: str) -> QueueStats:
        """Aggregate counts for a queue. An unused queue yields all zeros."""
        queue_name = validate_queue_name(queue_name)
        with trace_span("queue.stats", {"queue.name": queue_name}):
            totals = self.db.query_one(
                """
                SELECT
                    COUNT(*) AS total_tasks,
                    COALESCE(SUM(CASE WHEN status = 'idle' THEN 1 ELSE 0 END), 0) AS idle,
                    COALESCE(SUM(CASE WHEN status = 'working' THEN 1 ELSE 0 END), 0) AS working,
                    COALESCE(SUM(CASE WHEN status = 'complete' THEN 1 ELSE 0 END), 0) AS complete,
                    COALESCE(SUM(CASE WHEN assigned_to IS NOT NULL THEN 1 ELSE 0 END), 0) AS assigned,
                    COALESCE(SUM(CASE WHEN assigned_to IS NULL THEN 1 ELSE 0 END), 0) AS unassigned
                FROM tasks
                WHERE queue_name = ? AND archived_at IS NULL
                """,
                (queue_name,),
            ) or {}
            agents = self.db.query(
                """
                SELECT DISTINCT assigned_to FROM tasks
                WHERE queue_name = ? AND archived_at IS NULL AND assigned_to IS NOT NULL
                ORDER BY assigned_to ASC
                """,
                (queue_name,),
            )

        return QueueStats(
            queue_name=queue_name,
            total_tasks=totals.get("total_tasks", 0),
            by_status=StatusCounts(
                idle=totals.get("idle", 0),
                working=totals.get("working", 0),
                complete=totals.get("complete", 0),
            ),
            assigned=totals.get("assigned", 0),
            unassigned=totals.get("unassigned", 0),
            agents=[row["assigned_to"] for row in agents],
        )

    def get_queue_tasks(
        self,
        queue_name: str,
        filters: Union[TaskFilters, Dict[str, Any], None] = None,
    ) -> List[Task]:
        """Tasks in a queue, accepting the same filters as task listing."""
        queue_name = validate_queue_name(queue_name)
        filters = parse_model(TaskFilters, filters)
        scoped = filters.model_copy(update={"queue_name": queue_name})
        return self.task_service.tasks.list(scoped)

    def add_task_to_queue(self, task_id: int, queue_name: str) -> Task:
        """Put a task in a queue, replacing any queue it was in."""
        queue_name = validate_queue_name(queue_name)
        task = self.task_service.update_task(task_id, TaskUpdate(queue_name=queue_name))
        logger.info(f"Task {task_id} added to queue '{queue_name}'")
        return task

    def move_task_to_queue(self, task_id: int, queue_name: str) -> Task:
        """Move a task to another queue."""
        queue_name = validate_queue_name(queue_name)
        task = self.task_service.update_task(task_id, TaskUpdate(queue_name=queue_name))
        logger.info(f"Task {task_id} moved to queue '{queue_name}'")
        return task

    def remove_task_from_queue(self, task_id: int) -> Task:
        """Take a task out of whatever queue it is in."""
        task = self.task_service.update_task(task_id, TaskUpdate(queue_name=None))
        logger.info(f"Task {task_id} removed from its queue")
        return task

    def clear_queue(self, queue_name: str) -> int:
        """Empty a queue; returns how many tasks were taken out of it."""
        queue_name = validate_queue_name(queue_name)
        with trace_span("queue.clear", {"queue.name": queue_name}):
            count = self.db.execute(
                """
                UPDATE tasks SET queue_name = NULL, updated_at = ?
                WHERE queue_name = ? AND archived_at IS NULL
                """,
                (utc_now(), queue_name),
            )
        logger.info(f"Cleared {count} tasks from queue '{queue_name}'")
        return count

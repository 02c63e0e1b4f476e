"""
Task service - business logic for the task graph.

Owns the two relations between tasks (the parent/child hierarchy and the
blocked-by dependency), the invariants on them, and bottom-up status
propagation. Every read-then-write operation runs inside a single store
transaction; nested calls from the queue and handoff services join it.

This layer contains no HTTP framework dependencies.
"""
import logging
from typing import Optional, Dict, Any, List, Union

from tinytask.database import TinyTaskDatabase, utc_now
from tinytask.exceptions import (
    TaskNotFoundError,
    SelfReferenceError,
    CircularDependencyError,
    DepthExceededError,
)
from tinytask.models import (
    Task,
    TaskCreate,
    TaskUpdate,
    TaskFilters,
    TaskStatus,
    TaskWithRelations,
    TaskWithSubtasks,
)
from tinytask.models.validation import parse_model
from tinytask.storage.task_repository import TaskRepository, serialize_tags
from tinytask.tracing import trace_span

logger = logging.getLogger(__name__)

# Levels in a hierarchy: a task may have a grandparent but not a great-grandparent.
MAX_DEPTH = 3


def derive_parent_status(child_statuses: List[str]) -> Optional[TaskStatus]:
    """
    Status a parent must hold given its non-archived children's statuses.

    Returns None for a childless task, whose status is caller-controlled.
    """
    if not child_statuses:
        return None
    if all(status == TaskStatus.COMPLETE.value for status in child_statuses):
        return TaskStatus.COMPLETE
    if any(status == TaskStatus.WORKING.value for status in child_statuses):
        return TaskStatus.WORKING
    return TaskStatus.IDLE


class TaskService:
    """Service for task business logic."""

    def __init__(self, db: TinyTaskDatabase):
        """Initialize task service with database dependency."""
        self.db = db
        self.tasks = TaskRepository(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: int, include_relations: bool = False) -> Union[Task, TaskWithRelations]:
        """
        Get a task by ID. Archived tasks are still readable.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if not include_relations:
            return task
        return TaskWithRelations(
            **task.model_dump(),
            comments=self.tasks.get_comments(task_id),
            links=self.tasks.get_links(task_id),
        )

    def list_tasks(self, filters: Union[TaskFilters, Dict[str, Any], None] = None) -> List[Task]:
        """List tasks by priority (descending) then creation time (ascending)."""
        filters = parse_model(TaskFilters, filters)
        return self.tasks.list(filters)

    def get_subtasks(self, parent_task_id: int, recursive: bool = False) -> List[Task]:
        """Direct children, or every non-archived descendant when recursive."""
        if recursive:
            return self.tasks.list_descendants(parent_task_id, MAX_DEPTH)
        return self.tasks.list(TaskFilters(parent_task_id=parent_task_id))

    def get_task_with_subtasks(self, task_id: int, recursive: bool = False) -> TaskWithSubtasks:
        """A task together with its (optionally recursive) subtasks."""
        task = self.get_task(task_id)
        subtasks = self.get_subtasks(task_id, recursive=recursive)
        return TaskWithSubtasks(**task.model_dump(), subtasks=subtasks, subtask_count=len(subtasks))

    def get_agent_queue(self, agent_name: str) -> List[Task]:
        """Active (idle or working) non-archived tasks assigned to an agent."""
        tasks = self.tasks.list(TaskFilters(assigned_to=agent_name))
        return [t for t in tasks if t.status in (TaskStatus.IDLE, TaskStatus.WORKING)]

    def get_blocked_tasks(self, blocker_task_id: int) -> List[Task]:
        """Non-archived tasks whose blocked_by_task_id points at the given task."""
        return self.tasks.list(TaskFilters(blocked_by_task_id=blocker_task_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_task(self, task_data: Union[TaskCreate, Dict[str, Any]]) -> Task:
        """
        Create a task, optionally as a subtask and/or blocked by another task.

        A subtask inherits its parent's queue unless the caller supplied one,
        and its parent's status is re-derived in the same transaction.

        Raises:
            ValidationError: If the input is invalid
            TaskNotFoundError: If the parent or blocker does not exist
            DepthExceededError: If the parent is already at the deepest level
        """
        task_data = parse_model(TaskCreate, task_data)

        with trace_span("task.create", {"task.parent_id": task_data.parent_task_id}):
            with self.db.transaction():
                queue_name = task_data.queue_name
                if task_data.parent_task_id is not None:
                    parent = self.tasks.get_link_fields(task_data.parent_task_id)
                    if parent is None:
                        raise TaskNotFoundError(
                            task_data.parent_task_id,
                            message=f"Parent task {task_data.parent_task_id} not found",
                        )
                    self._check_depth(task_data.parent_task_id, subtree_height=0)
                    if "queue_name" not in task_data.model_fields_set:
                        queue_name = parent["queue_name"]

                if task_data.blocked_by_task_id is not None and not self.tasks.exists(task_data.blocked_by_task_id):
                    raise TaskNotFoundError(
                        task_data.blocked_by_task_id,
                        message=f"Blocking task {task_data.blocked_by_task_id} not found",
                    )

                task_id = self.tasks.insert({
                    "title": task_data.title,
                    "description": task_data.description,
                    "status": task_data.status.value,
                    "assigned_to": task_data.assigned_to,
                    "created_by": task_data.created_by,
                    "priority": task_data.priority,
                    "tags": serialize_tags(task_data.tags),
                    "parent_task_id": task_data.parent_task_id,
                    "queue_name": queue_name,
                    "blocked_by_task_id": task_data.blocked_by_task_id,
                })

                if task_data.parent_task_id is not None:
                    self.propagate_status(task_data.parent_task_id)

                logger.info(f"Created task {task_id} '{task_data.title}'")
                return self.get_task(task_id)

    def create_subtask(self, parent_task_id: int, task_data: Union[TaskCreate, Dict[str, Any]]) -> Task:
        """Create a task under the given parent."""
        data = task_data.model_dump(exclude_unset=True) if isinstance(task_data, TaskCreate) else dict(task_data or {})
        data["parent_task_id"] = parent_task_id
        return self.create_task(data)

    def update_task(self, task_id: int, updates: Union[TaskUpdate, Dict[str, Any]]) -> Task:
        """
        Apply a partial update. Only fields present in the update are written;
        updated_at is always bumped.

        Raises:
            ValidationError: If a supplied field is invalid
            TaskNotFoundError: If the task, new parent, or new blocker does not exist
            SelfReferenceError: If the task is given as its own parent or blocker
            CircularDependencyError: If the change would close a cycle
            DepthExceededError: If the move would nest the subtree too deeply
        """
        updates = parse_model(TaskUpdate, updates)
        provided = updates.provided()

        with trace_span("task.update", {"task.id": task_id, "task.fields": ",".join(sorted(provided))}):
            with self.db.transaction():
                existing = self.tasks.get(task_id)
                if existing is None:
                    raise TaskNotFoundError(task_id)

                fields: Dict[str, Any] = {}
                for name in ("title", "description", "priority", "queue_name", "archived_at"):
                    if name in provided:
                        fields[name] = provided[name]
                if "status" in provided:
                    fields["status"] = provided["status"].value
                if "tags" in provided:
                    fields["tags"] = serialize_tags(provided["tags"])

                if "assigned_to" in provided:
                    new_assignee = provided["assigned_to"]
                    fields["assigned_to"] = new_assignee
                    if new_assignee != existing.assigned_to and existing.assigned_to is not None:
                        fields["previous_assigned_to"] = existing.assigned_to

                if "parent_task_id" in provided:
                    new_parent = provided["parent_task_id"]
                    if new_parent is not None:
                        self._validate_new_parent(task_id, new_parent)
                    fields["parent_task_id"] = new_parent

                if "blocked_by_task_id" in provided:
                    new_blocker = provided["blocked_by_task_id"]
                    if new_blocker is not None:
                        self._validate_new_blocker(task_id, new_blocker)
                    fields["blocked_by_task_id"] = new_blocker

                self.tasks.update_fields(task_id, fields)

                old_parent = existing.parent_task_id
                new_parent = fields.get("parent_task_id", old_parent)
                if new_parent != old_parent:
                    if old_parent is not None:
                        self.propagate_status(old_parent)
                    if new_parent is not None:
                        self.propagate_status(new_parent)
                elif new_parent is not None and ("status" in fields or "archived_at" in fields):
                    self.propagate_status(new_parent)

                logger.debug(f"Updated task {task_id}: {sorted(provided)}")
                return self.get_task(task_id)

    def delete_task(self, task_id: int) -> None:
        """
        Hard-delete a task. Its subtree, comments and links go with it and
        tasks it was blocking are released.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        with trace_span("task.delete", {"task.id": task_id}):
            with self.db.transaction():
                existing = self.tasks.get_link_fields(task_id)
                if existing is None:
                    raise TaskNotFoundError(task_id)
                self.tasks.delete(task_id)
                if existing["parent_task_id"] is not None:
                    self.propagate_status(existing["parent_task_id"])
        logger.info(f"Deleted task {task_id}")

    def archive_task(self, task_id: int) -> Task:
        """Soft-delete a task; it stays readable by ID."""
        return self.update_task(task_id, TaskUpdate(archived_at=utc_now()))

    def move_subtask(self, task_id: int, new_parent_task_id: Optional[int]) -> Task:
        """Re-parent a task; None promotes it to a top-level task."""
        return self.update_task(task_id, TaskUpdate(parent_task_id=new_parent_task_id))

    def set_blocked_by(self, task_id: int, blocker_task_id: Optional[int]) -> Task:
        """Set or clear the task blocking this one."""
        return self.update_task(task_id, TaskUpdate(blocked_by_task_id=blocker_task_id))

    # ------------------------------------------------------------------
    # Graph rules
    # ------------------------------------------------------------------

    def _ancestors(self, task_id: int) -> List[int]:
        """
        Ancestor chain of a task, nearest first.

        Stops after MAX_DEPTH + 1 hops or on a repeated id so a corrupted
        chain cannot loop forever; callers treat an over-long chain as too deep.
        """
        chain: List[int] = []
        seen = {task_id}
        row = self.tasks.get_link_fields(task_id)
        while row is not None and row["parent_task_id"] is not None and len(chain) <= MAX_DEPTH:
            parent_id = row["parent_task_id"]
            if parent_id in seen:
                logger.warning(f"Parent chain of task {task_id} loops at task {parent_id}")
                break
            chain.append(parent_id)
            seen.add(parent_id)
            row = self.tasks.get_link_fields(parent_id)
        return chain

    def _subtree_height(self, task_id: int) -> int:
        """Levels below a task (0 for a leaf), capped at MAX_DEPTH."""
        height = 0
        level = [task_id]
        seen = {task_id}
        while height < MAX_DEPTH:
            children = [c for c in self.tasks.child_ids(level) if c not in seen]
            if not children:
                break
            seen.update(children)
            level = children
            height += 1
        return height

    def _check_depth(self, parent_task_id: int, subtree_height: int):
        """Reject placing a subtree of the given height under parent_task_id."""
        parent_level = len(self._ancestors(parent_task_id)) + 1
        if parent_level + 1 + subtree_height > MAX_DEPTH:
            raise DepthExceededError(MAX_DEPTH)

    def _validate_new_parent(self, task_id: int, new_parent_id: int):
        if new_parent_id == task_id:
            raise SelfReferenceError(task_id, "parent")
        if not self.tasks.exists(new_parent_id):
            raise TaskNotFoundError(new_parent_id, message=f"Parent task {new_parent_id} not found")
        if task_id in self._ancestors(new_parent_id):
            raise CircularDependencyError(
                f"Cannot set task {new_parent_id} as parent of task {task_id}: "
                f"task {new_parent_id} is a descendant of task {task_id}",
                task_id=task_id,
                related_task_id=new_parent_id,
            )
        self._check_depth(new_parent_id, self._subtree_height(task_id))

    def _validate_new_blocker(self, task_id: int, blocker_id: int):
        if blocker_id == task_id:
            raise SelfReferenceError(task_id, "blocker")
        blocker = self.tasks.get_link_fields(blocker_id)
        if blocker is None:
            raise TaskNotFoundError(blocker_id, message=f"Blocking task {blocker_id} not found")

        # Walk the blocker's own blocked-by chain; the direct mutual case is its first hop.
        seen = {blocker_id}
        current = blocker
        while current is not None and current["blocked_by_task_id"] is not None:
            next_id = current["blocked_by_task_id"]
            if next_id == task_id:
                raise CircularDependencyError(
                    f"Cannot block task {task_id} by task {blocker_id}: "
                    f"task {blocker_id} is already blocked by task {task_id}",
                    task_id=task_id,
                    related_task_id=blocker_id,
                )
            if next_id in seen:
                break
            seen.add(next_id)
            current = self.tasks.get_link_fields(next_id)

    def propagate_status(self, parent_task_id: int):
        """
        Re-derive a parent's status from its non-archived children and
        continue upward while the status keeps changing. Runs inside the
        caller's transaction.
        """
        current_id: Optional[int] = parent_task_id
        hops = 0
        while current_id is not None and hops < MAX_DEPTH:
            derived = derive_parent_status(self.tasks.active_child_statuses(current_id))
            if derived is None:
                return
            row = self.tasks.get_link_fields(current_id)
            if row is None or row["status"] == derived.value:
                return
            self.tasks.update_fields(current_id, {"status": derived.value})
            logger.info(f"Task {current_id} status {row['status']} -> {derived.value} from its subtasks")
            current_id = row["parent_task_id"]
            hops += 1

"""
Handoff service - the claim and handoff protocol between agents.

Both operations are read-then-write sequences that must be indivisible.
They run in one BEGIN IMMEDIATE transaction, so two agents racing for the
same row are serialized by the store rather than by locks in this process.
"""
import logging
from typing import Optional

from tinytask.database import TinyTaskDatabase
from tinytask.exceptions import (
    TaskNotFoundError,
    ValidationError,
    NotAssignedToCallerError,
    InvalidStateForTransferError,
)
from tinytask.models import TaskStatus, TaskWithRelations
from tinytask.services.task_service import TaskService
from tinytask.tracing import trace_span

logger = logging.getLogger(__name__)

TRANSFERABLE_STATUSES = (TaskStatus.IDLE.value, TaskStatus.WORKING.value)


def _require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    return value


class HandoffService:
    """Service for claiming tasks and handing them between agents."""

    def __init__(self, db: TinyTaskDatabase, task_service: Optional[TaskService] = None):
        self.db = db
        self.task_service = task_service or TaskService(db)

    def signup_for_task(self, agent_name: str) -> Optional[TaskWithRelations]:
        """
        Claim the agent's next idle task and mark it working.

        Picks the highest-priority idle, non-archived task assigned to the
        agent, oldest first within a priority. Returns None when the agent
        has nothing waiting.
        """
        agent_name = _require(agent_name, "agent_name")
        tasks = self.task_service.tasks

        with trace_span("task.signup", {"agent.name": agent_name}):
            with self.db.transaction():
                row = self.db.query_one(
                    """
                    SELECT id, parent_task_id FROM tasks
                    WHERE assigned_to = ? AND status = 'idle' AND archived_at IS NULL
                    ORDER BY priority DESC, created_at ASC, id ASC
                    LIMIT 1
                    """,
                    (agent_name,),
                )
                if row is None:
                    logger.debug(f"No idle task available for {agent_name}")
                    return None

                task_id = row["id"]
                tasks.update_fields(task_id, {"status": TaskStatus.WORKING.value})
                if row["parent_task_id"] is not None:
                    self.task_service.propagate_status(row["parent_task_id"])

                logger.info(f"Agent {agent_name} signed up for task {task_id}")
                return self.task_service.get_task(task_id, include_relations=True)

    def move_task(self, task_id: int, current_agent: str, new_agent: str, comment: str) -> TaskWithRelations:
        """
        Hand a task from its current agent to another.

        The task restarts idle for the new agent, previous_assigned_to records
        the handing agent, and the handoff comment is written in the same
        transaction as the reassignment.

        Raises:
            ValidationError: If an agent name or the comment is blank
            TaskNotFoundError: If the task does not exist
            NotAssignedToCallerError: If current_agent does not hold the task
            InvalidStateForTransferError: If the task is complete
        """
        current_agent = _require(current_agent, "current_agent")
        new_agent = _require(new_agent, "new_agent")
        comment = _require(comment, "comment").strip()
        tasks = self.task_service.tasks

        with trace_span("task.move", {"task.id": task_id, "agent.from": current_agent, "agent.to": new_agent}):
            with self.db.transaction():
                existing = tasks.get(task_id)
                if existing is None:
                    raise TaskNotFoundError(task_id)
                if existing.assigned_to != current_agent:
                    raise NotAssignedToCallerError(task_id, current_agent, existing.assigned_to)
                if existing.status.value not in TRANSFERABLE_STATUSES:
                    raise InvalidStateForTransferError(task_id, existing.status.value)

                tasks.update_fields(task_id, {
                    "assigned_to": new_agent,
                    "previous_assigned_to": current_agent,
                    "status": TaskStatus.IDLE.value,
                })
                tasks.add_comment(task_id, comment, current_agent)
                if existing.parent_task_id is not None:
                    self.task_service.propagate_status(existing.parent_task_id)

                logger.info(f"Task {task_id} handed from {current_agent} to {new_agent}")
                return self.task_service.get_task(task_id, include_relations=True)

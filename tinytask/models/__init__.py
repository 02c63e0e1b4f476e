"""
Pydantic models for request/response validation.
"""
from .task_models import (
    TaskStatus,
    TaskCreate,
    TaskUpdate,
    TaskFilters,
    Task,
    TaskWithRelations,
    TaskWithSubtasks,
    Comment,
    Link,
    StatusCounts,
    QueueStats,
    MAX_QUEUE_NAME_LENGTH,
)

__all__ = [
    "TaskStatus",
    "TaskCreate",
    "TaskUpdate",
    "TaskFilters",
    "Task",
    "TaskWithRelations",
    "TaskWithSubtasks",
    "Comment",
    "Link",
    "StatusCounts",
    "QueueStats",
    "MAX_QUEUE_NAME_LENGTH",
]

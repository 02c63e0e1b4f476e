"""
Pydantic models for task-related requests and responses.

Update and filter models rely on ``model_fields_set`` to tell an omitted
field apart from one explicitly set to None; for ``parent_task_id``,
``blocked_by_task_id`` and ``queue_name`` that difference is meaningful.
"""
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_QUEUE_NAME_LENGTH = 255


class TaskStatus(str, Enum):
    """Task status enumeration."""
    IDLE = "idle"
    WORKING = "working"
    COMPLETE = "complete"


VALID_STATUSES = [s.value for s in TaskStatus]


def normalize_queue_name(v: Optional[str]) -> Optional[str]:
    """Strip a queue name and enforce the non-blank and length rules."""
    if v is None:
        return None
    if not isinstance(v, str):
        raise ValueError("Queue name must be a string")
    trimmed = v.strip()
    if not trimmed:
        raise ValueError("Queue name cannot be empty")
    if len(trimmed) > MAX_QUEUE_NAME_LENGTH:
        raise ValueError(f"Queue name is too long (max {MAX_QUEUE_NAME_LENGTH} characters)")
    return trimmed


class TaskCreate(BaseModel):
    """Request model for creating a task."""
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Optional longer description")
    status: TaskStatus = Field(TaskStatus.IDLE, description="Initial status: idle, working, or complete")
    assigned_to: Optional[str] = Field(None, description="Agent the task is assigned to")
    created_by: Optional[str] = Field(None, description="Agent creating the task")
    priority: int = Field(0, description="Higher is more urgent")
    tags: List[str] = Field(default_factory=list, description="Ordered list of tags")
    parent_task_id: Optional[int] = Field(None, description="Parent task ID for subtasks")
    queue_name: Optional[str] = Field(None, description="Team queue; inherited from the parent when omitted")
    blocked_by_task_id: Optional[int] = Field(None, description="Task that blocks this one")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that title is not empty or only whitespace."""
        if not v or not v.strip():
            raise ValueError("Task title is required")
        return v.strip()

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, v):
        """Default a null status to idle and reject unknown values with a clear message."""
        if v is None:
            return TaskStatus.IDLE
        value = v.value if isinstance(v, TaskStatus) else v
        if value not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {v}. Must be one of: {', '.join(VALID_STATUSES)}")
        return value

    @field_validator('priority', mode='before')
    @classmethod
    def default_priority(cls, v):
        return 0 if v is None else v

    @field_validator('tags', mode='before')
    @classmethod
    def default_tags(cls, v):
        return [] if v is None else v

    @field_validator('queue_name')
    @classmethod
    def validate_queue_name(cls, v: Optional[str]) -> Optional[str]:
        return normalize_queue_name(v)


class TaskUpdate(BaseModel):
    """Partial update; only fields present in ``model_fields_set`` are applied."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = None
    priority: Optional[int] = None
    tags: Optional[List[str]] = None
    parent_task_id: Optional[int] = None
    queue_name: Optional[str] = None
    blocked_by_task_id: Optional[int] = None
    archived_at: Optional[str] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("Task title cannot be empty")
        return v.strip()

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, v):
        value = v.value if isinstance(v, TaskStatus) else v
        if value not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {v}. Must be one of: {', '.join(VALID_STATUSES)}")
        return value

    @field_validator('priority', 'tags')
    @classmethod
    def validate_not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator('queue_name')
    @classmethod
    def validate_queue_name(cls, v: Optional[str]) -> Optional[str]:
        return normalize_queue_name(v)

    def provided(self) -> Dict[str, object]:
        """Fields the caller actually supplied, with their values."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskFilters(BaseModel):
    """Filters shared by task listing and queue listing."""
    model_config = ConfigDict(extra="forbid")

    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None
    include_archived: bool = False
    parent_task_id: Optional[int] = Field(None, description="Explicit null means top-level tasks only")
    queue_name: Optional[str] = None
    blocked_by_task_id: Optional[int] = None
    exclude_subtasks: bool = False
    limit: Optional[int] = Field(None, ge=1)
    offset: Optional[int] = Field(None, ge=0)

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, v):
        if v is None:
            return v
        value = v.value if isinstance(v, TaskStatus) else v
        if value not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {v}. Must be one of: {', '.join(VALID_STATUSES)}")
        return value


class Comment(BaseModel):
    """Comment attached to a task."""
    id: int
    task_id: int
    content: str
    created_by: Optional[str]
    created_at: str
    updated_at: str


class Link(BaseModel):
    """Link attached to a task."""
    id: int
    task_id: int
    url: str
    description: Optional[str]
    created_by: Optional[str]
    created_at: str


class Task(BaseModel):
    """Task response model with tags parsed and blocking state computed."""
    id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    assigned_to: Optional[str]
    previous_assigned_to: Optional[str]
    created_by: Optional[str]
    priority: int
    tags: List[str]
    parent_task_id: Optional[int]
    queue_name: Optional[str]
    blocked_by_task_id: Optional[int]
    created_at: str
    updated_at: str
    archived_at: Optional[str]
    is_currently_blocked: bool = False


class TaskWithRelations(Task):
    comments: List[Comment] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)


class TaskWithSubtasks(Task):
    subtasks: List[Task] = Field(default_factory=list)
    subtask_count: int = 0


class StatusCounts(BaseModel):
    idle: int = 0
    working: int = 0
    complete: int = 0


class QueueStats(BaseModel):
    """Aggregate view of one queue."""
    queue_name: str
    total_tasks: int = 0
    by_status: StatusCounts = Field(default_factory=StatusCounts)
    assigned: int = 0
    unassigned: int = 0
    agents: List[str] = Field(default_factory=list)

"""
Tool definitions exposed over MCP.

Each entry names a procedure, describes it for the calling agent, and lists
its parameters. Parameters marked ``optional`` may be omitted; for
``parent_task_id``, ``blocked_by_task_id`` and ``queue_name`` on update an
explicit null is meaningful and clears the field.
"""

_TASK_ID = {
    "type": "integer",
    "description": "ID of the task.",
    "minimum": 1,
    "example": 12
}

_AGENT = {
    "type": "string",
    "description": "Free-form agent name.",
    "minLength": 1,
    "example": "vaela"
}

_QUEUE_NAME = {
    "type": "string",
    "description": "Team queue name (trimmed, 1-255 characters).",
    "minLength": 1,
    "maxLength": 255,
    "example": "dev"
}

_STATUS = {
    "type": "string",
    "enum": ["idle", "working", "complete"],
    "description": "Task status."
}

_LIST_FILTERS = {
    "assigned_to": {"type": "string", "optional": True, "description": "Only tasks assigned to this agent."},
    "status": dict(_STATUS, optional=True, description="Only tasks with this status."),
    "include_archived": {"type": "boolean", "optional": True, "default": False,
                         "description": "Include archived tasks (excluded by default)."},
    "parent_task_id": {"type": ["integer", "null"], "optional": True,
                       "description": "Only children of this task; null means top-level tasks only."},
    "exclude_subtasks": {"type": "boolean", "optional": True, "default": False,
                         "description": "Only top-level tasks."},
    "blocked_by_task_id": {"type": "integer", "optional": True,
                           "description": "Only tasks blocked by this task."},
    "limit": {"type": "integer", "optional": True, "minimum": 1, "description": "Maximum number of tasks."},
    "offset": {"type": "integer", "optional": True, "minimum": 0, "description": "Number of tasks to skip."},
}

_TASK_FIELDS = {
    "description": {"type": "string", "optional": True, "description": "Longer description."},
    "status": dict(_STATUS, optional=True, description="Initial status (default idle)."),
    "assigned_to": dict(_AGENT, optional=True, description="Agent the task is assigned to."),
    "created_by": dict(_AGENT, optional=True, description="Agent creating the task."),
    "priority": {"type": "integer", "optional": True, "default": 0,
                 "description": "Higher is more urgent (default 0)."},
    "tags": {"type": "array", "items": {"type": "string"}, "optional": True, "description": "Ordered tags."},
    "queue_name": dict(_QUEUE_NAME, optional=True,
                       description="Team queue; a subtask inherits its parent's queue when omitted."),
    "blocked_by_task_id": {"type": "integer", "optional": True, "description": "Task that blocks this one."},
}

MCP_FUNCTIONS = [
    {
        "name": "create_task",
        "description": "Create a task. Pass parent_task_id to create it as a subtask (at most 3 levels deep); the parent's status is then re-derived from its children. Returns the created task.\n\nERROR HANDLING:\n- ValidationError if the title is empty or status/queue_name is invalid.\n- NotFoundError if the parent or blocker does not exist.\n- DepthExceededError if the parent already sits at the deepest level.",
        "parameters": dict(
            {"title": {"type": "string", "minLength": 1, "description": "Task title.", "example": "Write release notes"}},
            parent_task_id={"type": "integer", "optional": True, "description": "Parent task for a subtask."},
            **_TASK_FIELDS
        )
    },
    {
        "name": "get_task",
        "description": "Get a task by ID, including archived tasks. Comments and links are included unless include_relations is false.",
        "parameters": {
            "task_id": _TASK_ID,
            "include_relations": {"type": "boolean", "optional": True, "default": True,
                                  "description": "Load comments and links."}
        }
    },
    {
        "name": "update_task",
        "description": "Update only the supplied fields of a task; updated_at is always bumped. Changing assigned_to records the previous assignee. Changing parent_task_id or blocked_by_task_id re-runs the self-reference, cycle and depth checks.\n\nERROR HANDLING:\n- SelfReferenceError, CircularDependencyError, DepthExceededError on an invalid re-link.\n- NotFoundError if the task, new parent or new blocker does not exist.",
        "parameters": {
            "task_id": _TASK_ID,
            "title": {"type": "string", "optional": True, "minLength": 1, "description": "New title."},
            "description": {"type": ["string", "null"], "optional": True, "description": "New description."},
            "status": dict(_STATUS, optional=True),
            "assigned_to": {"type": ["string", "null"], "optional": True, "description": "New assignee."},
            "priority": {"type": "integer", "optional": True, "description": "New priority."},
            "tags": {"type": "array", "items": {"type": "string"}, "optional": True, "description": "Replacement tags."},
            "parent_task_id": {"type": ["integer", "null"], "optional": True,
                               "description": "New parent; null makes the task top-level."},
            "queue_name": {"type": ["string", "null"], "optional": True, "description": "New queue; null removes it."},
            "blocked_by_task_id": {"type": ["integer", "null"], "optional": True,
                                   "description": "New blocker; null clears it."},
            "archived_at": {"type": ["string", "null"], "optional": True,
                            "description": "Archive timestamp; null restores an archived task."}
        }
    },
    {
        "name": "delete_task",
        "description": "Permanently delete a task with its subtasks, comments and links. Tasks it was blocking are released.",
        "parameters": {"task_id": _TASK_ID}
    },
    {
        "name": "archive_task",
        "description": "Archive a task. Archived tasks are hidden from listings and queues but still readable by ID.",
        "parameters": {"task_id": _TASK_ID}
    },
    {
        "name": "list_tasks",
        "description": "List tasks ordered by priority (highest first) then creation time (oldest first).",
        "parameters": dict(_LIST_FILTERS, queue_name=dict(_QUEUE_NAME, optional=True, description="Only tasks in this queue."))
    },
    {
        "name": "get_my_queue",
        "description": "Open (idle or working) tasks assigned to an agent, in claim order.",
        "parameters": {"agent_name": _AGENT}
    },
    {
        "name": "signup_for_task",
        "description": "Claim the agent's highest-priority idle task and mark it working. Returns {\"task\": null} when nothing is waiting.",
        "parameters": {"agent_name": _AGENT}
    },
    {
        "name": "move_task",
        "description": "Hand a task to another agent. The task restarts idle for the new agent and the handoff comment is recorded.\n\nERROR HANDLING:\n- NotAssignedToCallerError if current_agent does not hold the task.\n- InvalidStateForTransferError if the task is complete.",
        "parameters": {
            "task_id": _TASK_ID,
            "current_agent": dict(_AGENT, description="Agent currently holding the task."),
            "new_agent": dict(_AGENT, description="Agent receiving the task."),
            "comment": {"type": "string", "minLength": 1, "description": "Handoff message for the new agent."}
        }
    },
    {
        "name": "set_blocked_by",
        "description": "Set or clear (null) the task that blocks this one.",
        "parameters": {
            "task_id": _TASK_ID,
            "blocker_task_id": {"type": ["integer", "null"], "description": "Blocking task ID, or null to clear."}
        }
    },
    {
        "name": "get_blocked_tasks",
        "description": "Tasks that the given task is blocking (tasks whose blocked_by_task_id is blocker_task_id). "
                       "To find what blocks a task, read blocked_by_task_id from get_task.",
        "parameters": {"blocker_task_id": dict(_TASK_ID, description="ID of the blocking task.")}
    },
    {
        "name": "create_subtask",
        "description": "Create a subtask under parent_task_id. Inherits the parent's queue unless queue_name is given.",
        "parameters": dict(
            {"parent_task_id": dict(_TASK_ID, description="Parent task ID."),
             "title": {"type": "string", "minLength": 1, "description": "Subtask title."}},
            **_TASK_FIELDS
        )
    },
    {
        "name": "get_subtasks",
        "description": "Direct subtasks of a task, or all non-archived descendants when recursive is true.",
        "parameters": {
            "parent_task_id": dict(_TASK_ID, description="Parent task ID."),
            "recursive": {"type": "boolean", "optional": True, "default": False,
                          "description": "Include all descendants."}
        }
    },
    {
        "name": "get_task_with_subtasks",
        "description": "A task together with its subtasks and subtask_count.",
        "parameters": {
            "task_id": _TASK_ID,
            "recursive": {"type": "boolean", "optional": True, "default": False,
                          "description": "Include all descendants."}
        }
    },
    {
        "name": "move_subtask",
        "description": "Move a task under a new parent, or make it top-level with null.",
        "parameters": {
            "subtask_id": _TASK_ID,
            "new_parent_id": {"type": ["integer", "null"], "description": "New parent task ID, or null."}
        }
    },
    {
        "name": "list_queues",
        "description": "Names of all queues in use by active tasks, alphabetical.",
        "parameters": {}
    },
    {
        "name": "get_queue_stats",
        "description": "Counts for a queue: total, by status, assigned/unassigned, and the agents working it. An unused queue returns zeros.",
        "parameters": {"queue_name": _QUEUE_NAME}
    },
    {
        "name": "add_task_to_queue",
        "description": "Put a task in a queue.",
        "parameters": {"task_id": _TASK_ID, "queue_name": _QUEUE_NAME}
    },
    {
        "name": "remove_task_from_queue",
        "description": "Take a task out of its queue.",
        "parameters": {"task_id": _TASK_ID}
    },
    {
        "name": "move_task_to_queue",
        "description": "Move a task to another queue.",
        "parameters": {"task_id": _TASK_ID, "new_queue_name": _QUEUE_NAME}
    },
    {
        "name": "get_queue_tasks",
        "description": "Tasks in a queue, with the same filters as list_tasks.",
        "parameters": dict({"queue_name": _QUEUE_NAME}, **_LIST_FILTERS)
    },
    {
        "name": "clear_queue",
        "description": "Remove every active task from a queue. Returns the number of tasks affected.",
        "parameters": {"queue_name": _QUEUE_NAME}
    },
]

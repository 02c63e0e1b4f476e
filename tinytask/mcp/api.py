"""
MCP API for the TinyTask service.

One static method per tool. Each runs inside an ``mcp.<tool>`` span, calls
the services from the global container, and returns JSON-ready
dictionaries. Service errors propagate to the request handler, which turns
them into MCP error results.
"""
from typing import Optional, List, Dict, Any

from tinytask.dependencies.services import get_services
from tinytask.tracing import trace_span, add_span_attribute


def _dump(model) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


def _dump_all(models) -> List[Dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


class MCPTinyTaskAPI:
    """MCP API for TinyTask."""

    # Task graph

    @staticmethod
    def create_task(arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Create a task; arguments are the TaskCreate fields as sent by the caller."""
        with trace_span("mcp.create_task", {"mcp.parent_task_id": arguments.get("parent_task_id")}):
            task = get_services().task_service.create_task(dict(arguments))
            add_span_attribute("mcp.task_id", task.id)
            return _dump(task)

    @staticmethod
    def get_task(task_id: int, include_relations: bool = True) -> Dict[str, Any]:
        with trace_span("mcp.get_task", {"mcp.task_id": task_id}):
            return _dump(get_services().task_service.get_task(task_id, include_relations=include_relations))

    @staticmethod
    def update_task(task_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update a task. Only keys present in ``updates`` are applied, null values included."""
        with trace_span("mcp.update_task", {"mcp.task_id": task_id, "mcp.fields": ",".join(sorted(updates))}):
            return _dump(get_services().task_service.update_task(task_id, dict(updates)))

    @staticmethod
    def delete_task(task_id: int) -> Dict[str, Any]:
        with trace_span("mcp.delete_task", {"mcp.task_id": task_id}):
            get_services().task_service.delete_task(task_id)
            return {"success": True, "task_id": task_id}

    @staticmethod
    def archive_task(task_id: int) -> Dict[str, Any]:
        with trace_span("mcp.archive_task", {"mcp.task_id": task_id}):
            return _dump(get_services().task_service.archive_task(task_id))

    @staticmethod
    def list_tasks(filters: Dict[str, Any]) -> Dict[str, Any]:
        with trace_span("mcp.list_tasks"):
            tasks = get_services().task_service.list_tasks(dict(filters))
            add_span_attribute("mcp.result_count", len(tasks))
            return {"tasks": _dump_all(tasks), "count": len(tasks)}

    @staticmethod
    def get_my_queue(agent_name: str) -> Dict[str, Any]:
        with trace_span("mcp.get_my_queue", {"mcp.agent_name": agent_name}):
            tasks = get_services().task_service.get_agent_queue(agent_name)
            return {"agent_name": agent_name, "tasks": _dump_all(tasks), "count": len(tasks)}

    @staticmethod
    def set_blocked_by(task_id: int, blocker_task_id: Optional[int]) -> Dict[str, Any]:
        with trace_span("mcp.set_blocked_by", {"mcp.task_id": task_id, "mcp.blocker_task_id": blocker_task_id}):
            return _dump(get_services().task_service.set_blocked_by(task_id, blocker_task_id))

    @staticmethod
    def get_blocked_tasks(blocker_task_id: int) -> Dict[str, Any]:
        with trace_span("mcp.get_blocked_tasks", {"mcp.blocker_task_id": blocker_task_id}):
            tasks = get_services().task_service.get_blocked_tasks(blocker_task_id)
            return {"blocker_task_id": blocker_task_id, "tasks": _dump_all(tasks), "count": len(tasks)}

    @staticmethod
    def create_subtask(parent_task_id: int, arguments: Dict[str, Any]) -> Dict[str, Any]:
        with trace_span("mcp.create_subtask", {"mcp.parent_task_id": parent_task_id}):
            return _dump(get_services().task_service.create_subtask(parent_task_id, dict(arguments)))

    @staticmethod
    def get_subtasks(parent_task_id: int, recursive: bool = False) -> Dict[str, Any]:
        with trace_span("mcp.get_subtasks", {"mcp.parent_task_id": parent_task_id, "mcp.recursive": recursive}):
            tasks = get_services().task_service.get_subtasks(parent_task_id, recursive=recursive)
            return {"parent_task_id": parent_task_id, "subtasks": _dump_all(tasks), "count": len(tasks)}

    @staticmethod
    def get_task_with_subtasks(task_id: int, recursive: bool = False) -> Dict[str, Any]:
        with trace_span("mcp.get_task_with_subtasks", {"mcp.task_id": task_id, "mcp.recursive": recursive}):
            return _dump(get_services().task_service.get_task_with_subtasks(task_id, recursive=recursive))

    @staticmethod
    def move_subtask(subtask_id: int, new_parent_id: Optional[int]) -> Dict[str, Any]:
        with trace_span("mcp.move_subtask", {"mcp.task_id": subtask_id, "mcp.new_parent_id": new_parent_id}):
            return _dump(get_services().task_service.move_subtask(subtask_id, new_parent_id))

    # Claim/handoff

    @staticmethod
    def signup_for_task(agent_name: str) -> Dict[str, Any]:
        with trace_span("mcp.signup_for_task", {"mcp.agent_name": agent_name}):
            task = get_services().handoff_service.signup_for_task(agent_name)
            if task is None:
                return {"task": None, "message": f"No idle tasks available for {agent_name}"}
            add_span_attribute("mcp.task_id", task.id)
            return {"task": _dump(task)}

    @staticmethod
    def move_task(task_id: int, current_agent: str, new_agent: str, comment: str) -> Dict[str, Any]:
        with trace_span("mcp.move_task", {"mcp.task_id": task_id, "mcp.new_agent": new_agent}):
            task = get_services().handoff_service.move_task(task_id, current_agent, new_agent, comment)
            return _dump(task)

    # Queues

    @staticmethod
    def list_queues() -> Dict[str, Any]:
        with trace_span("mcp.list_queues"):
            queues = get_services().queue_service.list_queues()
            return {"queues": queues, "count": len(queues)}

    @staticmethod
    def get_queue_stats(queue_name: str) -> Dict[str, Any]:
        with trace_span("mcp.get_queue_stats", {"mcp.queue_name": queue_name}):
            return _dump(get_services().queue_service.get_queue_stats(queue_name))

    @staticmethod
    def add_task_to_queue(task_id: int, queue_name: str) -> Dict[str, Any]:
        with trace_span("mcp.add_task_to_queue", {"mcp.task_id": task_id, "mcp.queue_name": queue_name}):
            return _dump(get_services().queue_service.add_task_to_queue(task_id, queue_name))

    @staticmethod
    def remove_task_from_queue(task_id: int) -> Dict[str, Any]:
        with trace_span("mcp.remove_task_from_queue", {"mcp.task_id": task_id}):
            return _dump(get_services().queue_service.remove_task_from_queue(task_id))

    @staticmethod
    def move_task_to_queue(task_id: int, new_queue_name: str) -> Dict[str, Any]:
        with trace_span("mcp.move_task_to_queue", {"mcp.task_id": task_id, "mcp.queue_name": new_queue_name}):
            return _dump(get_services().queue_service.move_task_to_queue(task_id, new_queue_name))

    @staticmethod
    def get_queue_tasks(queue_name: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        with trace_span("mcp.get_queue_tasks", {"mcp.queue_name": queue_name}):
            tasks = get_services().queue_service.get_queue_tasks(queue_name, dict(filters))
            return {"queue_name": queue_name, "tasks": _dump_all(tasks), "count": len(tasks)}

    @staticmethod
    def clear_queue(queue_name: str) -> Dict[str, Any]:
        with trace_span("mcp.clear_queue", {"mcp.queue_name": queue_name}):
            count = get_services().queue_service.clear_queue(queue_name)
            return {"queue_name": queue_name, "tasks_cleared": count}

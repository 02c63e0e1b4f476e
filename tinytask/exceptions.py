"""
Exception hierarchy for tinytask.

Every failure the engine raises is a ServiceError subclass carrying a
human-readable message plus optional request id, context and the original
error. Helpers convert errors into HTTPException instances and MCP
(JSON-RPC) error payloads.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for all tinytask errors."""

    http_status_code: Optional[int] = None
    mcp_error_code: int = -32000

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.context = dict(context) if context else {}
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error, omitting empty optional fields."""
        result: Dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
        }
        if self.request_id:
            result["request_id"] = self.request_id
        if self.context:
            result["context"] = self.context
        if self.original_error is not None:
            result["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }
        return result


class ValidationError(ServiceError):
    """Invalid input: empty title, unknown status, bad queue name."""

    http_status_code = 422
    mcp_error_code = -32602

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        ctx = dict(context) if context else {}
        if field is not None:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = str(value)
        super().__init__(message, request_id=request_id, context=ctx, original_error=original_error)
        self.field = field
        self.value = value


class NotFoundError(ServiceError):
    """A referenced resource does not exist."""

    http_status_code = 404
    mcp_error_code = -32001

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        ctx = dict(context) if context else {}
        ctx["resource_type"] = resource_type
        ctx["resource_id"] = self.resource_id
        if message is None:
            message = f"{resource_type} with ID '{self.resource_id}' not found"
        super().__init__(message, request_id=request_id, context=ctx)


class TaskNotFoundError(NotFoundError):
    """Task (or parent/blocker task) not found."""

    def __init__(self, task_id: Any, message: Optional[str] = None, **kwargs: Any):
        self.task_id = task_id
        super().__init__("Task", task_id, message=message, **kwargs)


class SelfReferenceError(ServiceError):
    """A task was given as its own parent or its own blocker."""

    http_status_code = 400
    mcp_error_code = -32003

    def __init__(self, task_id: int, relation: str, **kwargs: Any):
        self.task_id = task_id
        self.relation = relation
        context = {"task_id": task_id, "relation": relation}
        super().__init__(f"Task {task_id} cannot be its own {relation}", context=context, **kwargs)


class CircularDependencyError(ServiceError):
    """The proposed parent or blocker would close a cycle."""

    http_status_code = 409
    mcp_error_code = -32004

    def __init__(self, message: str, task_id: Optional[int] = None, related_task_id: Optional[int] = None, **kwargs: Any):
        context = {}
        if task_id is not None:
            context["task_id"] = task_id
        if related_task_id is not None:
            context["related_task_id"] = related_task_id
        super().__init__(message, context=context, **kwargs)


class DepthExceededError(ServiceError):
    """Hierarchy nesting would exceed the maximum depth."""

    http_status_code = 400
    mcp_error_code = -32005

    def __init__(self, max_depth: int, **kwargs: Any):
        self.max_depth = max_depth
        super().__init__(
            f"Maximum nesting depth ({max_depth} levels) exceeded",
            context={"max_depth": max_depth},
            **kwargs,
        )


class NotAssignedToCallerError(ServiceError):
    """Handoff attempted by an agent that does not hold the task."""

    http_status_code = 403
    mcp_error_code = -32006

    def __init__(self, task_id: int, caller: str, assigned_to: Optional[str], **kwargs: Any):
        self.task_id = task_id
        self.caller = caller
        self.assigned_to = assigned_to
        super().__init__(
            f"Task {task_id} is not assigned to {caller} "
            f"(currently assigned to: {assigned_to or 'no one'})",
            context={"task_id": task_id, "caller": caller, "assigned_to": assigned_to},
            **kwargs,
        )


class InvalidStateForTransferError(ServiceError):
    """Handoff attempted on a task that is neither idle nor working."""

    http_status_code = 409
    mcp_error_code = -32007

    def __init__(self, task_id: int, status: str, **kwargs: Any):
        self.task_id = task_id
        self.status = status
        super().__init__(
            f"Task {task_id} with status '{status}' cannot be transferred "
            f"(only 'idle' or 'working' are allowed)",
            context={"task_id": task_id, "status": status},
            **kwargs,
        )


class DatabaseError(ServiceError):
    """Underlying persistence failure (the store error kind)."""

    http_status_code = 500
    mcp_error_code = -32603

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        ctx = dict(context) if context else {}
        if operation is not None:
            ctx["operation"] = operation
        super().__init__(message, request_id=request_id, context=ctx, original_error=original_error)
        self.operation = operation


def to_http_exception(exc: ServiceError, include_context: bool = True, default_status_code: int = 500):
    """Convert a ServiceError into a FastAPI HTTPException."""
    from fastapi import HTTPException

    detail: Dict[str, Any] = {
        "error": type(exc).__name__,
        "message": exc.message,
    }
    if exc.request_id:
        detail["request_id"] = exc.request_id
    if include_context and exc.context:
        detail["context"] = exc.context
    status_code = exc.http_status_code or default_status_code
    return HTTPException(status_code=status_code, detail=detail)


def to_mcp_error_response(exc: ServiceError, include_context: bool = True) -> Dict[str, Any]:
    """Convert a ServiceError into an MCP tool error payload."""
    error: Dict[str, Any] = {
        "code": exc.mcp_error_code,
        "message": exc.message,
        "error_type": type(exc).__name__,
    }
    if exc.request_id:
        error["request_id"] = exc.request_id
    if include_context and exc.context:
        error["context"] = exc.context
    return {"success": False, "error": error}
